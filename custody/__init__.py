"""
Custody — two-phase ownership transfer for access-controlled resources.
"""

__version__ = "0.1.0"
