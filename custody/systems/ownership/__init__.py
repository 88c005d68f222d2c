"""
Custody — Ownership System

Two-phase ownership transfer across N independently transferable owner slots.
An owner nominates a successor with ``propose``; control moves only when the
nominee performs its own authenticated ``claim_ownership``.
"""
