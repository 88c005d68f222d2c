"""
Custody — Structured Logging

All logging via structlog. Every log entry includes system context: the
component that wrote it and, when configured, the registry instance.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.typing import EventDict, Processor

    from custody.config import LoggingConfig

_DEFAULT_SYSTEM = "custody"


def custody_context(instance_id: str = "") -> Processor:
    """
    Stamp every entry with ``system`` and ``instance_id``.

    Loggers bound to a component (``system="ownership.registry"``) keep their
    own value; anything else is attributed to the custody process itself.
    A ``slot`` of None (a rejection that concerns no single slot) is dropped
    so that ``slot`` only ever holds a real index.
    """

    def _processor(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("system", _DEFAULT_SYSTEM)
        if instance_id:
            event_dict.setdefault("instance_id", instance_id)
        if "slot" in event_dict and event_dict["slot"] is None:
            del event_dict["slot"]
        return event_dict

    return _processor


def setup_logging(config: LoggingConfig, instance_id: str = "") -> None:
    """
    Configure structured logging for the entire application.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        custody_context(instance_id),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            custody_context(instance_id),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
