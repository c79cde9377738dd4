"""Logging setup.

Modules log through ``logging.getLogger(__name__)`` with structured
``extra`` fields. configure_logging routes those records through a
structlog ProcessorFormatter so the extras become key-value pairs in
JSON (production) or console (development) output.
"""

import logging
import sys
from typing import List, Optional

import structlog


def _shared_processors() -> List[structlog.types.Processor]:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Install structured logging on the root logger.

    Replaces any handlers already on the root logger, so calling it more
    than once is safe.

    Args:
        level: Root log level name.
        json_logs: Render JSON lines when True, colourless console
            key-value output otherwise.
    """
    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())

    # uvicorn installs its own handlers; let its records reach ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """structlog logger bound to the same handlers as stdlib loggers."""
    return structlog.get_logger(name)
