"""Structured logging setup using structlog.

Every event leaves the relay through one shared processor chain (context
vars, service name, log level, timestamps, stack info) and then a single
renderer: a coloured ConsoleRenderer for local runs or a JSONRenderer when
``APP_ENV=production`` (or ``json_output=True``).

Relay events are flat snake_case names with the upstream in ``base_url``
(``source_switched``, ``upstream_attempt_failed``, ``cache_swept``), so a
JSON log stream can be filtered per source without parsing messages.

Stdlib ``logging`` is routed through the same formatter so uvicorn access
lines and httpx request records share the relay's format.
"""

import logging
import os
import sys
from typing import Any

import structlog

SERVICE_NAME = "music-api-relay"


def add_service_name(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Stamp ``service`` on every event unless a caller already bound one."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog for the relay process.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. Otherwise JSON is used only when
                     APP_ENV is ``production``.

    Returns:
        A configured structlog BoundLogger.
    """
    # "production" => one JSON object per line for the log shipper.
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # Order matters: request-scoped bindings are merged before anything
    # else reads the event dict.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_name,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,                    # exc_info on error() inside except
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        # Below-level events (e.g. per-probe debug lines) are dropped before
        # the chain runs.
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and httpx log through stdlib; give them the same pipeline.
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()   # uvicorn installs its own on reload
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound with ``logger_name=name``.

    Falls back to :func:`configure_logging` defaults when nothing has
    configured structlog yet (tests, ad-hoc scripts).
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
