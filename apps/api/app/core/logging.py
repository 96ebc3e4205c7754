"""Structured logging via structlog.

Configures structlog once at application startup. Module code keeps using
``logging.getLogger(__name__)``; the stdlib bridge routes it through the
same renderer.

Renderer selection:
  debug=True  — `ConsoleRenderer` with colours for local development.
  debug=False — `JSONRenderer` for machine-parseable logs in production.

ContextVar injection:
  `request_id` comes from `app.core.middleware`, `prototype_id` is bound by
  the deployment service for the duration of one deployment, so every log
  line emitted while deploying carries the prototype it belongs to.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

from app.core.middleware import get_request_id

_prototype_id_var: ContextVar[str] = ContextVar("prototype_id", default="")


def get_prototype_id() -> str:
    """Return the prototype being processed, or empty string if not set."""
    return _prototype_id_var.get()


@contextmanager
def bind_prototype_id(prototype_id: str) -> Iterator[None]:
    """Tag every log line inside the block with ``prototype_id``."""
    token = _prototype_id_var.set(prototype_id)
    try:
        yield
    finally:
        _prototype_id_var.reset(token)


def _inject_context_vars(
    logger: logging.Logger,
    method: str,
    event_dict: dict,
) -> dict:
    """Structlog processor: inject request_id and prototype_id from ContextVars."""
    request_id = get_request_id()
    prototype_id = get_prototype_id()
    if request_id:
        event_dict["request_id"] = request_id
    if prototype_id:
        event_dict["prototype_id"] = prototype_id
    return event_dict


def configure_structlog(debug: bool = True) -> None:
    """Configure structlog for the application lifetime.

    Call once from `create_app()` before any routers are registered.
    Calling multiple times is safe.
    """
    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_context_vars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # Bridge stdlib logging → structlog so module loggers, SQLAlchemy and
    # httpx share one output stream.
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=shared_processors,
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
