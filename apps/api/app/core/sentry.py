"""Sentry SDK integration for the prototype API.

Error capture is off unless SENTRY_DSN is set. Events are cleaned before
they leave the process:

  - request headers the web client sends with credentials (authorization,
    apikey) are redacted, as is any ``extra`` / body key that looks like a
    secret (service key, JWT secret, Figma token, DSN)
  - events raised while a deployment is running are tagged with its
    ``prototype_id`` so failures can be grouped per prototype
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from app.core.logging import get_prototype_id

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

_SENSITIVE_KEYS = frozenset({"api_key", "apikey", "secret", "password", "token", "dsn"})
_SENSITIVE_HEADERS = frozenset({"authorization", "apikey", "cookie", "x-figma-token"})


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_KEYS)


def _scrub_dict(d: dict[str, Any]) -> None:
    """Recursively redact sensitive values in-place."""
    for key, value in d.items():
        if _is_sensitive(key):
            d[key] = REDACTED
        elif isinstance(value, dict):
            _scrub_dict(value)


def _scrub_secrets(event: dict[str, Any], hint: Any) -> dict[str, Any]:
    """Sentry before_send hook."""
    _scrub_dict(event.get("extra", {}))

    request = event.get("request", {})
    if isinstance(request.get("data"), dict):
        _scrub_dict(request["data"])
    headers = request.get("headers")
    if isinstance(headers, dict):
        for name in headers:
            if name.lower() in _SENSITIVE_HEADERS:
                headers[name] = REDACTED

    prototype_id = get_prototype_id()
    if prototype_id:
        event.setdefault("tags", {})["prototype_id"] = prototype_id
    return event


def init_sentry(dsn: str, environment: str = "development") -> None:
    """Initialise the Sentry SDK; an empty DSN disables it."""
    if not dsn or not dsn.strip():
        logger.debug("Sentry DSN not configured, error capture disabled")
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            HttpxIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=_scrub_secrets,
    )
    logger.info("Sentry initialised (environment=%s)", environment)
