"""Webhook authorization for fanrelay.

The relay itself has no auth policy. The app is given a predicate that
decides whether an inbound webhook request may proceed; the default one
compares a shared-secret header against ``RELAY_WEBHOOK_SECRET``:

- ``RELAY_WEBHOOK_SECRET`` unset or empty -- every webhook is accepted.
- Otherwise the header named by ``RELAY_SECRET_HEADER``
  (``x-cometchat-webhook-secret`` by default) must match exactly.

WebSocket sessions and read-only endpoints are never checked.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable

from fastapi import Request

from fanrelay.exceptions import UnauthorizedError

WebhookAuthorizer = Callable[[Request], bool]

_audit_logger = logging.getLogger("fanrelay.audit")


def allow_all(request: Request) -> bool:
    return True


def shared_secret_predicate(secret: str | None, header: str) -> WebhookAuthorizer:
    """Build a predicate accepting requests whose *header* equals *secret*."""
    if not secret:
        return allow_all

    expected = secret.encode("utf-8")

    def _check(request: Request) -> bool:
        supplied = request.headers.get(header)
        if supplied is None:
            return False
        return hmac.compare_digest(supplied.encode("utf-8"), expected)

    return _check


async def require_webhook_auth(request: Request) -> None:
    """FastAPI dependency running the app's webhook predicate.

    Raises:
        UnauthorizedError: the predicate rejected the request.
    """
    authorize: WebhookAuthorizer = request.app.state.authorize
    if authorize(request):
        return

    _audit_logger.warning(
        "Webhook rejected: %s %s from %s",
        request.method,
        request.url.path,
        request.client.host if request.client else "unknown",
        extra={
            "event_category": "audit",
            "action": "auth_failure",
            "path": request.url.path,
        },
    )
    raise UnauthorizedError()
