"""Error classification for ArcGIS REST failures.

Transports raise ``PortalError`` with the parsed JSON body whenever the portal
answers with an ``error`` object. ``map_rest_error`` folds that, plain
exceptions, or anything else into a ``RestError``; ``RestClientError`` is the
only exception type that leaves a public client coroutine.
"""

from __future__ import annotations

import re
from typing import Any

from .models import RestError

_NETWORK_PATTERN = re.compile(r"network|fetch", re.IGNORECASE)

FALLBACK_MESSAGE = "Unexpected ArcGIS REST error."


class PortalError(Exception):
    """Raw error body returned by the portal (``{"error": {...}}``)."""

    def __init__(self, body: Any) -> None:
        self.body = body
        super().__init__(_describe(body))

    @classmethod
    def from_status(cls, code: int, message: str) -> PortalError:
        """Build a portal-shaped error for contract violations found client-side."""
        return cls({"error": {"code": code, "message": message}})


class RestClientError(Exception):
    """A mapped REST failure raised from the public client surface."""

    def __init__(self, error: RestError) -> None:
        self.error = error
        super().__init__(error.message)

    @property
    def code(self) -> str:
        return self.error.code


def _describe(body: Any) -> str:
    portal = _read_portal_error(body)
    message = portal["message"] or "ArcGIS portal error"
    if portal["code"] is not None:
        return f"{message} (code {portal['code']})"
    return message


def _read_portal_error(thrown: Any) -> dict[str, Any]:
    """Extract code/message/details from a portal error body, nested or flat."""
    body = thrown.body if isinstance(thrown, PortalError) else thrown
    if not isinstance(body, dict):
        return {"code": None, "message": None, "details": None}

    nested = body["error"] if isinstance(body.get("error"), dict) else body
    code = nested.get("code")
    if isinstance(code, bool) or not isinstance(code, (int, float)):
        code = None
    elif isinstance(code, float):
        code = int(code) if code.is_integer() else None
    message = nested.get("message")
    return {
        "code": code,
        "message": message if isinstance(message, str) else None,
        "details": nested.get("details"),
    }


def map_rest_error(thrown: Any) -> RestError:
    """Classify any thrown value into the closed RestError taxonomy.

    Never raises. Order: portal session codes (498/499), 403, 400, network
    failures, then UNKNOWN.
    """
    if isinstance(thrown, RestClientError):
        return thrown.error

    portal = _read_portal_error(thrown)
    code = portal["code"]

    if code in (498, 499):
        return RestError(
            code="SESSION_EXPIRED",
            message="Session expired. Sign in again to continue.",
            recoverable=True,
            http_status=code,
            details=portal["details"],
        )

    if code == 403:
        return RestError(
            code="PERMISSION_DENIED",
            message="Permission denied for this ArcGIS operation.",
            recoverable=False,
            http_status=code,
            details=portal["details"],
        )

    if code == 400:
        return RestError(
            code="INVALID_REQUEST",
            message=portal["message"] or "The ArcGIS request was invalid.",
            recoverable=False,
            http_status=code,
            details=portal["details"],
        )

    if (
        isinstance(thrown, Exception)
        and not isinstance(thrown, PortalError)
        and _NETWORK_PATTERN.search(str(thrown))
    ):
        return RestError(
            code="NETWORK_ERROR",
            message="Network request failed. Check connectivity and try again.",
            recoverable=True,
            details=str(thrown),
        )

    return RestError(
        code="UNKNOWN",
        message=portal["message"] or FALLBACK_MESSAGE,
        recoverable=False,
        http_status=code,
        details=portal["details"],
    )


def unsupported_feature(message: str) -> RestClientError:
    return RestClientError(
        RestError(code="UNSUPPORTED_FEATURE", message=message, recoverable=False)
    )
