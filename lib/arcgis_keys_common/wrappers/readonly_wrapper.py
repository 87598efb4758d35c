"""ReadOnlyTransport: rejects write calls on a REST transport.

Wraps any RestTransport, blocking every POST while letting GETs through.
Used for audit sessions where key mutation must be impossible.
"""

from __future__ import annotations

from typing import Any

from ..errors import PortalError
from ..transport import RestRequest, RestTransport

READ_ONLY_MESSAGE = "Write operations disabled in read-only mode"


class ReadOnlyTransport:
    """Rejects all POST requests as a 403. GET passes through."""

    def __init__(self, inner: RestTransport) -> None:
        self._inner = inner

    @property
    def inner(self) -> RestTransport:
        return self._inner

    async def request(self, request: RestRequest) -> Any:
        if request.method != "GET":
            raise PortalError.from_status(403, READ_ONLY_MESSAGE)
        return await self._inner.request(request)
