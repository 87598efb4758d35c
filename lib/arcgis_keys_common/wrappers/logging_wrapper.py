"""LoggingTransport: composable request logging for REST transports.

Wraps any RestTransport and logs calls as they pass through. Reads go to
DEBUG, writes to INFO, failures to WARNING. The access token is never logged.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from ..transport import RestRequest, RestTransport


class LoggingTransport:
    """Logs requests passing through a REST transport.

    Delegates every call to the inner transport and logs the method, the
    environment, the path and the wall-clock duration. Exceptions are logged
    and re-raised unchanged so error mapping still sees the original value.
    """

    def __init__(
        self, inner: RestTransport, logger_name: str = "arcgis_keys.rest"
    ) -> None:
        self._inner = inner
        self._logger = logging.getLogger(logger_name)

    @property
    def inner(self) -> RestTransport:
        return self._inner

    async def request(self, request: RestRequest) -> Any:
        level = logging.DEBUG if request.method == "GET" else logging.INFO
        env_id = request.environment.id
        self._logger.log(level, "rest [%s]: %s %s", env_id, request.method, request.path)

        t0 = time.monotonic()
        try:
            response = await self._inner.request(request)
        except Exception as exc:
            duration_ms = int((time.monotonic() - t0) * 1000)
            self._logger.warning(
                "rest [%s]: %s %s failed after %dms: %s",
                env_id,
                request.method,
                request.path,
                duration_ms,
                exc,
            )
            raise

        duration_ms = int((time.monotonic() - t0) * 1000)
        self._logger.log(
            level,
            "rest [%s]: %s %s → ok in %dms",
            env_id,
            request.method,
            request.path,
            duration_ms,
        )
        return response
