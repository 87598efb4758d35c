"""RestTransport protocol and the default httpx implementation.

The client only ever talks to the portal through ``RestTransport.request``.
Implementations are responsible for URL construction, for injecting
``f=json`` and ``token``, and for raising ``PortalError`` with the parsed body
whenever that body carries an ``error`` key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

import httpx

from .errors import PortalError
from .models import Environment

ARCGIS_ONLINE_REST_URL = "https://www.arcgis.com/sharing/rest"

HttpMethod = Literal["GET", "POST"]


@dataclass(frozen=True)
class RestRequest:
    """One call against the portal's REST API."""

    path: str
    method: HttpMethod
    environment: Environment
    access_token: str
    query: dict[str, Any] | None = None
    body: dict[str, Any] | None = None


@runtime_checkable
class RestTransport(Protocol):
    """Uniform interface for issuing portal REST calls."""

    async def request(self, request: RestRequest) -> Any:
        """Issue the call and return the parsed JSON body."""
        ...


def rest_base_url(environment: Environment) -> str:
    """Return the ``/sharing/rest`` root for an environment."""
    if environment.type == "enterprise":
        portal_url = (environment.portal_url or "").rstrip("/")
        if not portal_url:
            raise ValueError("Enterprise environment requires a portal URL.")
        return f"{portal_url}/sharing/rest"
    return ARCGIS_ONLINE_REST_URL


def _encode_params(params: dict[str, Any]) -> dict[str, str]:
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


class HttpxTransport:
    """RestTransport backed by ``httpx.AsyncClient``.

    Args:
        client: Optional pre-configured client. When omitted the transport
            creates one and closes it in ``aclose``.
        timeout: Timeout for a client created by the transport.
    """

    def __init__(
        self, client: httpx.AsyncClient | None = None, timeout: float = 30.0
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(self, request: RestRequest) -> Any:
        url = f"{rest_base_url(request.environment)}{request.path}"
        params = _encode_params(
            {
                "f": "json",
                "token": request.access_token,
                **(request.query or {}),
                **(request.body or {}),
            }
        )

        try:
            if request.method == "GET":
                response = await self._client.get(url, params=params)
            else:
                response = await self._client.post(url, data=params)
        except httpx.TransportError as exc:
            raise ConnectionError(f"Network request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            raise PortalError.from_status(
                response.status_code,
                f"ArcGIS returned a non-JSON response (HTTP {response.status_code}).",
            ) from None

        if isinstance(payload, dict) and payload.get("error"):
            raise PortalError(payload)
        return payload
