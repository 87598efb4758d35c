"""Key mutation strategies: create, regenerate or revoke one key slot.

Two interchangeable implementations of ``KeyMutationStrategy``:
- RegisteredAppKeyMutation: resolves the item's registered app credentials and
  exchanges them at ``/oauth2/token`` (its own identity exchange)
- DirectKeyMutation: ``POST /portals/self/apiKeys/{id}/keys/{slot}/{action}``

The client picks between them; neither knows about the other.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

from .errors import PortalError
from .models import Environment, KeyMutationAction, MutationResult, SlotNumber
from .normalizer import read_loose_string
from .transport import HttpMethod, RestRequest, RestTransport

KEY_RESPONSE_FIELDS: tuple[str, ...] = ("key", "apiKey", "access_token")


@dataclass(frozen=True)
class KeyMutationRequest:
    environment: Environment
    access_token: str
    credential_id: str
    slot: SlotNumber
    action: KeyMutationAction
    expiration_days: int | float | None = None


@runtime_checkable
class KeyMutationStrategy(Protocol):
    """One way of performing a key mutation against the portal."""

    async def mutate(self, request: KeyMutationRequest) -> MutationResult:
        ...


def expiration_timestamp(
    expiration_days: int | float | None, now: datetime | None = None
) -> int | None:
    """End of the day ``expiration_days`` from now (local time), as epoch ms."""
    if (
        expiration_days is None
        or isinstance(expiration_days, bool)
        or not math.isfinite(expiration_days)
        or expiration_days <= 0
    ):
        return None

    moment = (now or datetime.now()).astimezone()
    moment = moment + timedelta(days=expiration_days)
    moment = moment.replace(hour=23, minute=59, second=59, microsecond=0)
    return int(moment.timestamp() * 1000)


def _segment(value: str) -> str:
    return quote(value, safe="")


def _confirmed(response: Any) -> bool:
    return not (isinstance(response, dict) and response.get("success") is False)


def read_mutation_key(response: Any) -> str:
    """The key string from a mutation response; missing key is a server fault."""
    if isinstance(response, dict):
        for name in KEY_RESPONSE_FIELDS:
            key = read_loose_string(response.get(name))
            if key:
                return key
    raise PortalError.from_status(
        500, "ArcGIS response did not include an API key value."
    )


class RegisteredAppKeyMutation:
    """Mutation through the registered app's client credentials."""

    def __init__(self, transport: RestTransport) -> None:
        self._transport = transport

    async def _call(
        self,
        request: KeyMutationRequest,
        path: str,
        method: HttpMethod = "GET",
        body: dict[str, Any] | None = None,
    ) -> Any:
        return await self._transport.request(
            RestRequest(
                path=path,
                method=method,
                environment=request.environment,
                access_token=request.access_token,
                query={"f": "json"} if method == "GET" else None,
                body={"f": "json", **body} if body is not None else None,
            )
        )

    async def _resolve_registration(
        self, request: KeyMutationRequest
    ) -> tuple[str, str, str]:
        item_id = _segment(request.credential_id)
        item = await self._call(request, f"/content/items/{item_id}")
        owner = read_loose_string(item.get("owner")) if isinstance(item, dict) else None
        if not owner:
            raise PortalError.from_status(
                500, "ArcGIS item response did not include an owner for this API key."
            )

        registered = await self._call(
            request,
            f"/content/users/{_segment(owner)}/items/{item_id}/registeredAppInfo",
        )
        registered = registered if isinstance(registered, dict) else {}
        client_id = read_loose_string(registered.get("client_id")) or read_loose_string(
            registered.get("clientId")
        )
        client_secret = read_loose_string(
            registered.get("client_secret")
        ) or read_loose_string(registered.get("clientSecret"))
        if not client_id or not client_secret:
            raise PortalError.from_status(
                500, "ArcGIS registered app info did not include client credentials."
            )
        return owner, client_id, client_secret

    async def _update_expiration(self, request: KeyMutationRequest, owner: str) -> None:
        expires = expiration_timestamp(request.expiration_days)
        if expires is None:
            raise PortalError.from_status(
                400, "Expiration date is required to generate or regenerate an API key."
            )

        response = await self._call(
            request,
            f"/content/users/{_segment(owner)}/items/"
            f"{_segment(request.credential_id)}/update",
            method="POST",
            body={f"apiToken{request.slot}ExpirationDate": expires},
        )
        if not _confirmed(response):
            raise PortalError.from_status(
                500, "ArcGIS did not confirm the API token expiration update."
            )

    async def mutate(self, request: KeyMutationRequest) -> MutationResult:
        owner, client_id, client_secret = await self._resolve_registration(request)
        credentials = {"client_id": client_id, "client_secret": client_secret}

        if request.action == "revoke":
            response = await self._call(
                request,
                "/oauth2/revokeToken",
                method="POST",
                body={**credentials, "apiToken": request.slot},
            )
            if not _confirmed(response):
                raise PortalError.from_status(
                    500, "ArcGIS response did not confirm key revocation."
                )
            return MutationResult(
                credential_id=request.credential_id,
                slot=request.slot,
                action=request.action,
            )

        await self._update_expiration(request, owner)
        response = await self._call(
            request,
            "/oauth2/token",
            method="POST",
            body={
                **credentials,
                "grant_type": "client_credentials",
                "apiToken": request.slot,
                "regenerateApiToken": request.action == "regenerate",
            },
        )
        return MutationResult(
            credential_id=request.credential_id,
            slot=request.slot,
            action=request.action,
            key=read_mutation_key(response),
        )


class DirectKeyMutation:
    """Mutation through the portal's API key endpoints."""

    def __init__(self, transport: RestTransport) -> None:
        self._transport = transport

    async def mutate(self, request: KeyMutationRequest) -> MutationResult:
        body: dict[str, Any] = {"f": "json"}
        expires = expiration_timestamp(request.expiration_days)
        if expires is not None:
            body["expiration"] = expires

        response = await self._transport.request(
            RestRequest(
                path=(
                    f"/portals/self/apiKeys/{_segment(request.credential_id)}"
                    f"/keys/{request.slot}/{request.action}"
                ),
                method="POST",
                environment=request.environment,
                access_token=request.access_token,
                body=body,
            )
        )

        if request.action == "revoke":
            if not _confirmed(response):
                raise PortalError.from_status(
                    500, "ArcGIS response did not confirm key revocation."
                )
            return MutationResult(
                credential_id=request.credential_id,
                slot=request.slot,
                action=request.action,
            )

        return MutationResult(
            credential_id=request.credential_id,
            slot=request.slot,
            action=request.action,
            key=read_mutation_key(response),
        )
