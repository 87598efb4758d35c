"""Capability interfaces for the collaborators the core does not implement.

Persistent storage and the interactive sign-in flow live in the embedding
application. The core only sees them through these protocols.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import AuthToken, Environment


@runtime_checkable
class StorageAdapter(Protocol):
    """Persists the environment list, the active selection and tokens."""

    async def get_environments(self) -> list[Environment]: ...

    async def set_environments(self, environments: list[Environment]) -> None: ...

    async def get_active_environment_id(self) -> str | None: ...

    async def set_active_environment_id(self, environment_id: str | None) -> None: ...

    async def get_token(self, environment_id: str) -> AuthToken | None: ...

    async def set_token(self, environment_id: str, token: AuthToken) -> None: ...

    async def clear_token(self, environment_id: str) -> None: ...


@runtime_checkable
class AuthAdapter(Protocol):
    """Runs the interactive OAuth sign-in for one environment."""

    async def sign_in(self, environment: Environment) -> AuthToken: ...

    async def sign_out(self, environment: Environment) -> None: ...


class InMemoryStorage:
    """StorageAdapter kept in process memory. Nothing survives a restart."""

    def __init__(
        self,
        environments: list[Environment] | None = None,
        active_environment_id: str | None = None,
    ) -> None:
        self._environments: list[Environment] = list(environments or [])
        self._active_environment_id = active_environment_id
        self._tokens: dict[str, AuthToken] = {}

    async def get_environments(self) -> list[Environment]:
        return list(self._environments)

    async def set_environments(self, environments: list[Environment]) -> None:
        self._environments = list(environments)

    async def get_active_environment_id(self) -> str | None:
        return self._active_environment_id

    async def set_active_environment_id(self, environment_id: str | None) -> None:
        self._active_environment_id = environment_id

    async def get_token(self, environment_id: str) -> AuthToken | None:
        return self._tokens.get(environment_id)

    async def set_token(self, environment_id: str, token: AuthToken) -> None:
        self._tokens[environment_id] = token

    async def clear_token(self, environment_id: str) -> None:
        self._tokens.pop(environment_id, None)
