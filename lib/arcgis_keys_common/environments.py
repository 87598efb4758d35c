"""EnvironmentManager: the configured deployments and the active selection.

Keeps an in-memory list mirrored to a StorageAdapter. Call ``load()`` once
before use; every mutation writes through to storage.
"""

from __future__ import annotations

import asyncio
import logging

from .adapters import StorageAdapter
from .models import Environment, EnvironmentType

logger = logging.getLogger(__name__)

ENVIRONMENT_TYPE_ORDER: tuple[EnvironmentType, ...] = (
    "online",
    "location-platform",
    "enterprise",
)


class EnvironmentManager:
    """Registry of configured environments backed by a StorageAdapter."""

    def __init__(self, storage: StorageAdapter) -> None:
        self._storage = storage
        self._environments: list[Environment] = []
        self._active_environment_id: str | None = None

    async def load(self) -> None:
        environments, active_id = await asyncio.gather(
            self._storage.get_environments(),
            self._storage.get_active_environment_id(),
        )
        self._environments = list(environments)
        self._active_environment_id = active_id
        logger.debug(
            "environments: loaded %d, active=%s", len(self._environments), active_id
        )

    async def add_environment(self, environment: Environment) -> None:
        """Add an environment. Raises ValueError on duplicate id."""
        if any(item.id == environment.id for item in self._environments):
            raise ValueError(f"Environment with id '{environment.id}' already exists")
        self._environments.append(environment)
        await self._storage.set_environments(self._environments)

    async def remove_environment(self, environment_id: str) -> None:
        """Remove an environment and its token. Unknown ids are ignored."""
        remaining = [item for item in self._environments if item.id != environment_id]
        if len(remaining) == len(self._environments):
            return

        self._environments = remaining
        await self._storage.set_environments(self._environments)
        await self._storage.clear_token(environment_id)

        if self._active_environment_id == environment_id:
            self._active_environment_id = None
            await self._storage.set_active_environment_id(None)

    def list_environments(self) -> dict[EnvironmentType, list[Environment]]:
        """Environments grouped by type: online, location-platform, enterprise."""
        return {
            env_type: [item for item in self._environments if item.type == env_type]
            for env_type in ENVIRONMENT_TYPE_ORDER
        }

    def ordered_environments(self) -> list[Environment]:
        """All environments flattened in group order."""
        grouped = self.list_environments()
        return [env for env_type in ENVIRONMENT_TYPE_ORDER for env in grouped[env_type]]

    def get(self, environment_id: str) -> Environment | None:
        return next(
            (item for item in self._environments if item.id == environment_id), None
        )

    async def set_active_environment(self, environment_id: str) -> None:
        """Select an environment. Raises ValueError if it is not configured."""
        if self.get(environment_id) is None:
            raise ValueError(f"Environment with id '{environment_id}' is not configured")
        self._active_environment_id = environment_id
        await self._storage.set_active_environment_id(environment_id)

    def get_active_environment(self) -> Environment | None:
        if not self._active_environment_id:
            return None
        return self.get(self._active_environment_id)
