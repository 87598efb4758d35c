"""HostServices: the collaborators one host process works with.

Constructed once by ``create_services`` and passed by reference to the
dispatcher. The caller owns its lifetime; nothing here is a module global.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from arcgis_keys_common.adapters import AuthAdapter, StorageAdapter
from arcgis_keys_common.client import RestClient
from arcgis_keys_common.config import ClientSettings, build_transport, load_environments
from arcgis_keys_common.environments import EnvironmentManager
from arcgis_keys_common.models import Capabilities, Environment
from arcgis_keys_common.transport import RestTransport

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class HostServices:
    """Everything a dispatcher needs to serve UI requests."""

    manager: EnvironmentManager
    storage: StorageAdapter
    auth: AuthAdapter
    rest_client: RestClient
    capabilities: dict[str, Capabilities] = field(default_factory=dict)

    def active_environment(self) -> Environment | None:
        """The selected environment, else the first configured one."""
        active = self.manager.get_active_environment()
        if active is not None:
            return active
        ordered = self.manager.ordered_environments()
        return ordered[0] if ordered else None

    async def valid_access_token(self, environment: Environment) -> str | None:
        token = await self.storage.get_token(environment.id)
        if token is None or not token.is_valid(now_ms()):
            return None
        return token.access_token

    async def capabilities_for(
        self, environment: Environment, access_token: str
    ) -> Capabilities:
        """Detect once per environment and cache until sign-out."""
        cached = self.capabilities.get(environment.id)
        if cached is None:
            cached = await self.rest_client.detect_capabilities(environment, access_token)
            self.capabilities[environment.id] = cached
        return cached


async def create_services(
    storage: StorageAdapter,
    auth: AuthAdapter,
    config: dict[str, Any] | None = None,
    transport: RestTransport | None = None,
) -> HostServices:
    """Build and load the services for one host.

    Config keys are those of ``ClientSettings`` plus ``environments_file``, a
    YAML file whose environments are added when not already configured.
    """
    config = config or {}
    settings = ClientSettings.from_config(config)

    manager = EnvironmentManager(storage)
    await manager.load()

    environments_file = config.get("environments_file")
    if environments_file:
        for environment in load_environments(environments_file):
            if manager.get(environment.id) is None:
                await manager.add_environment(environment)
                logger.info("host: added environment '%s' from config", environment.id)

    rest_client = RestClient(
        build_transport(settings, inner=transport),
        page_size=settings.page_size,
        enrichment_concurrency=settings.enrichment_concurrency,
    )
    return HostServices(
        manager=manager, storage=storage, auth=auth, rest_client=rest_client
    )
