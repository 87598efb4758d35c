"""CapabilityDetector: which operations a deployment supports.

Detection never raises. A failed probe reports every capability as
unavailable so the UI can still attempt a fetch.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from .models import Capabilities, Environment
from .transport import RestRequest, RestTransport

logger = logging.getLogger(__name__)

# First ArcGIS Enterprise release with the API key mutation endpoints.
MUTATION_MIN_VERSION = 11.2

FULL_CAPABILITIES = Capabilities(
    can_list_credentials=True,
    can_view_credential_detail=True,
    can_create_api_key=True,
    can_regenerate_api_key=True,
)


def read_version(portal: Any) -> float:
    value = portal.get("currentVersion") if isinstance(portal, dict) else None
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            return math.inf
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


class CapabilityDetector:
    """Probes ``/portals/self`` on self-hosted deployments."""

    def __init__(self, transport: RestTransport) -> None:
        self._transport = transport

    async def detect(self, environment: Environment, access_token: str) -> Capabilities:
        if environment.is_cloud:
            return FULL_CAPABILITIES

        try:
            portal = await self._transport.request(
                RestRequest(
                    path="/portals/self",
                    method="GET",
                    environment=environment,
                    access_token=access_token,
                    query={"f": "json"},
                )
            )
        except Exception as exc:
            logger.warning(
                "capabilities: probe failed for environment '%s': %s",
                environment.id,
                exc,
            )
            return Capabilities(
                can_list_credentials=False,
                can_view_credential_detail=False,
                can_create_api_key=False,
                can_regenerate_api_key=False,
                reason="Unable to detect Enterprise capabilities for this portal.",
            )

        version = read_version(portal)
        if version >= MUTATION_MIN_VERSION:
            return FULL_CAPABILITIES

        logger.info(
            "capabilities: portal version %s below %s, key mutation disabled",
            version,
            MUTATION_MIN_VERSION,
        )
        return Capabilities(
            can_list_credentials=True,
            can_view_credential_detail=True,
            can_create_api_key=False,
            can_regenerate_api_key=False,
            reason=(
                "This ArcGIS Enterprise version may not support API key "
                "create/regenerate operations."
            ),
        )
