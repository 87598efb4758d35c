"""Client configuration: settings, environment files and transport assembly."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .models import Environment
from .pagination import DEFAULT_PAGE_SIZE
from .transport import HttpxTransport, RestTransport
from .wrappers.logging_wrapper import LoggingTransport
from .wrappers.readonly_wrapper import ReadOnlyTransport

logger = logging.getLogger(__name__)


class ClientSettings(BaseModel):
    """Tunables for the REST client and its default transport."""

    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, description="Paged listing size")
    enrichment_concurrency: int = Field(
        default=6, ge=1, description="Detail fetches in flight per enrichment batch"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for the default httpx client"
    )
    read_only: bool = Field(default=False, description="Reject every write call")
    log_requests: bool = Field(default=False, description="Log each REST call")

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> ClientSettings:
        """Build settings from a plain config dict, ignoring unknown keys."""
        config = config or {}
        known = {name: config[name] for name in cls.model_fields if name in config}
        return cls(**known)


def load_environments(path: str | Path) -> list[Environment]:
    """Read ``environments:`` from a YAML file. A missing file yields []."""
    path = Path(path)
    if not path.exists():
        logger.debug("config: %s not found, no environments loaded", path)
        return []

    with open(path) as fh:
        content = yaml.safe_load(fh) or {}

    entries = content.get("environments") if isinstance(content, dict) else None
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ValueError(f"{path}: 'environments' must be a list")

    environments: list[Environment] = []
    for index, entry in enumerate(entries):
        try:
            environments.append(Environment.model_validate(entry))
        except ValidationError as exc:
            raise ValueError(f"{path}: invalid environment at index {index}: {exc}") from exc
    return environments


def build_transport(
    settings: ClientSettings, inner: RestTransport | None = None
) -> RestTransport:
    """Compose the transport stack: read-only innermost, logging outermost."""
    transport: RestTransport = inner or HttpxTransport(timeout=settings.request_timeout)
    if settings.read_only:
        transport = ReadOnlyTransport(transport)
    if settings.log_requests:
        transport = LoggingTransport(transport)
    return transport
