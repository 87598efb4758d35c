"""PaginatedFetcher: drive ``start``/``num`` paging and collect credentials.

Paging starts at ``start=1`` and continues while the response's ``nextStart``
is a number greater than zero. There is no page cap: a backend that never
terminates keeps the loop running, so callers talking to untrusted portals
should bound the call externally (e.g. ``asyncio.timeout``).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .models import Credential, Environment
from .normalizer import dedupe_credentials, normalize
from .transport import RestRequest, RestTransport
from .validation import SEARCH_ENDPOINT, ResponseShapeValidator

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

RECORD_ARRAY_FIELDS: tuple[str, ...] = (
    "credentials",
    "apiKeys",
    "apiKeyCredentials",
    "apiTokens",
    "results",
    "data",
    "items",
)

SEARCH_FILTER_BASE = (
    '-typekeywords:("MapAreaPackage") '
    '-type:("Map Area" OR "Indoors Map Configuration" OR "Code Attachment")'
)
MODERN_KEYS_FILTER = (
    '(type:"Application" AND typekeywords:("Registered App" AND "APIToken"))'
)
LEGACY_KEYS_FILTER = '(type:"API Key")'


@dataclass(frozen=True)
class RequestTemplate:
    """The fixed part of a paged GET; paging parameters are added per page."""

    path: str
    environment: Environment
    access_token: str
    query: dict[str, Any] = field(default_factory=dict)
    validation_key: str | None = None


def extract_records(response: Any) -> list[Any]:
    """Return the first array-valued record field present in a page."""
    if not isinstance(response, dict):
        return []
    for name in RECORD_ARRAY_FIELDS:
        value = response.get(name)
        if isinstance(value, list):
            return value
    return []


def read_next_start(response: Any) -> int | float:
    """``nextStart`` when numeric, else -1 (which ends paging)."""
    value = response.get("nextStart") if isinstance(response, dict) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return -1
    return value


def search_filter(owner: str, suffix: str) -> str:
    return f"owner: {owner} {SEARCH_FILTER_BASE} {suffix}"


class PaginatedFetcher:
    """Fetches every page of a listing endpoint through a RestTransport."""

    def __init__(self, transport: RestTransport) -> None:
        self._transport = transport

    async def fetch_pages(
        self,
        template: RequestTemplate,
        page_size: int = DEFAULT_PAGE_SIZE,
        validator: ResponseShapeValidator | None = None,
    ) -> list[Credential]:
        """All normalized credentials across pages, in arrival order."""
        credentials: list[Credential] = []
        next_start: int | float = 1
        pages = 0

        while next_start > 0:
            response = await self._transport.request(
                RestRequest(
                    path=template.path,
                    method="GET",
                    environment=template.environment,
                    access_token=template.access_token,
                    query={
                        **template.query,
                        "start": next_start,
                        "num": page_size,
                        "f": "json",
                    },
                )
            )
            pages += 1
            if validator is not None and template.validation_key:
                validator.observe(template.validation_key, response)

            for record in extract_records(response):
                credential = normalize(record)
                if credential is not None:
                    credentials.append(credential)
            next_start = read_next_start(response)

        logger.debug(
            "pagination: %s returned %d credentials over %d pages",
            template.path,
            len(credentials),
            pages,
        )
        return credentials

    async def fetch_all(
        self,
        template: RequestTemplate,
        page_size: int = DEFAULT_PAGE_SIZE,
        validator: ResponseShapeValidator | None = None,
    ) -> list[Credential]:
        """Like ``fetch_pages`` but deduplicated by id, last occurrence winning."""
        return dedupe_credentials(
            await self.fetch_pages(template, page_size, validator)
        )

    async def fetch_search_listing(
        self,
        environment: Environment,
        access_token: str,
        owner: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        validator: ResponseShapeValidator | None = None,
    ) -> list[Credential]:
        """Run the modern and legacy key searches concurrently and combine them."""

        def template(suffix: str) -> RequestTemplate:
            return RequestTemplate(
                path=SEARCH_ENDPOINT,
                environment=environment,
                access_token=access_token,
                query={
                    "q": "  ",
                    "filter": search_filter(owner, suffix),
                    "sortField": "modified",
                    "sortOrder": "desc",
                    "displaySublayers": True,
                    "displayHighlights": True,
                    "displayServiceProperties": True,
                },
                validation_key=SEARCH_ENDPOINT,
            )

        # A failing leg cancels its sibling before the error reaches the caller.
        try:
            async with asyncio.TaskGroup() as group:
                modern = group.create_task(
                    self.fetch_pages(template(MODERN_KEYS_FILTER), page_size, validator)
                )
                legacy = group.create_task(
                    self.fetch_pages(template(LEGACY_KEYS_FILTER), page_size, validator)
                )
        except ExceptionGroup as group_error:
            raise group_error.exceptions[0]
        return dedupe_credentials([*modern.result(), *legacy.result()])
