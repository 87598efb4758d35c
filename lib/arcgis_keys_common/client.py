"""RestClient: the public surface over the portal's credential REST API.

Composes the paginated fetcher, normalizer, validator, capability detector
and mutation strategies. Every public coroutine either returns canonical
models or raises ``RestClientError`` carrying a mapped ``RestError``; no other
exception escapes.

Online and location-platform listing goes through two concurrent ``/search``
queries scoped to the signed-in user, then enriches each row with detail in
batches. Any failure on that path falls back to ``/portals/self/apiKeys``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

from .capabilities import CapabilityDetector
from .errors import PortalError, RestClientError, map_rest_error, unsupported_feature
from .models import (
    Capabilities,
    Credential,
    Environment,
    KeyMutationAction,
    MutationResult,
    RestError,
    SlotNumber,
)
from .mutation import (
    DirectKeyMutation,
    KeyMutationRequest,
    KeyMutationStrategy,
    RegisteredAppKeyMutation,
)
from .normalizer import merge_records, normalize, read_loose_string, read_nested
from .pagination import DEFAULT_PAGE_SIZE, PaginatedFetcher, RequestTemplate
from .transport import RestRequest, RestTransport
from .validation import (
    API_KEYS_ENDPOINT,
    ITEM_ENDPOINT,
    REGISTERED_APP_ENDPOINT,
    ResponseShapeValidator,
)

logger = logging.getLogger(__name__)

DEFAULT_ENRICHMENT_CONCURRENCY = 6
DEFAULT_PORTAL_BASE = "https://www.arcgis.com"
MUTATION_ACTIONS: frozenset[str] = frozenset({"create", "regenerate", "revoke"})


def _segment(value: str) -> str:
    return quote(value, safe="")


def read_groups_snippet(response: Any) -> str | None:
    """The item's own snippet from a groups response, else the first group's."""
    if not isinstance(response, dict):
        return None
    snippet = read_loose_string(response.get("snippet"))
    if snippet:
        return snippet
    for name in ("groups", "results", "items"):
        records = response.get(name)
        if not isinstance(records, list):
            continue
        for group in records:
            if isinstance(group, dict):
                snippet = read_loose_string(group.get("snippet"))
                if snippet:
                    return snippet
        break
    return None


class RestClient:
    """Credential listing, detail and key mutation for one transport.

    Args:
        transport: Issues the portal REST calls.
        page_size: Default ``num`` for paged listings.
        enrichment_concurrency: Detail fetches in flight per enrichment batch.
        primary_mutation: Strategy tried first for cloud deployments.
        fallback_mutation: Strategy used for enterprise deployments and when
            the primary strategy fails.

    Holds one piece of state: the validation warnings of the most recent
    ``fetch_credentials`` call. Do not run two listings concurrently on the
    same instance.
    """

    def __init__(
        self,
        transport: RestTransport,
        page_size: int = DEFAULT_PAGE_SIZE,
        enrichment_concurrency: int = DEFAULT_ENRICHMENT_CONCURRENCY,
        primary_mutation: KeyMutationStrategy | None = None,
        fallback_mutation: KeyMutationStrategy | None = None,
    ) -> None:
        self._transport = transport
        self._page_size = page_size
        self._enrichment_concurrency = max(1, enrichment_concurrency)
        self._fetcher = PaginatedFetcher(transport)
        self._detector = CapabilityDetector(transport)
        self._primary_mutation = primary_mutation or RegisteredAppKeyMutation(transport)
        self._fallback_mutation = fallback_mutation or DirectKeyMutation(transport)
        self._last_warnings: list[str] = []

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get(
        self, environment: Environment, access_token: str, path: str, **query: Any
    ) -> Any:
        return await self._transport.request(
            RestRequest(
                path=path,
                method="GET",
                environment=environment,
                access_token=access_token,
                query={"f": "json", **query},
            )
        )

    async def _get_record(
        self, environment: Environment, access_token: str, path: str
    ) -> dict[str, Any] | None:
        """Best-effort GET: a dict body, or None on any failure."""
        try:
            response = await self._get(environment, access_token, path)
        except Exception as exc:
            logger.debug("rest-client: optional %s failed: %s", path, exc)
            return None
        return response if isinstance(response, dict) else None

    async def _resolve_current_username(
        self, environment: Environment, access_token: str
    ) -> str:
        try:
            me = await self._get(environment, access_token, "/community/self")
            username = read_loose_string(read_nested(me, "username")) or read_loose_string(
                read_nested(me, "user", "username")
            )
            if username:
                return username
        except Exception as exc:
            logger.debug("rest-client: /community/self failed: %s", exc)

        portal = await self._get(environment, access_token, "/portals/self")
        username = read_loose_string(
            read_nested(portal, "user", "username")
        ) or read_loose_string(read_nested(portal, "username"))
        if username:
            return username
        raise PortalError.from_status(
            500, "Unable to resolve ArcGIS username for API key search."
        )

    async def _fetch_online_detail(
        self,
        environment: Environment,
        access_token: str,
        credential_id: str,
        include_legacy: bool = True,
        validator: ResponseShapeValidator | None = None,
    ) -> Credential | None:
        """Merge item, registered-app, legacy and group-snippet payloads.

        Returns None if the item itself cannot be fetched. The other sources
        are best effort.
        """
        item_id = _segment(credential_id)
        try:
            item = await self._get(environment, access_token, f"/content/items/{item_id}")
        except Exception as exc:
            logger.debug("rest-client: item %s unavailable: %s", credential_id, exc)
            return None
        if validator is not None:
            validator.observe(ITEM_ENDPOINT, item)

        item_record = item if isinstance(item, dict) else {}
        owner = read_loose_string(item_record.get("owner"))

        async def registered_app() -> dict[str, Any] | None:
            if not owner:
                return None
            path = f"/content/users/{_segment(owner)}/items/{item_id}/registeredAppInfo"
            record = await self._get_record(environment, access_token, path)
            if record is not None and validator is not None:
                validator.observe(REGISTERED_APP_ENDPOINT, record)
            return record

        async def legacy_detail() -> dict[str, Any] | None:
            if not include_legacy:
                return None
            return await self._get_record(
                environment, access_token, f"{API_KEYS_ENDPOINT}/{item_id}"
            )

        async def groups_snippet() -> dict[str, Any] | None:
            groups = await self._get_record(
                environment, access_token, f"/content/items/{item_id}/groups"
            )
            snippet = read_groups_snippet(groups)
            return {"snippet": snippet} if snippet else None

        registered, legacy, snippet = await asyncio.gather(
            registered_app(), legacy_detail(), groups_snippet()
        )
        return normalize(merge_records(item_record, registered, legacy, snippet))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def fetch_credentials(
        self,
        environment: Environment,
        access_token: str,
        page_size: int | None = None,
    ) -> list[Credential]:
        """Every credential visible to the signed-in user, deduplicated by id."""
        size = page_size or self._page_size
        validator = ResponseShapeValidator()
        self._last_warnings = []

        try:
            if environment.is_cloud:
                try:
                    owner = await self._resolve_current_username(environment, access_token)
                    listed = await self._fetcher.fetch_search_listing(
                        environment, access_token, owner, size, validator
                    )
                    return await self.enrich_list(
                        environment, access_token, listed, validator
                    )
                except Exception as exc:
                    logger.info(
                        "rest-client: search listing failed for '%s', "
                        "falling back to %s: %s",
                        environment.id,
                        API_KEYS_ENDPOINT,
                        exc,
                    )

            return await self._fetcher.fetch_all(
                RequestTemplate(
                    path=API_KEYS_ENDPOINT,
                    environment=environment,
                    access_token=access_token,
                    validation_key=API_KEYS_ENDPOINT,
                ),
                size,
                validator,
            )
        except Exception as exc:
            raise RestClientError(map_rest_error(exc)) from exc
        finally:
            self._last_warnings = validator.warnings()
            for warning in self._last_warnings:
                logger.warning("rest-client: %s", warning)

    def last_validation_warnings(self) -> list[str]:
        """Warnings collected by the most recent ``fetch_credentials`` call."""
        return list(self._last_warnings)

    async def enrich_list(
        self,
        environment: Environment,
        access_token: str,
        credentials: list[Credential],
        validator: ResponseShapeValidator | None = None,
    ) -> list[Credential]:
        """Replace listed rows with their detail, a bounded batch at a time.

        A row whose detail fetch fails keeps its listed form.
        """
        if not credentials:
            return credentials

        async def enrich(credential: Credential) -> Credential:
            try:
                detail = await self._fetch_online_detail(
                    environment, access_token, credential.id, False, validator
                )
            except Exception as exc:
                logger.debug("rest-client: enrichment failed for %s: %s", credential.id, exc)
                return credential
            return detail or credential

        detail_by_id: dict[str, Credential] = {}
        step = self._enrichment_concurrency
        for start in range(0, len(credentials), step):
            batch = credentials[start : start + step]
            for resolved in await asyncio.gather(*(enrich(c) for c in batch)):
                detail_by_id[resolved.id] = resolved

        return [detail_by_id.get(c.id, c) for c in credentials]

    # ------------------------------------------------------------------
    # Detail
    # ------------------------------------------------------------------

    async def fetch_credential_detail(
        self, environment: Environment, access_token: str, credential_id: str
    ) -> Credential:
        try:
            if environment.is_cloud:
                detail = await self._fetch_online_detail(
                    environment, access_token, credential_id
                )
                if detail is not None:
                    return detail

            payload = await self._get(
                environment, access_token, f"{API_KEYS_ENDPOINT}/{_segment(credential_id)}"
            )
            credential = normalize(payload)
            if credential is None:
                raise PortalError.from_status(
                    500,
                    "ArcGIS response did not include a valid API key credential payload.",
                )
            return credential
        except Exception as exc:
            raise RestClientError(map_rest_error(exc)) from exc

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def detect_capabilities(
        self, environment: Environment, access_token: str
    ) -> Capabilities:
        return await self._detector.detect(environment, access_token)

    # ------------------------------------------------------------------
    # Key mutation
    # ------------------------------------------------------------------

    async def mutate(
        self,
        environment: Environment,
        access_token: str,
        credential_id: str,
        slot: SlotNumber,
        action: KeyMutationAction,
        expiration_days: int | float | None = None,
        capabilities: Capabilities | None = None,
    ) -> MutationResult:
        """Create, regenerate or revoke the key in one slot of a credential."""
        if slot not in (1, 2) or action not in MUTATION_ACTIONS:
            raise RestClientError(
                RestError(
                    code="INVALID_REQUEST",
                    message=f"Unsupported key mutation: slot {slot!r}, action {action!r}.",
                    http_status=400,
                )
            )
        if capabilities is not None and not capabilities.allows(action):
            raise unsupported_feature(
                capabilities.reason
                or f"This deployment does not support the '{action}' key operation."
            )

        request = KeyMutationRequest(
            environment=environment,
            access_token=access_token,
            credential_id=credential_id,
            slot=slot,
            action=action,
            expiration_days=expiration_days,
        )
        try:
            if environment.is_cloud:
                try:
                    return await self._primary_mutation.mutate(request)
                except Exception as exc:
                    logger.info(
                        "rest-client: primary %s of slot %d failed for %s, "
                        "using direct endpoint: %s",
                        action,
                        slot,
                        credential_id,
                        exc,
                    )
            return await self._fallback_mutation.mutate(request)
        except Exception as exc:
            raise RestClientError(map_rest_error(exc)) from exc

    async def create_api_key(
        self,
        environment: Environment,
        access_token: str,
        credential_id: str,
        slot: SlotNumber,
        expiration_days: int | float | None = None,
    ) -> MutationResult:
        return await self.mutate(
            environment, access_token, credential_id, slot, "create", expiration_days
        )

    async def regenerate_api_key(
        self,
        environment: Environment,
        access_token: str,
        credential_id: str,
        slot: SlotNumber,
        expiration_days: int | float | None = None,
    ) -> MutationResult:
        return await self.mutate(
            environment, access_token, credential_id, slot, "regenerate", expiration_days
        )

    async def revoke_api_key(
        self,
        environment: Environment,
        access_token: str,
        credential_id: str,
        slot: SlotNumber,
    ) -> MutationResult:
        return await self.mutate(environment, access_token, credential_id, slot, "revoke")

    # ------------------------------------------------------------------
    # Item metadata
    # ------------------------------------------------------------------

    async def update_item_metadata(
        self,
        environment: Environment,
        access_token: str,
        credential_id: str,
        title: str,
        snippet: str,
        tags: list[str],
    ) -> None:
        """Replace the title, snippet and tags of the item behind a credential."""
        item_id = _segment(credential_id)
        try:
            item = await self._get(environment, access_token, f"/content/items/{item_id}")
            owner = read_loose_string(read_nested(item, "owner"))
            if not owner:
                raise PortalError.from_status(
                    500, "ArcGIS item response did not include an owner for this credential."
                )

            response = await self._transport.request(
                RestRequest(
                    path=f"/content/users/{_segment(owner)}/items/{item_id}/update",
                    method="POST",
                    environment=environment,
                    access_token=access_token,
                    body={
                        "f": "json",
                        "title": title,
                        "snippet": snippet,
                        "tags": ",".join(tags),
                        "clearEmptyFields": True,
                    },
                )
            )
            if isinstance(response, dict) and response.get("success") is False:
                raise PortalError.from_status(
                    500, "ArcGIS did not confirm the item metadata update."
                )
        except Exception as exc:
            raise RestClientError(map_rest_error(exc)) from exc
        logger.info("rest-client: updated metadata of item %s", credential_id)

    # ------------------------------------------------------------------
    # Portal helpers
    # ------------------------------------------------------------------

    async def fetch_portal_base(self, environment: Environment, access_token: str) -> str:
        """Public portal home URL used to build item links. Never fails."""
        if environment.type == "enterprise":
            return (environment.portal_url or "").rstrip("/")

        portal = await self._get_record(environment, access_token, "/portals/self")
        if portal is not None:
            url_key = read_loose_string(portal.get("urlKey"))
            custom_base = read_loose_string(portal.get("customBaseUrl"))
            if url_key and custom_base:
                return f"https://{url_key}.{custom_base}"
            if url_key:
                return f"https://{url_key}.maps.arcgis.com"
        return DEFAULT_PORTAL_BASE

    async def fetch_user_tags(self, environment: Environment, access_token: str) -> list[str]:
        """Tags the signed-in user has applied to their items; empty on failure."""
        me = await self._get_record(environment, access_token, "/community/self")
        user_id = read_loose_string(me.get("id")) if me else None
        if not user_id:
            return []

        response = await self._get_record(
            environment, access_token, f"/community/users/{_segment(user_id)}/tags"
        )
        entries = response.get("tags") if response else None
        if not isinstance(entries, list):
            return []

        tags: list[str] = []
        for entry in entries:
            tag = read_loose_string(entry.get("tag") if isinstance(entry, dict) else entry)
            if tag:
                tags.append(tag)
        return tags
