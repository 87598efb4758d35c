"""ResponseShapeValidator: advisory audit of the first response per endpoint.

The normalizer accepts loose payloads on purpose; this validator surfaces that
looseness as human-readable warnings instead of errors. It never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

SEARCH_ENDPOINT = "/search"
ITEM_ENDPOINT = "/content/items"
REGISTERED_APP_ENDPOINT = "/content/users/items/registeredAppInfo"
API_KEYS_ENDPOINT = "/portals/self/apiKeys"


@dataclass(frozen=True)
class EndpointRule:
    """Fields expected in the object found at ``object_path`` of a response."""

    endpoint: str
    object_path: tuple[str, ...]
    required_fields: tuple[str, ...]


VALIDATION_RULES: tuple[EndpointRule, ...] = (
    EndpointRule(
        endpoint=SEARCH_ENDPOINT,
        object_path=("results",),
        required_fields=(
            "id",
            "owner",
            "title",
            "type",
            "apiToken1ExpirationDate",
            "apiToken2ExpirationDate",
        ),
    ),
    EndpointRule(
        endpoint=ITEM_ENDPOINT,
        object_path=(),
        required_fields=(
            "id",
            "owner",
            "title",
            "apiToken1ExpirationDate",
            "apiToken2ExpirationDate",
        ),
    ),
    EndpointRule(
        endpoint=REGISTERED_APP_ENDPOINT,
        object_path=(),
        required_fields=(
            "itemId",
            "privileges",
            "httpReferrers",
            "apiToken1Active",
            "apiToken2Active",
        ),
    ),
    EndpointRule(
        endpoint=API_KEYS_ENDPOINT,
        object_path=("apiKeys",),
        required_fields=("itemId", "owner", "httpReferrers", "privileges"),
    ),
)


def pick_validation_object(
    response: Any, object_path: tuple[str, ...]
) -> dict[str, Any] | None:
    """Follow ``object_path``; a list lands on its first element."""
    current = response
    for segment in object_path:
        if not isinstance(current, dict):
            return None
        current = current.get(segment)

    if isinstance(current, list):
        current = current[0] if current else None
    return current if isinstance(current, dict) else None


class ResponseShapeValidator:
    """Collects missing-field warnings for one logical list call."""

    def __init__(self, rules: tuple[EndpointRule, ...] = VALIDATION_RULES) -> None:
        self._rules = {rule.endpoint: rule for rule in rules}
        self._seen: set[str] = set()
        self._warnings: dict[str, None] = {}

    def observe(self, endpoint: str, response: Any) -> None:
        """Validate ``response`` if it is the first one seen for ``endpoint``."""
        if endpoint in self._seen:
            return
        self._seen.add(endpoint)

        rule = self._rules.get(endpoint)
        if rule is None:
            return

        candidate = pick_validation_object(response, rule.object_path)
        if candidate is None:
            return

        for field in rule.required_fields:
            if field not in candidate:
                self._warnings[
                    f'Response validation warning: missing field "{field}" '
                    f"in first {endpoint} response."
                ] = None

    def warnings(self) -> list[str]:
        return list(self._warnings)
