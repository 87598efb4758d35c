"""Pure list helpers: expiration buckets, filtering, sorting, referrer audit."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Literal

from .models import Credential, WireModel
from .normalizer import EPOCH, parse_date

SortField = Literal["name", "expiration", "created"]
SortDirection = Literal["asc", "desc"]

_SECONDS_PER_DAY = 86_400


class ExpirationCategory(str, Enum):
    """How close a credential is to expiring."""

    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    OK = "ok"


class ReferrerReason(str, Enum):
    NONE = "none"
    WILDCARD_ONLY = "wildcard-only"
    PERMISSIVE_PATTERN = "permissive-pattern"


class ReferrerAnnotation(WireModel):
    value: str
    warning: bool
    reason: ReferrerReason


def categorize_expiration(
    expiration_iso: str, now: datetime | None = None
) -> ExpirationCategory:
    """Bucket by whole days remaining: <0 expired, <7 critical, <=30 warning.

    Raises ValueError when ``expiration_iso`` is not a parseable timestamp.
    """
    expiration = parse_date(expiration_iso) if isinstance(expiration_iso, str) else None
    if expiration is None:
        raise ValueError(f"Invalid expiration date: {expiration_iso!r}")

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    diff_days = math.floor((expiration - now).total_seconds() / _SECONDS_PER_DAY)

    if diff_days < 0:
        return ExpirationCategory.EXPIRED
    if diff_days < 7:
        return ExpirationCategory.CRITICAL
    if diff_days <= 30:
        return ExpirationCategory.WARNING
    return ExpirationCategory.OK


def filter_credentials(
    credentials: Iterable[Credential],
    search: str | None = None,
    tag: str | None = None,
    privilege: str | None = None,
    expiration: ExpirationCategory | str | None = None,
    now: datetime | None = None,
) -> list[Credential]:
    """Keep credentials matching every filter given. Search is a name substring."""
    needle = (search or "").strip().lower()
    category = ExpirationCategory(expiration) if expiration else None

    def matches(credential: Credential) -> bool:
        if needle and needle not in credential.name.lower():
            return False
        if tag and tag not in credential.tags:
            return False
        if privilege and privilege not in credential.privileges:
            return False
        if category is not None:
            return categorize_expiration(credential.expiration, now) is category
        return True

    return [credential for credential in credentials if matches(credential)]


def _timestamp(value: str) -> datetime:
    return parse_date(value) or EPOCH


_SORT_KEYS = {
    "name": lambda c: c.name.casefold(),
    "expiration": lambda c: _timestamp(c.expiration),
    "created": lambda c: _timestamp(c.created),
}


def sort_credentials(
    credentials: Iterable[Credential],
    field: SortField = "name",
    direction: SortDirection = "asc",
) -> list[Credential]:
    """Return a new stably sorted list."""
    return sorted(credentials, key=_SORT_KEYS[field], reverse=direction == "desc")


def analyze_referrers(referrers: Iterable[str]) -> list[ReferrerAnnotation]:
    """Flag referrer patterns that leave a key usable from too many origins."""
    annotations: list[ReferrerAnnotation] = []
    for value in referrers:
        trimmed = value.strip()
        if trimmed == "*":
            reason = ReferrerReason.WILDCARD_ONLY
        elif "*" in trimmed or trimmed.startswith("http://"):
            reason = ReferrerReason.PERMISSIVE_PATTERN
        else:
            reason = ReferrerReason.NONE
        annotations.append(
            ReferrerAnnotation(
                value=value, warning=reason is not ReferrerReason.NONE, reason=reason
            )
        )
    return annotations
