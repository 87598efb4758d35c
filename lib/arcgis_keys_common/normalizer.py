"""CredentialNormalizer: heterogeneous portal JSON -> canonical Credential.

The portal describes the same API key in at least four structurally
different ways depending on product tier, API generation and endpoint. Each
logical attribute is therefore resolved through an ordered tuple of
candidate field names; the first candidate that yields a usable value wins.
A record that no identity candidate resolves is rejected (``None``) and the
caller skips it.

All date-like values may arrive as epoch milliseconds or ISO-8601 strings and
are emitted as ``YYYY-MM-DDTHH:MM:SS.mmmZ``. Unparseable dates become "now"
instead of failing the record.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from .models import Credential, KeySlot

NON_EXPIRING_DATE_ISO = "9999-12-31T00:00:00.000Z"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

WRAPPER_KEYS: tuple[str, ...] = ("credential", "apiKey", "item", "developerCredential")
ID_FIELDS: tuple[str, ...] = ("id", "credentialId", "itemId", "clientId", "name", "title")
NAME_FIELDS: tuple[str, ...] = ("name", "title")
CREATED_FIELDS: tuple[str, ...] = ("created", "createdAt", "creationDate", "lastModified")
EXPIRATION_FIELDS: tuple[str, ...] = ("expiration", "expires", "expiresAt", "expiry")
TAG_FIELDS: tuple[str, ...] = ("tags",)
PRIVILEGE_FIELDS: tuple[str, ...] = ("privileges", "scopes")
REFERRER_FIELDS: tuple[str, ...] = (
    "referrers",
    "httpReferrers",
    "allowedReferrers",
    "referers",
)
CLIENT_ID_FIELDS: tuple[str, ...] = ("client_id", "clientId", "clientID", "clientid")

# Searched for a client id nested inside vendor-specific sub-objects.
_CLIENT_ID_SEARCH_DEPTH = 3


# ---------------------------------------------------------------------------
# Loose readers
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite(value: int | float) -> bool:
    # JSON integers are unbounded; past the float range they count as infinite.
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def read_loose_string(value: Any) -> str | None:
    """Trimmed non-empty string, or a finite number rendered as a string."""
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    if _is_number(value) and _is_finite(value):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    return None


def read_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def read_date_like(value: Any) -> int | float | str | None:
    if isinstance(value, str) or _is_number(value):
        return value
    return None


def read_nested(root: Any, *path: str) -> Any:
    current = root
    for segment in path:
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


def to_string_list(value: Any) -> list[str] | None:
    """Trimmed, non-empty string entries of a list; None if not a list."""
    if not isinstance(value, list):
        return None
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def read_positive_timestamp(value: Any) -> float | None:
    date_like = read_date_like(value)
    if date_like is None:
        return None
    if isinstance(date_like, str):
        try:
            parsed = float(date_like) if date_like.strip() else 0.0
        except ValueError:
            return None
    elif not _is_finite(date_like):
        return None
    else:
        parsed = float(date_like)
    if not math.isfinite(parsed) or parsed <= 0:
        return None
    return parsed


def _first(values: Iterable[Any]) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _first_field(source: dict[str, Any], fields: tuple[str, ...], reader) -> Any:
    return _first(reader(source.get(name)) for name in fields)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso(moment: datetime) -> str:
    m = moment.astimezone(timezone.utc)
    return (
        f"{m.year:04d}-{m.month:02d}-{m.day:02d}"
        f"T{m.hour:02d}:{m.minute:02d}:{m.second:02d}.{m.microsecond // 1000:03d}Z"
    )


def parse_date(value: int | float | str) -> datetime | None:
    """Parse to an aware UTC datetime; None when unparseable or out of range."""
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        try:
            return parsed.astimezone(timezone.utc)
        except OverflowError:
            return None

    if not _is_finite(value):
        return None
    try:
        return EPOCH + timedelta(milliseconds=value)
    except OverflowError:
        return None


def to_iso(value: int | float | str) -> str:
    """Epoch milliseconds or ISO string -> ISO-8601; unparseable -> now."""
    parsed = parse_date(value)
    return format_iso(parsed if parsed is not None else _now())


def to_optional_iso(value: int | float | str | None) -> str | None:
    if value is None:
        return None
    return to_iso(value)


# ---------------------------------------------------------------------------
# Record-level resolution
# ---------------------------------------------------------------------------


def pick_source_record(record: dict[str, Any]) -> dict[str, Any]:
    """Unwrap one level of a known wrapper key, if present."""
    for key in WRAPPER_KEYS:
        nested = record.get(key)
        if isinstance(nested, dict):
            return nested
    return record


def is_legacy_credential(source: dict[str, Any]) -> bool:
    type_value = read_loose_string(source.get("type"))
    if type_value is not None and type_value.lower() == "api key":
        return True

    keywords = [k.lower() for k in to_string_list(source.get("typeKeywords")) or []]
    return "api key" in keywords and "apitoken" not in keywords


def slot_expiration_floor(source: dict[str, Any]) -> float | None:
    """Soonest positive per-slot expiration, bounding the credential's window."""
    candidates = [
        read_positive_timestamp(source.get("apiToken1ExpirationDate")),
        read_positive_timestamp(source.get("apiToken2ExpirationDate")),
    ]
    present = [value for value in candidates if value is not None]
    return min(present) if present else None


def slot_exists(source: dict[str, Any], slot: int) -> bool:
    """Short-circuit fallback over the five existence signals for one slot.

    A positive ``apiTokenNExpirationDate`` counts as existence even without an
    explicit active flag. This is an approximation: a revoked key whose
    expiration was never cleared still reports as existing.
    """
    signals = (
        read_bool(source.get(f"key{slot}Exists")),
        read_bool(read_nested(source, f"key{slot}", "exists")),
        read_bool(source.get(f"apiToken{slot}Active")),
        True
        if read_positive_timestamp(source.get(f"apiToken{slot}ExpirationDate"))
        else None,
    )
    return bool(_first(signals))


def _find_client_id(value: Any, depth: int) -> str | None:
    if not isinstance(value, dict) or depth > _CLIENT_ID_SEARCH_DEPTH:
        return None
    for key, nested in value.items():
        if key.replace("_", "").replace("-", "").lower() != "clientid":
            continue
        client_id = read_loose_string(nested)
        if client_id:
            return client_id
    for nested in value.values():
        client_id = _find_client_id(nested, depth + 1)
        if client_id:
            return client_id
    return None


def read_client_id(source: dict[str, Any]) -> str | None:
    direct = _first_field(source, CLIENT_ID_FIELDS, read_loose_string)
    return direct or _find_client_id(source, 0)


def _partial_id(
    slot: int, record: dict[str, Any], source: dict[str, Any]
) -> str | None:
    explicit = read_loose_string(read_nested(source, f"key{slot}", "partialId"))
    if explicit:
        return explicit
    client_id = read_client_id(source) or read_client_id(record)
    if not client_id or len(client_id) < 8:
        return None
    return f"AT{slot}_{client_id[-8:]}"


def _key_slot(slot: int, record: dict[str, Any], source: dict[str, Any]) -> KeySlot:
    exists = slot_exists(source, slot)
    created = _first(
        (
            read_date_like(read_nested(source, f"key{slot}", "created")),
            read_date_like(source.get(f"apiToken{slot}CreatedDate")),
        )
    )
    expiration = _first(
        (
            read_date_like(read_nested(source, f"key{slot}", "expiration")),
            read_positive_timestamp(source.get(f"apiToken{slot}ExpirationDate")),
        )
    )
    return KeySlot(
        slot=slot,
        exists=exists,
        partial_id=_partial_id(slot, record, source) if exists else None,
        created=to_optional_iso(created),
        expiration=to_optional_iso(expiration),
    )


def _bare_identifier(identifier: str) -> Credential:
    zero = format_iso(EPOCH)
    return Credential(
        id=identifier,
        name=identifier,
        created=zero,
        expiration=zero,
        key1=KeySlot(slot=1),
        key2=KeySlot(slot=2),
    )


def normalize(raw: Any) -> Credential | None:
    """Convert any known portal shape into a Credential, or None if unidentifiable."""
    if isinstance(raw, str) or _is_number(raw):
        identifier = read_loose_string(raw)
        return _bare_identifier(identifier) if identifier else None

    if not isinstance(raw, dict):
        return None

    source = pick_source_record(raw)
    identifier = _first_field(source, ID_FIELDS, read_loose_string)
    if not identifier:
        return None

    is_legacy = is_legacy_credential(source)
    created_value = _first_field(source, CREATED_FIELDS, read_date_like)
    created = to_iso(created_value if created_value is not None else 0)
    if is_legacy:
        expiration = NON_EXPIRING_DATE_ISO
    else:
        expiration_value = _first(
            (
                _first_field(source, EXPIRATION_FIELDS, read_date_like),
                slot_expiration_floor(source),
            )
        )
        expiration = (
            to_iso(expiration_value)
            if expiration_value is not None
            else format_iso(_now())
        )

    return Credential(
        id=identifier,
        name=_first_field(source, NAME_FIELDS, read_loose_string) or identifier,
        snippet=read_loose_string(source.get("snippet")),
        tags=_first_field(source, TAG_FIELDS, to_string_list) or [],
        privileges=_first_field(source, PRIVILEGE_FIELDS, to_string_list) or [],
        created=created,
        expiration=expiration,
        referrers=_first_field(source, REFERRER_FIELDS, to_string_list) or [],
        key1=_key_slot(1, raw, source),
        key2=_key_slot(2, raw, source),
        is_legacy=is_legacy,
    )


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def dedupe_credentials(credentials: Iterable[Credential]) -> list[Credential]:
    """Keep one credential per id; the last occurrence wins."""
    by_id: dict[str, Credential] = {}
    for credential in credentials:
        by_id[credential.id] = credential
    return list(by_id.values())


def _merge_lists(existing: list[Any], incoming: list[Any]) -> list[Any]:
    if not incoming:
        return existing
    if not existing:
        return incoming
    if all(isinstance(v, str) for v in existing) and all(
        isinstance(v, str) for v in incoming
    ):
        return list(dict.fromkeys([*existing, *incoming]))
    return incoming


def merge_records(*records: dict[str, Any] | None) -> dict[str, Any]:
    """Field-by-field merge where later records win, except string lists union."""
    merged: dict[str, Any] = {}
    for record in records:
        if not record:
            continue
        for key, value in record.items():
            if value is None:
                continue
            existing = merged.get(key)
            if isinstance(existing, list) and isinstance(value, list):
                merged[key] = _merge_lists(existing, value)
            else:
                merged[key] = value
    return merged
