"""Canonical data models shared by the REST client, the protocol and the host.

These models define the types that cross every boundary in the package:
- Credential / KeySlot: one normalized API-key-bearing item and its two key slots
- Environment: a configured ArcGIS deployment (online, location platform, enterprise)
- RestError: the closed error taxonomy surfaced to callers
- Capabilities, MutationResult, AuthToken: client operation results

Attributes are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

EnvironmentType = Literal["online", "location-platform", "enterprise"]
CLOUD_ENVIRONMENT_TYPES: frozenset[str] = frozenset({"online", "location-platform"})

RestErrorCode = Literal[
    "SESSION_EXPIRED",
    "PERMISSION_DENIED",
    "NETWORK_ERROR",
    "INVALID_REQUEST",
    "UNSUPPORTED_FEATURE",
    "UNKNOWN",
]

KeyMutationAction = Literal["create", "regenerate", "revoke"]
SlotNumber = Literal[1, 2]


class WireModel(BaseModel):
    """Frozen model with camelCase aliases for the JSON wire format."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump with wire aliases, omitting optionals that are unset."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Environment(WireModel):
    """A configured ArcGIS deployment the client talks to."""

    id: str = Field(..., min_length=1, description="Stable environment identifier")
    name: str = Field(..., description="Display name")
    type: EnvironmentType = Field(..., description="Deployment flavor")
    client_id: str = Field(..., description="OAuth client id used to sign in")
    portal_url: str | None = Field(
        default=None, description="Portal base URL (required for enterprise)"
    )

    @model_validator(mode="after")
    def _require_portal_for_enterprise(self) -> Environment:
        if self.type == "enterprise" and not (self.portal_url or "").strip():
            raise ValueError("Enterprise environments must include a portal URL.")
        return self

    @property
    def is_cloud(self) -> bool:
        return self.type in CLOUD_ENVIRONMENT_TYPES


class KeySlot(WireModel):
    """Status of one of the two key positions of a credential."""

    slot: SlotNumber
    exists: bool = False
    partial_id: str | None = None
    created: str | None = None
    expiration: str | None = None


class Credential(WireModel):
    """One API-key-bearing item, independent of the backend shape it came from."""

    id: str = Field(..., min_length=1)
    name: str
    snippet: str | None = None
    tags: list[str] = Field(default_factory=list)
    privileges: list[str] = Field(default_factory=list)
    created: str
    expiration: str
    referrers: list[str] = Field(default_factory=list)
    key1: KeySlot
    key2: KeySlot
    is_legacy: bool = False

    @model_validator(mode="after")
    def _check_slot_numbers(self) -> Credential:
        if self.key1.slot != 1 or self.key2.slot != 2:
            raise ValueError("key1 must hold slot 1 and key2 must hold slot 2")
        return self


class RestError(WireModel):
    """Classified failure of a REST operation.

    ``recoverable`` tells the UI whether a user action (sign in again, retry)
    can resolve the failure.
    """

    code: RestErrorCode
    message: str
    recoverable: bool = False
    http_status: int | None = None
    details: Any = None

    def to_payload(self) -> dict[str, Any]:
        """Convert to the ``host/error`` protocol payload."""
        return {
            "message": self.message,
            "code": self.code,
            "recoverable": self.recoverable,
        }


class Capabilities(WireModel):
    """Which operations a deployment supports."""

    can_list_credentials: bool
    can_view_credential_detail: bool
    can_create_api_key: bool
    can_regenerate_api_key: bool
    reason: str | None = None

    def allows(self, action: KeyMutationAction) -> bool:
        if action == "create":
            return self.can_create_api_key
        # Revocation runs on the same API generation as regeneration.
        return self.can_regenerate_api_key


class MutationResult(WireModel):
    """Outcome of a key create/regenerate/revoke call."""

    credential_id: str
    slot: SlotNumber
    action: KeyMutationAction
    key: str | None = None


class AuthToken(WireModel):
    """Access token issued by the (external) sign-in flow."""

    access_token: str
    expires_at: int = Field(..., description="Expiry as epoch milliseconds")
    token_type: Literal["Bearer"] = "Bearer"

    def is_valid(self, now_ms: int) -> bool:
        return self.expires_at > now_ms
