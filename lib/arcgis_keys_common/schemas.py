"""Payload schemas for the UI -> host request messages.

Each model validates the ``payload`` object of one ``webview/*`` message
before the host acts on it. Unknown payload keys are ignored.
"""

from __future__ import annotations

from pydantic import Field

from .models import KeyMutationAction, SlotNumber, WireModel


class EmptyPayload(WireModel):
    """``webview/initialize``, ``webview/sign-in``, ``webview/sign-out``."""


class SelectEnvironmentPayload(WireModel):
    environment_id: str = Field(..., min_length=1, description="Environment to activate")


class LoadCredentialsPayload(WireModel):
    refresh: bool = Field(
        default=False, description="Reload request; every listing is fetched from the portal"
    )


class CredentialDetailPayload(WireModel):
    credential_id: str = Field(..., min_length=1, description="Credential to load")


class KeyActionPayload(WireModel):
    credential_id: str = Field(..., min_length=1, description="Credential to mutate")
    slot: SlotNumber = Field(..., description="Key slot, 1 or 2")
    action: KeyMutationAction = Field(..., description="create, regenerate or revoke")
    expiration_days: float | None = Field(
        default=None, gt=0, description="Days until the new key expires"
    )


class AckErrorPayload(WireModel):
    code: str | None = Field(default=None, description="Code of the dismissed error")


UI_PAYLOAD_SCHEMAS: dict[str, type[WireModel]] = {
    "webview/initialize": EmptyPayload,
    "webview/select-environment": SelectEnvironmentPayload,
    "webview/sign-in": EmptyPayload,
    "webview/sign-out": EmptyPayload,
    "webview/load-credentials": LoadCredentialsPayload,
    "webview/load-credential-detail": CredentialDetailPayload,
    "webview/key-action": KeyActionPayload,
    "webview/ack-error": AckErrorPayload,
}
