"""ProtocolEnvelope codec for the UI <-> host message boundary.

Every message is ``{"type": str, "requestId"?: str, "payload": object}``
carried as a JSON string. The set of message tags is closed; a tag outside it
is rejected on decode so that a UI and host built from different releases fail
loudly instead of drifting apart.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from .models import Capabilities, Credential, Environment, MutationResult, RestError

HOST_MESSAGE_TYPES: frozenset[str] = frozenset(
    {
        "host/state",
        "host/credentials",
        "host/credential-detail",
        "host/key-action-result",
        "host/error",
    }
)

UI_MESSAGE_TYPES: frozenset[str] = frozenset(
    {
        "webview/initialize",
        "webview/select-environment",
        "webview/sign-in",
        "webview/sign-out",
        "webview/load-credentials",
        "webview/load-credential-detail",
        "webview/key-action",
        "webview/ack-error",
    }
)

MESSAGE_TYPES: frozenset[str] = HOST_MESSAGE_TYPES | UI_MESSAGE_TYPES


class ProtocolError(ValueError):
    """A raw message that is not a well-formed envelope."""


class ProtocolEnvelope(BaseModel):
    """One message crossing the boundary. ``request_id`` is opaque here."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str = Field(description="Message tag from the closed set")
    request_id: str | None = Field(
        default=None,
        alias="requestId",
        description="Caller-assigned correlation token, echoed in responses",
    )
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_ui_message(self) -> bool:
        return self.type in UI_MESSAGE_TYPES


def _reject_constant(name: str) -> Any:
    raise ProtocolError(f"Invalid protocol message: {name} is not valid JSON.")


def serialize(envelope: ProtocolEnvelope) -> str:
    """Encode ``envelope`` as JSON; an absent request id is omitted."""
    message: dict[str, Any] = {"type": envelope.type}
    if envelope.request_id is not None:
        message["requestId"] = envelope.request_id
    message["payload"] = envelope.payload
    try:
        return json.dumps(message, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Protocol payload is not JSON-serializable: {exc}") from exc


def deserialize(raw: str) -> ProtocolEnvelope:
    """Decode and validate ``raw``. Raises ProtocolError on any structural defect."""
    try:
        parsed = json.loads(raw, parse_constant=_reject_constant)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Invalid protocol message: {exc}") from exc
    except RecursionError as exc:
        raise ProtocolError("Invalid protocol message: nesting too deep.") from exc

    if not isinstance(parsed, dict):
        raise ProtocolError("Invalid protocol message: expected a JSON object.")

    message_type = parsed.get("type")
    if not isinstance(message_type, str):
        raise ProtocolError("Invalid protocol message: 'type' must be a string.")

    payload = parsed.get("payload")
    if not isinstance(payload, dict):
        raise ProtocolError("Invalid protocol message: 'payload' must be an object.")

    request_id = parsed.get("requestId")
    if "requestId" in parsed and not isinstance(request_id, str):
        raise ProtocolError("Invalid protocol message: 'requestId' must be a string.")

    if message_type not in MESSAGE_TYPES:
        raise ProtocolError(f"Unknown protocol message type: {message_type!r}")

    return ProtocolEnvelope(type=message_type, request_id=request_id, payload=payload)


# ---------------------------------------------------------------------------
# Host message builders
# ---------------------------------------------------------------------------


def state_message(
    environments: Iterable[Environment],
    active_environment_id: str | None,
    signed_in: bool,
    capabilities: Capabilities | None = None,
    request_id: str | None = None,
) -> ProtocolEnvelope:
    payload: dict[str, Any] = {
        "environments": [env.to_wire() for env in environments],
        "activeEnvironmentId": active_environment_id,
        "signedIn": signed_in,
    }
    if capabilities is not None:
        payload["capabilities"] = capabilities.to_wire()
    return ProtocolEnvelope(type="host/state", request_id=request_id, payload=payload)


def credentials_message(
    credentials: Iterable[Credential],
    warnings: list[str] | None = None,
    request_id: str | None = None,
) -> ProtocolEnvelope:
    payload: dict[str, Any] = {"credentials": [c.to_wire() for c in credentials]}
    if warnings:
        payload["warnings"] = list(warnings)
    return ProtocolEnvelope(
        type="host/credentials", request_id=request_id, payload=payload
    )


def credential_detail_message(
    credential: Credential, request_id: str | None = None
) -> ProtocolEnvelope:
    return ProtocolEnvelope(
        type="host/credential-detail",
        request_id=request_id,
        payload={"credential": credential.to_wire()},
    )


def key_action_result_message(
    result: MutationResult, request_id: str | None = None
) -> ProtocolEnvelope:
    return ProtocolEnvelope(
        type="host/key-action-result",
        request_id=request_id,
        payload={"result": result.to_wire()},
    )


def error_message(error: RestError, request_id: str | None = None) -> ProtocolEnvelope:
    return ProtocolEnvelope(
        type="host/error", request_id=request_id, payload=error.to_payload()
    )
