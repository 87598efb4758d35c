"""HostDispatcher: routes UI request envelopes to the REST client.

``handle`` takes one serialized ``webview/*`` message and always returns one
serialized ``host/*`` message. Failures never escape as exceptions: malformed
input, missing sessions and client errors all come back as ``host/error``.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from arcgis_keys_common.errors import map_rest_error
from arcgis_keys_common.logic import sort_credentials
from arcgis_keys_common.models import Environment, RestError
from arcgis_keys_common.protocol import (
    ProtocolEnvelope,
    ProtocolError,
    credential_detail_message,
    credentials_message,
    deserialize,
    error_message,
    key_action_result_message,
    serialize,
    state_message,
)
from arcgis_keys_common.result import Err, capture
from arcgis_keys_common.schemas import (
    UI_PAYLOAD_SCHEMAS,
    AckErrorPayload,
    CredentialDetailPayload,
    EmptyPayload,
    KeyActionPayload,
    LoadCredentialsPayload,
    SelectEnvironmentPayload,
)

from .services import HostServices

logger = logging.getLogger(__name__)

PushCallback = Callable[[str], Awaitable[None]]
Handler = Callable[[Any], Awaitable[ProtocolEnvelope]]

NO_ENVIRONMENT_MESSAGE = "No environment configured. Add one to continue."
SESSION_EXPIRED_MESSAGE = "Session expired. Sign in again to continue."


class _HostFailure(Exception):
    """Short-circuits a handler with an error envelope."""

    def __init__(self, error: RestError) -> None:
        self.error = error
        super().__init__(error.message)


def _invalid_request(message: str) -> RestError:
    return RestError(code="INVALID_REQUEST", message=message, recoverable=False)


def _parse_payload(envelope: ProtocolEnvelope) -> Any:
    try:
        return UI_PAYLOAD_SCHEMAS[envelope.type].model_validate(envelope.payload)
    except ValidationError as exc:
        raise _HostFailure(
            _invalid_request(f"Invalid {envelope.type} payload: {exc.error_count()} error(s).")
        ) from exc


class HostDispatcher:
    """Serves UI requests against one HostServices instance.

    Args:
        services: Shared services, constructed once by the caller.
        push: Optional coroutine that receives a serialized ``host/state``
            after every state-changing request. Its failures are ignored.
    """

    def __init__(self, services: HostServices, push: PushCallback | None = None) -> None:
        self._services = services
        self._push = push
        self._handlers: dict[str, Handler] = {
            "webview/initialize": self._on_state,
            "webview/ack-error": self._on_ack_error,
            "webview/select-environment": self._on_select_environment,
            "webview/sign-in": self._on_sign_in,
            "webview/sign-out": self._on_sign_out,
            "webview/load-credentials": self._on_load_credentials,
            "webview/load-credential-detail": self._on_load_credential_detail,
            "webview/key-action": self._on_key_action,
        }

    async def handle(self, raw: str) -> str:
        try:
            envelope = deserialize(raw)
        except ProtocolError as exc:
            logger.warning("host: rejected message: %s", exc)
            return serialize(error_message(_invalid_request(str(exc))))

        response = await self.dispatch(envelope)
        return serialize(response.model_copy(update={"request_id": envelope.request_id}))

    async def dispatch(self, envelope: ProtocolEnvelope) -> ProtocolEnvelope:
        handler = self._handlers.get(envelope.type)
        if handler is None or not envelope.is_ui_message:
            return error_message(
                _invalid_request(f"Unsupported request message: {envelope.type}")
            )

        try:
            return await handler(_parse_payload(envelope))
        except _HostFailure as exc:
            return error_message(exc.error)
        except Exception as exc:
            logger.warning("host: %s failed: %s", envelope.type, exc)
            return error_message(map_rest_error(exc))

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _require_environment(self) -> Environment:
        environment = self._services.active_environment()
        if environment is None:
            raise _HostFailure(_invalid_request(NO_ENVIRONMENT_MESSAGE))
        return environment

    async def _require_token(self, environment: Environment) -> str:
        token = await self._services.valid_access_token(environment)
        if token is None:
            raise _HostFailure(
                RestError(
                    code="SESSION_EXPIRED",
                    message=SESSION_EXPIRED_MESSAGE,
                    recoverable=True,
                )
            )
        return token

    async def build_state(self) -> ProtocolEnvelope:
        services = self._services
        environment = services.active_environment()
        token = await services.valid_access_token(environment) if environment else None

        capabilities = None
        if environment is not None and token is not None:
            capabilities = await services.capabilities_for(environment, token)

        return state_message(
            services.manager.ordered_environments(),
            environment.id if environment else None,
            token is not None,
            capabilities,
        )

    async def _push_state(self) -> None:
        if self._push is None:
            return
        try:
            await self._push(serialize(await self.build_state()))
        except Exception as exc:
            logger.debug("host: state push failed: %s", exc)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_state(self, request: EmptyPayload) -> ProtocolEnvelope:
        return await self.build_state()

    async def _on_ack_error(self, request: AckErrorPayload) -> ProtocolEnvelope:
        logger.debug("host: error %s acknowledged", request.code or "(no code)")
        return await self.build_state()

    async def _on_select_environment(
        self, request: SelectEnvironmentPayload
    ) -> ProtocolEnvelope:
        try:
            await self._services.manager.set_active_environment(request.environment_id)
        except ValueError as exc:
            raise _HostFailure(_invalid_request(str(exc))) from exc
        await self._push_state()
        return await self.build_state()

    async def _on_sign_in(self, request: EmptyPayload) -> ProtocolEnvelope:
        services = self._services
        environment = self._require_environment()
        token = await services.auth.sign_in(environment)
        await services.storage.set_token(environment.id, token)
        await services.manager.set_active_environment(environment.id)
        services.capabilities.pop(environment.id, None)
        logger.info("host: signed in to '%s'", environment.id)
        await self._push_state()
        return await self.build_state()

    async def _on_sign_out(self, request: EmptyPayload) -> ProtocolEnvelope:
        services = self._services
        environment = self._require_environment()
        await services.auth.sign_out(environment)
        await services.storage.clear_token(environment.id)
        services.capabilities.pop(environment.id, None)
        logger.info("host: signed out of '%s'", environment.id)
        await self._push_state()
        return await self.build_state()

    async def _on_load_credentials(
        self, request: LoadCredentialsPayload
    ) -> ProtocolEnvelope:
        environment = self._require_environment()
        token = await self._require_token(environment)
        client = self._services.rest_client

        result = await capture(client.fetch_credentials(environment, token))
        if isinstance(result, Err):
            return error_message(result.error)

        return credentials_message(
            sort_credentials(result.value, field="created", direction="desc"),
            warnings=client.last_validation_warnings(),
        )

    async def _on_load_credential_detail(
        self, request: CredentialDetailPayload
    ) -> ProtocolEnvelope:
        environment = self._require_environment()
        token = await self._require_token(environment)

        result = await capture(
            self._services.rest_client.fetch_credential_detail(
                environment, token, request.credential_id
            )
        )
        if isinstance(result, Err):
            return error_message(result.error)
        return credential_detail_message(result.value)

    async def _on_key_action(self, request: KeyActionPayload) -> ProtocolEnvelope:
        environment = self._require_environment()
        token = await self._require_token(environment)
        services = self._services

        capabilities = await services.capabilities_for(environment, token)
        result = await capture(
            services.rest_client.mutate(
                environment,
                token,
                request.credential_id,
                request.slot,
                request.action,
                expiration_days=request.expiration_days,
                capabilities=capabilities,
            )
        )
        if isinstance(result, Err):
            return error_message(result.error)
        return key_action_result_message(result.value)
