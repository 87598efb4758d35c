"""Tests for HostDispatcher: envelope handling and request routing."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import pytest

from arcgis_keys_common.adapters import InMemoryStorage
from arcgis_keys_common.errors import PortalError
from arcgis_keys_common.models import AuthToken, Environment
from arcgis_keys_common.transport import RestRequest
from arcgis_keys_host import HostDispatcher, create_services

ENTERPRISE = Environment(
    id="ent",
    name="Enterprise",
    type="enterprise",
    client_id="cid",
    portal_url="https://gis.example.com/portal",
)
ONLINE = Environment(id="online", name="Online", type="online", client_id="cid")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def _future_ms(hours: int = 1) -> int:
    return int(time.time() * 1000) + hours * 3_600_000


class FakeAuth:
    """AuthAdapter that hands out a fixed token."""

    def __init__(self, expires_at: int | None = None) -> None:
        self.expires_at = expires_at
        self.signed_out: list[str] = []

    async def sign_in(self, environment: Environment) -> AuthToken:
        return AuthToken(
            access_token=f"tok-{environment.id}",
            expires_at=self.expires_at or _future_ms(),
        )

    async def sign_out(self, environment: Environment) -> None:
        self.signed_out.append(environment.id)


class FakePortal:
    """RestTransport answering from a path table; records every call."""

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = {"/portals/self": {"currentVersion": "11.3"}}
        self.routes.update(routes or {})
        self.calls: list[RestRequest] = []

    async def request(self, request: RestRequest) -> Any:
        self.calls.append(request)
        if request.path not in self.routes:
            raise PortalError.from_status(404, f"No route for {request.path}")
        response = self.routes[request.path]
        if isinstance(response, Exception):
            raise response
        return response


def _setup(
    environments=(ENTERPRISE,),
    routes: dict[str, Any] | None = None,
    token: AuthToken | None = None,
    push=None,
):
    storage = InMemoryStorage(list(environments))
    if token is not None:
        asyncio.run(storage.set_token(environments[0].id, token))
    portal = FakePortal(routes)
    services = asyncio.run(create_services(storage, FakeAuth(), transport=portal))
    return HostDispatcher(services, push=push), services, portal


def _send(dispatcher: HostDispatcher, message: dict) -> dict:
    return json.loads(asyncio.run(dispatcher.handle(json.dumps(message))))


def _valid_token() -> AuthToken:
    return AuthToken(access_token="tok", expires_at=_future_ms())


# ---------------------------------------------------------------------------
# Envelope handling
# ---------------------------------------------------------------------------


class TestEnvelope:
    def test_request_id_is_echoed(self):
        dispatcher, _, _ = _setup()
        response = _send(
            dispatcher, {"type": "webview/initialize", "requestId": "r-1", "payload": {}}
        )
        assert response["type"] == "host/state"
        assert response["requestId"] == "r-1"

    def test_no_request_id_is_omitted(self):
        dispatcher, _, _ = _setup()
        response = _send(dispatcher, {"type": "webview/initialize", "payload": {}})
        assert "requestId" not in response

    def test_malformed_json(self):
        dispatcher, _, _ = _setup()
        response = json.loads(asyncio.run(dispatcher.handle("{not json")))
        assert response["type"] == "host/error"
        assert response["payload"]["code"] == "INVALID_REQUEST"
        assert "requestId" not in response

    def test_deeply_nested_input(self):
        dispatcher, _, _ = _setup()
        raw = "[" * 100_000 + "]" * 100_000
        response = json.loads(asyncio.run(dispatcher.handle(raw)))
        assert response["type"] == "host/error"
        assert response["payload"]["code"] == "INVALID_REQUEST"

    def test_unknown_tag(self):
        dispatcher, _, _ = _setup()
        response = _send(dispatcher, {"type": "webview/bogus", "payload": {}})
        assert response["payload"]["code"] == "INVALID_REQUEST"

    def test_host_tag_is_not_a_request(self):
        dispatcher, _, _ = _setup()
        response = _send(
            dispatcher, {"type": "host/state", "requestId": "r", "payload": {}}
        )
        assert response["type"] == "host/error"
        assert "Unsupported request message" in response["payload"]["message"]
        assert response["requestId"] == "r"

    @pytest.mark.parametrize(
        "message",
        [
            {"type": "webview/ack-error", "payload": {"code": 5}},
            {"type": "webview/select-environment", "payload": {}},
            {"type": "webview/load-credentials", "payload": {"refresh": [1]}},
            {"type": "webview/load-credential-detail", "payload": {"credentialId": ""}},
        ],
    )
    def test_every_request_payload_is_validated(self, message):
        dispatcher, _, portal = _setup(token=_valid_token())
        response = _send(dispatcher, message)
        assert response["type"] == "host/error"
        assert response["payload"]["code"] == "INVALID_REQUEST"
        assert portal.calls == []

    def test_ack_error_returns_state(self):
        dispatcher, _, _ = _setup()
        response = _send(
            dispatcher, {"type": "webview/ack-error", "payload": {"code": "UNKNOWN"}}
        )
        assert response["type"] == "host/state"

    def test_invalid_payload(self):
        dispatcher, _, _ = _setup(token=_valid_token())
        response = _send(
            dispatcher,
            {"type": "webview/key-action", "payload": {"credentialId": "c", "slot": 5}},
        )
        assert response["payload"]["code"] == "INVALID_REQUEST"
        assert response["payload"]["recoverable"] is False


# ---------------------------------------------------------------------------
# State and session
# ---------------------------------------------------------------------------


class TestState:
    def test_initialize_signed_out(self):
        dispatcher, _, _ = _setup()
        payload = _send(dispatcher, {"type": "webview/initialize", "payload": {}})["payload"]
        assert payload["signedIn"] is False
        assert payload["activeEnvironmentId"] == "ent"
        assert [e["id"] for e in payload["environments"]] == ["ent"]
        assert "capabilities" not in payload

    def test_environments_in_group_order(self):
        dispatcher, _, _ = _setup(environments=(ENTERPRISE, ONLINE))
        payload = _send(dispatcher, {"type": "webview/initialize", "payload": {}})["payload"]
        assert [e["id"] for e in payload["environments"]] == ["online", "ent"]

    def test_signed_in_includes_capabilities(self):
        dispatcher, _, _ = _setup(token=_valid_token())
        payload = _send(dispatcher, {"type": "webview/initialize", "payload": {}})["payload"]
        assert payload["signedIn"] is True
        assert payload["capabilities"]["canCreateApiKey"] is True

    def test_select_unknown_environment(self):
        dispatcher, _, _ = _setup()
        response = _send(
            dispatcher,
            {"type": "webview/select-environment", "payload": {"environmentId": "nope"}},
        )
        assert response["payload"]["code"] == "INVALID_REQUEST"

    def test_select_environment(self):
        dispatcher, _, _ = _setup(environments=(ENTERPRISE, ONLINE))
        response = _send(
            dispatcher,
            {"type": "webview/select-environment", "payload": {"environmentId": "ent"}},
        )
        assert response["payload"]["activeEnvironmentId"] == "ent"

    def test_sign_in_and_out(self):
        dispatcher, services, _ = _setup()
        signed_in = _send(dispatcher, {"type": "webview/sign-in", "payload": {}})
        assert signed_in["payload"]["signedIn"] is True
        assert signed_in["payload"]["activeEnvironmentId"] == "ent"
        assert asyncio.run(services.storage.get_token("ent")).access_token == "tok-ent"

        signed_out = _send(dispatcher, {"type": "webview/sign-out", "payload": {}})
        assert signed_out["payload"]["signedIn"] is False
        assert services.auth.signed_out == ["ent"]
        assert asyncio.run(services.storage.get_token("ent")) is None

    def test_sign_in_without_environment(self):
        dispatcher, _, _ = _setup(environments=())
        response = _send(dispatcher, {"type": "webview/sign-in", "payload": {}})
        assert response["payload"]["code"] == "INVALID_REQUEST"
        assert "No environment configured" in response["payload"]["message"]


class TestPush:
    def test_state_pushed_after_sign_in(self):
        pushed: list[str] = []

        async def push(message: str) -> None:
            pushed.append(message)

        dispatcher, _, _ = _setup(push=push)
        _send(dispatcher, {"type": "webview/sign-in", "payload": {}})

        assert len(pushed) == 1
        message = json.loads(pushed[0])
        assert message["type"] == "host/state"
        assert message["payload"]["signedIn"] is True

    def test_push_failure_is_ignored(self):
        async def push(message: str) -> None:
            raise RuntimeError("webview gone")

        dispatcher, _, _ = _setup(push=push)
        response = _send(dispatcher, {"type": "webview/sign-in", "payload": {}})
        assert response["type"] == "host/state"

    def test_no_push_for_reads(self):
        pushed: list[str] = []

        async def push(message: str) -> None:
            pushed.append(message)

        dispatcher, _, _ = _setup(push=push)
        _send(dispatcher, {"type": "webview/initialize", "payload": {}})
        assert pushed == []


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class TestLoadCredentials:
    def test_requires_session(self):
        dispatcher, _, _ = _setup()
        response = _send(dispatcher, {"type": "webview/load-credentials", "payload": {}})
        assert response["payload"]["code"] == "SESSION_EXPIRED"
        assert response["payload"]["recoverable"] is True

    def test_expired_token(self):
        expired = AuthToken(access_token="old", expires_at=1)
        dispatcher, _, portal = _setup(token=expired)
        response = _send(dispatcher, {"type": "webview/load-credentials", "payload": {}})
        assert response["payload"]["code"] == "SESSION_EXPIRED"
        assert portal.calls == []

    def test_sorted_newest_first(self):
        listing = {
            "apiKeys": [
                {"id": "old", "created": 1_600_000_000_000},
                {"id": "new", "created": 1_700_000_000_000},
            ]
        }
        dispatcher, _, _ = _setup(
            token=_valid_token(), routes={"/portals/self/apiKeys": listing}
        )
        response = _send(
            dispatcher,
            {"type": "webview/load-credentials", "requestId": "r", "payload": {}},
        )
        assert response["type"] == "host/credentials"
        assert [c["id"] for c in response["payload"]["credentials"]] == ["new", "old"]
        assert response["requestId"] == "r"

    def test_portal_permission_error(self):
        dispatcher, _, _ = _setup(
            token=_valid_token(),
            routes={"/portals/self/apiKeys": PortalError.from_status(403, "nope")},
        )
        response = _send(dispatcher, {"type": "webview/load-credentials", "payload": {}})
        assert response["type"] == "host/error"
        assert response["payload"]["code"] == "PERMISSION_DENIED"


class TestCredentialDetail:
    def test_detail(self):
        dispatcher, _, portal = _setup(
            token=_valid_token(),
            routes={"/portals/self/apiKeys/c1": {"id": "c1", "name": "Key one"}},
        )
        response = _send(
            dispatcher,
            {"type": "webview/load-credential-detail", "payload": {"credentialId": "c1"}},
        )
        assert response["type"] == "host/credential-detail"
        assert response["payload"]["credential"]["name"] == "Key one"

    def test_missing_credential_id(self):
        dispatcher, _, _ = _setup(token=_valid_token())
        response = _send(
            dispatcher, {"type": "webview/load-credential-detail", "payload": {}}
        )
        assert response["payload"]["code"] == "INVALID_REQUEST"


class TestKeyAction:
    def test_regenerate(self):
        dispatcher, _, portal = _setup(
            token=_valid_token(),
            routes={"/portals/self/apiKeys/c1/keys/2/regenerate": {"key": "AT2_new"}},
        )
        response = _send(
            dispatcher,
            {
                "type": "webview/key-action",
                "payload": {"credentialId": "c1", "slot": 2, "action": "regenerate"},
            },
        )
        assert response["type"] == "host/key-action-result"
        assert response["payload"]["result"] == {
            "credentialId": "c1",
            "slot": 2,
            "action": "regenerate",
            "key": "AT2_new",
        }

    def test_old_portal_is_gated(self):
        dispatcher, _, portal = _setup(
            token=_valid_token(), routes={"/portals/self": {"currentVersion": 10.9}}
        )
        response = _send(
            dispatcher,
            {
                "type": "webview/key-action",
                "payload": {"credentialId": "c1", "slot": 1, "action": "create"},
            },
        )
        assert response["payload"]["code"] == "UNSUPPORTED_FEATURE"
        assert all(call.method == "GET" for call in portal.calls)

    def test_capabilities_probed_once(self):
        dispatcher, _, portal = _setup(
            token=_valid_token(),
            routes={"/portals/self/apiKeys/c1/keys/1/revoke": {"success": True}},
        )
        message = {
            "type": "webview/key-action",
            "payload": {"credentialId": "c1", "slot": 1, "action": "revoke"},
        }
        _send(dispatcher, message)
        _send(dispatcher, message)
        assert [c.path for c in portal.calls].count("/portals/self") == 1
