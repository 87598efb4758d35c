"""Tests for ClientSettings, environment files and transport assembly."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from arcgis_keys_common.config import ClientSettings, build_transport, load_environments
from arcgis_keys_common.transport import HttpxTransport
from arcgis_keys_common.wrappers.logging_wrapper import LoggingTransport
from arcgis_keys_common.wrappers.readonly_wrapper import ReadOnlyTransport


class FakeTransport:
    async def request(self, request):
        return {}


class TestClientSettings:
    def test_defaults(self):
        settings = ClientSettings()
        assert settings.page_size == 100
        assert settings.enrichment_concurrency == 6
        assert settings.request_timeout == 30.0
        assert settings.read_only is False
        assert settings.log_requests is False

    def test_from_config_ignores_unknown_keys(self):
        settings = ClientSettings.from_config({"page_size": 10, "theme": "dark"})
        assert settings.page_size == 10

    def test_from_none(self):
        assert ClientSettings.from_config(None) == ClientSettings()

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            ClientSettings.from_config({"page_size": 0})
        with pytest.raises(ValidationError):
            ClientSettings.from_config({"request_timeout": -1})


class TestLoadEnvironments:
    def test_missing_file(self, tmp_path):
        assert load_environments(tmp_path / "absent.yaml") == []

    def test_reads_wire_and_python_names(self, tmp_path):
        path = tmp_path / "envs.yaml"
        path.write_text(
            "environments:\n"
            "  - id: online\n"
            "    name: ArcGIS Online\n"
            "    type: online\n"
            "    clientId: abc\n"
            "  - id: ent\n"
            "    name: Enterprise\n"
            "    type: enterprise\n"
            "    client_id: def\n"
            "    portal_url: https://gis.example.com/portal\n"
        )
        envs = load_environments(path)
        assert [e.id for e in envs] == ["online", "ent"]
        assert envs[0].client_id == "abc"
        assert envs[1].portal_url == "https://gis.example.com/portal"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "envs.yaml"
        path.write_text("")
        assert load_environments(path) == []

    def test_bad_entry_names_index(self, tmp_path):
        path = tmp_path / "envs.yaml"
        path.write_text(
            "environments:\n"
            "  - {id: a, name: A, type: online, clientId: c}\n"
            "  - {id: b, name: B, type: enterprise, clientId: c}\n"
        )
        with pytest.raises(ValueError, match="index 1"):
            load_environments(path)

    def test_environments_not_a_list(self, tmp_path):
        path = tmp_path / "envs.yaml"
        path.write_text("environments: nope\n")
        with pytest.raises(ValueError):
            load_environments(path)


class TestBuildTransport:
    def test_default_is_httpx(self):
        assert isinstance(build_transport(ClientSettings()), HttpxTransport)

    def test_inner_used_as_is(self):
        inner = FakeTransport()
        assert build_transport(ClientSettings(), inner=inner) is inner

    def test_read_only_innermost_logging_outermost(self):
        inner = FakeTransport()
        transport = build_transport(
            ClientSettings(read_only=True, log_requests=True), inner=inner
        )
        assert isinstance(transport, LoggingTransport)
        assert isinstance(transport.inner, ReadOnlyTransport)
        assert transport.inner.inner is inner
