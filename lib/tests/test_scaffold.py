"""Tests for the package scaffold and packaging metadata."""

import pathlib

import tomllib


ROOT = pathlib.Path(__file__).resolve().parent.parent.parent
LIB = ROOT / "lib" / "arcgis_keys_common"
HOST = ROOT / "modules" / "host-keys" / "arcgis_keys_host"


class TestDirectoryStructure:
    """Verify both packages have the expected files."""

    def test_pyproject_toml_exists(self):
        assert (ROOT / "pyproject.toml").is_file()

    def test_core_package_init_exists(self):
        assert (LIB / "__init__.py").is_file()

    def test_core_modules_exist(self):
        for name in ("models", "normalizer", "client", "protocol", "errors", "schemas"):
            assert (LIB / f"{name}.py").is_file(), name

    def test_host_package_exists(self):
        assert (HOST / "__init__.py").is_file()
        assert (HOST / "dispatch.py").is_file()


class TestPyprojectToml:
    """Verify pyproject.toml has correct metadata."""

    def _load(self) -> dict:
        return tomllib.loads((ROOT / "pyproject.toml").read_text())

    def test_package_name(self):
        assert self._load()["project"]["name"] == "arcgis-api-keys"

    def test_version(self):
        assert self._load()["project"]["version"] == "0.1.0"

    def test_requires_python(self):
        assert self._load()["project"]["requires-python"] == ">=3.11"

    def test_runtime_dependencies(self):
        deps = self._load()["project"]["dependencies"]
        for name in ("pydantic", "httpx", "pyyaml"):
            assert any(d.startswith(name) for d in deps), name

    def test_test_extra(self):
        extra = self._load()["project"]["optional-dependencies"]["test"]
        assert any("pytest-asyncio" in d for d in extra)

    def test_hatchling_build_backend(self):
        assert self._load()["build-system"]["build-backend"] == "hatchling.build"

    def test_wheel_ships_both_packages(self):
        packages = self._load()["tool"]["hatch"]["build"]["targets"]["wheel"]["packages"]
        assert packages == ["lib/arcgis_keys_common", "modules/host-keys/arcgis_keys_host"]

    def test_no_entry_points(self):
        data = self._load()
        assert "entry-points" not in data.get("project", {})
        assert "scripts" not in data.get("project", {})
