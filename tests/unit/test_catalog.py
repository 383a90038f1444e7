"""Tests for the installed-plugin catalog."""

import pytest
import yaml

from pluginmgr.core.catalog import FileCatalog, InMemoryCatalog, installed_standalone
from pluginmgr.models.plugin import InstalledPluginRecord, Scope, Target


@pytest.fixture(params=["memory", "file"])
def any_catalog(request, tmp_path):
    if request.param == "memory":
        return InMemoryCatalog()
    return FileCatalog(tmp_path / "catalog.yaml")


def _record(name: str, target: str = "", version: str = "v1.0.0", **kwargs) -> InstalledPluginRecord:
    return InstalledPluginRecord(name=name, target=target, version=version, group="Run", **kwargs)


class TestCatalog:
    def test_empty(self, any_catalog):
        assert any_catalog.get_installed() == []

    def test_upsert_and_get(self, any_catalog):
        any_catalog.upsert(_record("login"))
        any_catalog.upsert(_record("cluster", "k8s"))

        installed = any_catalog.get_installed()

        assert {r.key for r in installed} == {("login", Target.UNKNOWN), ("cluster", Target.KUBERNETES)}

    def test_upsert_replaces_same_key(self, any_catalog):
        any_catalog.upsert(_record("cluster", "k8s", "v1.0.0"))
        any_catalog.upsert(_record("cluster", "k8s", "v2.0.0"))

        installed = any_catalog.get_installed()

        assert len(installed) == 1
        assert installed[0].version == "v2.0.0"

    def test_same_name_different_targets(self, any_catalog):
        any_catalog.upsert(_record("cluster", "k8s"))
        any_catalog.upsert(_record("cluster", "tmc"))
        assert len(any_catalog.get_installed()) == 2

    def test_remove(self, any_catalog):
        any_catalog.upsert(_record("cluster", "k8s"))
        any_catalog.upsert(_record("cluster", "tmc"))

        assert any_catalog.remove("cluster", Target.MISSION_CONTROL) is True
        assert any_catalog.remove("cluster", Target.MISSION_CONTROL) is False
        assert [r.key for r in any_catalog.get_installed()] == [("cluster", Target.KUBERNETES)]

    def test_returned_records_are_copies(self, any_catalog):
        any_catalog.upsert(_record("login"))
        any_catalog.get_installed()[0].version = "changed"
        assert any_catalog.get_installed()[0].version == "v1.0.0"


class TestFileCatalog:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        FileCatalog(path).upsert(_record("login", discovery_source_id="default"))

        installed = FileCatalog(path).get_installed()

        assert installed[0].name == "login"
        assert installed[0].discovery_source_id == "default"

    def test_yaml_layout(self, tmp_path):
        path = tmp_path / "nested" / "catalog.yaml"
        FileCatalog(path).upsert(_record("cluster", "tmc"))

        data = yaml.safe_load(path.read_text())

        assert data["plugins"][0]["name"] == "cluster"
        assert data["plugins"][0]["target"] == "mission-control"

    def test_no_temp_files_left(self, tmp_path):
        catalog = FileCatalog(tmp_path / "catalog.yaml")
        catalog.upsert(_record("login"))
        catalog.remove("login", Target.UNKNOWN)
        assert [p.name for p in tmp_path.iterdir()] == ["catalog.yaml"]

    def test_unreadable_entry_skipped(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(yaml.safe_dump({"plugins": [
            {"name": "login", "version": "v1"},
            {"name": "bad", "target": "windows"},
        ]}))

        assert [r.name for r in FileCatalog(path).get_installed()] == ["login"]

    def test_non_mapping_entry_skipped(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(yaml.safe_dump({"plugins": ["login", {"name": "cluster", "version": "v1"}]}))
        assert [r.name for r in FileCatalog(path).get_installed()] == ["cluster"]

    def test_top_level_list_treated_as_empty(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(yaml.safe_dump([{"name": "login", "version": "v1"}]))

        catalog = FileCatalog(path)

        assert catalog.get_installed() == []
        catalog.upsert(_record("cluster", "k8s"))
        assert [r.name for r in catalog.get_installed()] == ["cluster"]


def test_installed_standalone():
    records = [_record("login"), _record("cluster", "tmc", scope=Scope.CONTEXT)]
    assert [r.name for r in installed_standalone(records)] == ["login"]
