"""Tests for plugin descriptors and manifest-based local discovery."""

from pathlib import Path

import pytest
import yaml

from pluginmgr.core.manifest import (
    discover_from_manifest_files,
    discover_local_descriptors,
    parse_descriptor,
    parse_descriptor_document,
)
from pluginmgr.lib.errors import ManifestNotFoundError
from pluginmgr.models.plugin import Scope, Target


@pytest.fixture
def legacy_dir(tmp_path) -> Path:
    directory = tmp_path / "legacy"
    directory.mkdir()
    (directory / "manifest.yaml").write_text(yaml.safe_dump({
        "plugins": [
            {"name": "foo", "description": "Foo plugin", "versions": ["v0.11.0", "v0.12.0"]},
            {"name": "bar", "description": "Bar plugin", "version": "v0.10.0"},
        ],
    }))
    return directory


@pytest.fixture
def artifacts_dir(tmp_path) -> Path:
    directory = tmp_path / "artifacts1"
    directory.mkdir()
    (directory / "plugin_manifest.yaml").write_text(yaml.safe_dump({
        "plugins": [
            {"name": "foo", "description": "Foo plugin", "target": "k8s", "versions": ["v0.12.0"]},
            {"name": "bar", "description": "Bar plugin", "versions": ["v0.10.0"], "digest": "sha256:abc"},
        ],
    }))
    return directory


class TestManifestDiscovery:
    def test_missing_both_manifests(self, tmp_path):
        with pytest.raises(ManifestNotFoundError) as exc_info:
            discover_from_manifest_files(tmp_path)
        message = str(exc_info.value)
        assert "could not find manifest.yaml file" in message
        assert "could not find plugin_manifest.yaml file" in message

    def test_legacy_manifest(self, legacy_dir):
        plugins = discover_from_manifest_files(legacy_dir)

        assert [p.name for p in plugins] == ["foo", "bar"]
        assert plugins[0].description == "Foo plugin"
        assert plugins[0].recommended_version == "v0.12.0"
        assert plugins[1].recommended_version == "v0.10.0"
        for plugin in plugins:
            assert plugin.scope == Scope.STANDALONE
            assert plugin.target == Target.UNKNOWN

    def test_legacy_artifact_layout(self, legacy_dir):
        foo = discover_from_manifest_files(legacy_dir)[0]
        assert foo.supported_versions == ["v0.11.0", "v0.12.0"]
        assert foo.artifacts["v0.12.0"].path == str(legacy_dir / "foo" / "v0.12.0" / "foo")

    def test_plugin_manifest(self, artifacts_dir):
        plugins = discover_from_manifest_files(artifacts_dir)

        assert [p.name for p in plugins] == ["foo", "bar"]
        assert plugins[0].target == Target.KUBERNETES
        assert plugins[0].recommended_version == "v0.12.0"
        assert plugins[1].target == Target.GLOBAL
        assert plugins[1].recommended_version == "v0.10.0"

    def test_plugin_manifest_artifact_layout(self, artifacts_dir):
        foo, bar = discover_from_manifest_files(artifacts_dir)
        assert foo.artifacts["v0.12.0"].path == str(artifacts_dir / "kubernetes" / "foo" / "v0.12.0" / "foo")
        assert bar.artifacts["v0.10.0"].path == str(artifacts_dir / "global" / "bar" / "v0.10.0" / "bar")
        assert bar.artifacts["v0.10.0"].digest == "abc"

    def test_legacy_manifest_preferred(self, legacy_dir):
        (legacy_dir / "plugin_manifest.yaml").write_text(yaml.safe_dump({"plugins": [{"name": "other"}]}))
        assert [p.name for p in discover_from_manifest_files(legacy_dir)] == ["foo", "bar"]


class TestDescriptors:
    def test_recommended_defaults_to_last_artifact(self):
        plugin = parse_descriptor({
            "name": "cluster",
            "target": "tmc",
            "artifacts": {
                "v0.1.0": {"image": "fake.repo.com/cluster:v0.1.0"},
                "v0.2.0": {"image": "fake.repo.com/cluster:v0.2.0"},
            },
        })
        assert plugin.target == Target.MISSION_CONTROL
        assert plugin.recommended_version == "v0.2.0"
        assert plugin.supported_versions == ["v0.1.0", "v0.2.0"]

    def test_relative_path_resolved(self, tmp_path):
        plugin = parse_descriptor(
            {"name": "login", "artifacts": {"v1": {"path": "bin/login"}}},
            base_dir=tmp_path,
        )
        assert plugin.artifacts["v1"].path == str((tmp_path / "bin" / "login").resolve())

    def test_single_descriptor_document(self):
        plugins = parse_descriptor_document({"name": "login"})
        assert [p.name for p in plugins] == ["login"]

    def test_empty_document(self):
        assert parse_descriptor_document(None) == []

    def test_unnamed_descriptor_rejected(self):
        with pytest.raises(ValueError):
            parse_descriptor({"target": "k8s"})

    def test_unknown_target_rejected(self):
        with pytest.raises(ValueError):
            parse_descriptor({"name": "login", "target": "windows"})

    def test_local_descriptors_skip_manifests(self, legacy_dir):
        (legacy_dir / "login.yaml").write_text(yaml.safe_dump({"name": "login", "target": "k8s"}))
        (legacy_dir / "notes.txt").write_text("ignored")

        plugins = discover_local_descriptors(legacy_dir)

        assert [(p.name, p.target) for p in plugins] == [("login", Target.KUBERNETES)]
