"""Tests for error messages and their typed rendering."""

from pluginmgr.lib.errors import (
    AmbiguousTargetError,
    ErrorCode,
    InvalidFieldError,
    ManifestNotFoundError,
    PreDownloadVerificationError,
    SyncError,
    TransportError,
    UntrustedLocationError,
    UntrustedRegistryError,
    plugin_not_found,
)
from pluginmgr.lib.typed_errors import parse_error
from pluginmgr.models.plugin import Target


class TestErrorMessages:
    def test_not_found(self):
        assert str(plugin_not_found("login")) == "unable to find plugin 'login'"
        assert str(plugin_not_found("login", Target.UNKNOWN)) == "unable to find plugin 'login'"
        assert str(plugin_not_found("login", Target.KUBERNETES)) == (
            "unable to find plugin 'login' for target 'kubernetes'"
        )

    def test_ambiguous_names_flag(self):
        error = AmbiguousTargetError("cluster")
        assert "`--target` flag" in str(error)
        assert error.hint == "--target"

    def test_pre_download_names_setting(self):
        cause = UntrustedRegistryError("evil.repo.com/login:v1", ["fake.repo.com"])
        error = PreDownloadVerificationError("login", cause)
        assert str(error).startswith("plugin pre-download verification failed for plugin 'login'")
        assert "PLUGINMGR_ALLOWED_REGISTRY" in str(error)
        assert error.cause is cause

    def test_pre_download_location_suggests_local_install(self):
        cause = UntrustedLocationError("https://example.com/login", ["https://trusted/"])
        error = PreDownloadVerificationError("login", cause)
        assert "Add the registry" not in str(error)
        assert str(error).endswith("Download the artifact yourself and install it with --local PATH")
        assert error.hint == "--local"

    def test_invalid_field_joins_problems(self):
        error = InvalidFieldError(["a cannot be empty", "b cannot be empty"])
        assert str(error) == "a cannot be empty, b cannot be empty"

    def test_manifest_not_found_lists_attempts(self):
        error = ManifestNotFoundError(["could not find manifest.yaml file: /x", "could not find plugin_manifest.yaml file: /x"])
        assert str(error) == "could not find manifest.yaml file: /x; could not find plugin_manifest.yaml file: /x"


class TestParseError:
    def test_plugin_error(self):
        typed = parse_error(AmbiguousTargetError("cluster"))
        assert typed.code == ErrorCode.AMBIGUOUS_TARGET
        assert typed.title == "Ambiguous Target"
        assert typed.actions[0].option == "--target"
        assert typed.original_error.startswith("AmbiguousTargetError: ")

    def test_pre_download_actions_follow_cause(self):
        registry = parse_error(PreDownloadVerificationError(
            "login", UntrustedRegistryError("evil.repo.com/login:v1", ["fake.repo.com"]),
        ))
        location = parse_error(PreDownloadVerificationError(
            "login", UntrustedLocationError("https://example.com/login", ["https://trusted/"]),
        ))

        assert registry.code == location.code == ErrorCode.PRE_DOWNLOAD_VERIFICATION_FAILED
        assert [a.option for a in registry.actions] == ["PLUGINMGR_ALLOWED_REGISTRY"]
        assert [a.option for a in location.actions] == ["--local"]

    def test_unknown_exception(self):
        typed = parse_error(RuntimeError("boom"))
        assert typed.code == ErrorCode.UNKNOWN_ERROR
        assert typed.message == "boom"
        assert typed.actions == []

    def test_string(self):
        typed = parse_error("something failed")
        assert typed.code == ErrorCode.UNKNOWN_ERROR
        assert typed.original_error == "something failed"

    def test_sync_error_details(self):
        error = SyncError([
            ("myplugin", Target.KUBERNETES, TransportError("connection refused")),
            ("login", Target.UNKNOWN, TransportError("timed out")),
        ])

        typed = parse_error(error)

        assert typed.code == ErrorCode.SYNC_FAILED
        assert typed.message == "failed to sync 2 plugin(s):"
        assert typed.details == [
            "myplugin (kubernetes): connection refused",
            "login (<none>): timed out",
        ]

    def test_serializes_with_alias(self):
        data = parse_error(RuntimeError("boom")).model_dump(by_alias=True)
        assert data["originalError"] == "RuntimeError: boom"
