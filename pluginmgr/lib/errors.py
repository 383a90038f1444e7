"""
Exception types raised by the plugin manager.

Every error carries an ErrorCode for programmatic handling and, where the
user can fix the problem, a hint naming the flag or setting to change.
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from pluginmgr.models.plugin import Target

TARGET_FLAG_HINT = (
    "Please specify correct Target(kubernetes[k8s]/mission-control[tmc]) "
    "of the plugin with `--target` flag"
)


class ErrorCode(str, Enum):
    """Error codes for programmatic handling."""

    NOT_FOUND = "not_found"
    AMBIGUOUS_TARGET = "ambiguous_target"
    INVALID_FIELD = "invalid_field"
    UNTRUSTED_REGISTRY = "untrusted_registry"
    UNTRUSTED_LOCATION = "untrusted_location"
    PRE_DOWNLOAD_VERIFICATION_FAILED = "pre_download_verification_failed"
    INTEGRITY_MISMATCH = "integrity_mismatch"
    MANIFEST_NOT_FOUND = "manifest_not_found"
    DISCOVERY_SOURCE_FAILED = "discovery_source_failed"
    TRANSPORT_FAILED = "transport_failed"
    SYNC_FAILED = "sync_failed"
    UNKNOWN_ERROR = "unknown_error"


class PluginError(Exception):
    """Base class for plugin manager errors."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.message = message
        self.hint = hint


class PluginNotFoundError(PluginError):
    code = ErrorCode.NOT_FOUND


class AmbiguousTargetError(PluginError):
    code = ErrorCode.AMBIGUOUS_TARGET

    def __init__(self, name: str):
        super().__init__(
            f"unable to uniquely identify plugin '{name}'. {TARGET_FLAG_HINT}",
            hint="--target",
        )
        self.plugin_name = name


class InvalidFieldError(PluginError):
    """Aggregated validation failures, one entry per violated field."""

    code = ErrorCode.INVALID_FIELD

    def __init__(self, problems: list[str]):
        super().__init__(", ".join(problems))
        self.problems = list(problems)


class TrustError(PluginError):
    """A pre-download trust check failed.

    ``remedy`` tells the user how to get past the check.
    """

    remedy: str = ""


class UntrustedRegistryError(TrustError):
    code = ErrorCode.UNTRUSTED_REGISTRY

    def __init__(self, image: str, allowed: list[str]):
        super().__init__(
            f"untrusted registry detected with image {image!r}. "
            f"Allowed registries are [{' '.join(allowed)}]",
            hint="PLUGINMGR_ALLOWED_REGISTRY",
        )
        self.remedy = f"Add the registry to {self.hint} to trust it"
        self.image = image
        self.allowed = allowed


class UntrustedLocationError(TrustError):
    code = ErrorCode.UNTRUSTED_LOCATION

    def __init__(self, uri: str, allowed: list[str]):
        super().__init__(
            f'untrusted artifact location detected with URI "{uri}". '
            f"Allowed locations are [{' '.join(allowed)}]",
            hint="--local",
        )
        self.remedy = "Download the artifact yourself and install it with --local PATH"
        self.uri = uri
        self.allowed = allowed


class PreDownloadVerificationError(PluginError):
    code = ErrorCode.PRE_DOWNLOAD_VERIFICATION_FAILED

    def __init__(self, name: str, cause: TrustError):
        message = f"plugin pre-download verification failed for plugin '{name}': {cause}"
        if cause.remedy:
            message += f". {cause.remedy}"
        super().__init__(message, hint=cause.hint)
        self.plugin_name = name
        self.cause = cause


class IntegrityMismatchError(PluginError):
    code = ErrorCode.INTEGRITY_MISMATCH

    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(
            f'plugin "{name}" has been corrupted during download. '
            f"source digest: {expected}, actual digest: {actual}"
        )
        self.plugin_name = name
        self.expected = expected
        self.actual = actual


class ManifestNotFoundError(PluginError):
    code = ErrorCode.MANIFEST_NOT_FOUND

    def __init__(self, attempts: list[str]):
        super().__init__("; ".join(attempts))
        self.attempts = attempts


class DiscoverySourceError(PluginError):
    code = ErrorCode.DISCOVERY_SOURCE_FAILED

    def __init__(self, source_name: str, cause: Exception):
        super().__init__(f"discovery source '{source_name}' failed: {cause}")
        self.source_name = source_name
        self.cause = cause


class TransportError(PluginError):
    code = ErrorCode.TRANSPORT_FAILED


class SyncError(PluginError):
    """One or more plugins failed to install during a sync."""

    code = ErrorCode.SYNC_FAILED

    def __init__(self, failures: list[tuple[str, "Target", Exception]]):
        lines = [
            f"  - {name} ({target.display}): {error}" for name, target, error in failures
        ]
        super().__init__(
            f"failed to sync {len(failures)} plugin(s):\n" + "\n".join(lines)
        )
        self.failures = failures


def plugin_not_found(name: str, target: Optional["Target"] = None) -> PluginNotFoundError:
    if target is not None and target.is_concrete:
        return PluginNotFoundError(
            f"unable to find plugin '{name}' for target '{target.display}'"
        )
    return PluginNotFoundError(f"unable to find plugin '{name}'")
