"""
Typed errors for user-friendly messages.

Maps plugin manager exceptions to a title, a detailed message and the
recovery actions the user can take from the command line.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from pluginmgr.lib.errors import ErrorCode, PluginError, PreDownloadVerificationError, SyncError


class RecoveryAction(BaseModel):
    """A suggested recovery action for an error."""

    option: str = Field(description="Flag or setting to change")
    label: str = Field(description="Description of the action")


class TypedError(BaseModel):
    """A structured error with user-friendly info and recovery suggestions."""

    code: ErrorCode = Field(description="Error code for programmatic handling")
    title: str = Field(description="User-friendly title")
    message: str = Field(description="Detailed message explaining what went wrong")
    actions: list[RecoveryAction] = Field(
        default_factory=list, description="Suggested recovery actions"
    )
    original_error: Optional[str] = Field(
        alias="originalError", default=None, description="Original error message"
    )
    details: Optional[list[str]] = Field(
        default=None, description="Diagnostic details, one per line"
    )

    model_config = {"populate_by_name": True}


ERROR_DEFINITIONS: dict[ErrorCode, dict[str, Any]] = {
    ErrorCode.NOT_FOUND: {
        "title": "Plugin Not Found",
        "actions": [
            RecoveryAction(option="plugin list", label="List available plugins"),
        ],
    },
    ErrorCode.AMBIGUOUS_TARGET: {
        "title": "Ambiguous Target",
        "actions": [
            RecoveryAction(option="--target", label="Specify kubernetes[k8s] or mission-control[tmc]"),
        ],
    },
    ErrorCode.INVALID_FIELD: {
        "title": "Invalid Plugin",
        "actions": [],
    },
    ErrorCode.UNTRUSTED_REGISTRY: {
        "title": "Untrusted Registry",
        "actions": [
            RecoveryAction(option="PLUGINMGR_ALLOWED_REGISTRY", label="Allow the registry"),
        ],
    },
    ErrorCode.UNTRUSTED_LOCATION: {
        "title": "Untrusted Artifact Location",
        "actions": [
            RecoveryAction(option="--local", label="Install a downloaded copy from a local directory"),
        ],
    },
    ErrorCode.PRE_DOWNLOAD_VERIFICATION_FAILED: {
        "title": "Pre-download Verification Failed",
        "actions": [
            RecoveryAction(option="PLUGINMGR_ALLOWED_REGISTRY", label="Allow the registry"),
        ],
    },
    ErrorCode.INTEGRITY_MISMATCH: {
        "title": "Corrupted Download",
        "actions": [
            RecoveryAction(option="plugin install", label="Retry the installation"),
        ],
    },
    ErrorCode.MANIFEST_NOT_FOUND: {
        "title": "Manifest Not Found",
        "actions": [
            RecoveryAction(option="--local", label="Point to a directory with a plugin manifest"),
        ],
    },
    ErrorCode.DISCOVERY_SOURCE_FAILED: {
        "title": "Discovery Source Failed",
        "actions": [
            RecoveryAction(option="source list", label="Check configured discovery sources"),
        ],
    },
    ErrorCode.TRANSPORT_FAILED: {
        "title": "Download Failed",
        "actions": [
            RecoveryAction(option="plugin install", label="Retry the installation"),
        ],
    },
    ErrorCode.SYNC_FAILED: {
        "title": "Sync Incomplete",
        "actions": [
            RecoveryAction(option="plugin sync", label="Retry the remaining plugins"),
        ],
    },
    ErrorCode.UNKNOWN_ERROR: {
        "title": "Error",
        "actions": [],
    },
}


def parse_error(error: Exception | str) -> TypedError:
    """
    Turn an exception into a typed error with user-friendly info.

    Args:
        error: The error to parse (Exception or string)

    Returns:
        TypedError with appropriate code, message, and recovery actions
    """
    if isinstance(error, Exception):
        error_message = str(error)
        original_error = f"{type(error).__name__}: {error_message}"
    else:
        error_message = str(error)
        original_error = error_message

    code = error.code if isinstance(error, PluginError) else ErrorCode.UNKNOWN_ERROR
    definition = ERROR_DEFINITIONS[code]
    actions = definition["actions"]
    if isinstance(error, PreDownloadVerificationError):
        actions = ERROR_DEFINITIONS[error.cause.code]["actions"]

    details = None
    if isinstance(error, SyncError):
        details = [f"{name} ({target.display}): {cause}" for name, target, cause in error.failures]
        error_message = error_message.splitlines()[0]

    return TypedError(
        code=code,
        title=definition["title"],
        message=error_message,
        actions=actions,
        original_error=original_error,
        details=details,
    )
