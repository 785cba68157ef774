"""Failure taxonomy for mirror and sync cycles.

Exceptions defined here are raised inside a single cycle and converted into a
failed `SyncOutcome` at the orchestration boundary; they never escape to the
daemon loop.
"""

from enum import Enum


class FailureKind(Enum):
    """Classifies why a cycle failed."""

    WORKSPACE_CLEANUP_FAILED = "workspace_cleanup_failed"
    TRANSPORT_FAILED = "transport_failed"
    CREDENTIAL_RESOLUTION_EXHAUSTED = "credential_resolution_exhausted"


class MirrorError(Exception):
    """Base class for errors raised during a mirror or sync cycle.

    Attributes:
        kind (FailureKind): The failure classification reported to callers.
    """

    kind: FailureKind = FailureKind.TRANSPORT_FAILED


class WorkspaceCleanupFailed(MirrorError):
    """The local workspace could not be deleted (e.g. locked files)."""

    kind = FailureKind.WORKSPACE_CLEANUP_FAILED


class TransportFailed(MirrorError):
    """A clone, fetch, checkout or push did not complete.

    Attributes:
        hint (str | None): A human-readable guess at the likely cause.
    """

    kind = FailureKind.TRANSPORT_FAILED

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        message = super().__str__()
        if self.hint:
            return f"{message} ({self.hint})"
        return message


class CredentialResolutionExhausted(MirrorError):
    """No explicit or helper credentials were found.

    Not fatal: the resolver catches it and falls back to ambient credentials.
    """

    kind = FailureKind.CREDENTIAL_RESOLUTION_EXHAUSTED


PERMISSION_HINT = "permission denied: check the token or account access"
MISSING_HINT = "remote not found: check the repository URL exists"
NETWORK_HINT = "network error: check connectivity to the remote host"
GENERIC_HINT = (
    "the remote may not exist, you may not have permission, "
    "or there may be network issues"
)

_PERMISSION_MARKERS = (
    "permission denied",
    "permission to",
    "authentication failed",
    "403",
    "401",
    "access denied",
    "could not read username",
    "invalid username or password",
)
_MISSING_MARKERS = (
    "not found",
    "does not appear to be a git repository",
    "does not exist",
    "404",
)
_NETWORK_MARKERS = (
    "could not resolve host",
    "timed out",
    "connection refused",
    "network is unreachable",
    "failed to connect",
    "connection reset",
)


def diagnose_transport_error(stderr: str) -> str:
    """Maps git's error output to a hint about the likely cause.

    Args:
        stderr (str): The error text produced by the failed git command.

    Returns:
        str: A short operator-facing hint.
    """
    text = stderr.lower()
    if any(marker in text for marker in _PERMISSION_MARKERS):
        return PERMISSION_HINT
    if any(marker in text for marker in _NETWORK_MARKERS):
        return NETWORK_HINT
    if any(marker in text for marker in _MISSING_MARKERS):
        return MISSING_HINT
    return GENERIC_HINT
