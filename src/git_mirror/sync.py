"""Mirror and incremental sync of one source repository to one target.

`SyncOrchestrator.mirror()` clones the source and pushes it to the target
through a transient workspace. `SyncOrchestrator.sync()` reuses an existing
workspace when there is one: it fetches from the source, compares branch tips
and only checks out and pushes when the source has moved.

Both operations report a `SyncOutcome`; no exception escapes them.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .config import Config, RepositoryEndpoint
from .constants import APP_NAME, SOURCE_REMOTE, TARGET_REMOTE
from .credentials import CredentialProvider, CredentialResolver, credential_env
from .errors import (
    FailureKind,
    MirrorError,
    TransportFailed,
    diagnose_transport_error,
)
from .git_wrapper import GitError, GitRepo
from .remotes import RemoteManager
from .workspace import WorkspaceManager

logger = logging.getLogger(APP_NAME)

DIVERGED_HINT = (
    "the local branch has diverged from source; "
    "delete the workspace to force a fresh mirror"
)


class SyncReason(Enum):
    """Why a cycle ended the way it did."""

    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    MIRRORED_FRESH = "mirrored_fresh"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    """The result of one mirror or sync cycle.

    Attributes:
        succeeded (bool): Whether the target now matches the source.
        reason (SyncReason): What the cycle did.
        failure (FailureKind | None): Failure classification when not succeeded.
        message (str): Human-readable detail, including any diagnostic hint.
    """

    succeeded: bool
    reason: SyncReason
    failure: FailureKind | None = None
    message: str = ""

    @classmethod
    def success(cls, reason: SyncReason) -> "SyncOutcome":
        return cls(succeeded=True, reason=reason)

    @classmethod
    def failed(cls, kind: FailureKind, message: str) -> "SyncOutcome":
        return cls(
            succeeded=False, reason=SyncReason.FAILED, failure=kind, message=message
        )


class SyncOrchestrator:
    """Decides between a full mirror and an incremental sync and drives it.

    The orchestrator owns no global state: the workspace path comes from the
    configuration and the repository handle is passed explicitly between steps.

    Attributes:
        config (Config): Endpoints and workspace settings.
        workspace (WorkspaceManager): Inspects and deletes the local working copy.
        remotes (RemoteManager): Keeps the `source` and `origin` remotes current.
        credentials (CredentialProvider): Resolves credentials per operation.
    """

    def __init__(
        self,
        config: Config,
        workspace: WorkspaceManager | None = None,
        remotes: RemoteManager | None = None,
        credentials: CredentialProvider | None = None,
    ):
        self.config = config
        self.workspace = workspace or WorkspaceManager()
        self.remotes = remotes or RemoteManager()
        self.credentials = credentials or CredentialResolver()

    @property
    def source(self) -> RepositoryEndpoint:
        return self.config.source

    @property
    def target(self) -> RepositoryEndpoint:
        return self.config.target

    def mirror(self) -> SyncOutcome:
        """Clones the source, pushes it to the target and deletes the clone.

        Returns:
            SyncOutcome: `MIRRORED_FRESH` on success, `FAILED` otherwise.
        """
        return self._mirror(keep_workspace=False)

    def sync(self) -> SyncOutcome:
        """Brings the target up to date with the source.

        Without a valid workspace this is a fresh mirror. Otherwise the source is
        fetched and the target is only pushed to when the source branch tip
        differs from the local branch tip.

        Returns:
            SyncOutcome: `UP_TO_DATE`, `UPDATED`, `MIRRORED_FRESH` or `FAILED`.
        """
        logger.info("Starting repository sync operation")
        path = self.config.mirror.local_path
        state = self.workspace.inspect(path)

        if not state.is_valid_git_repository:
            if state.is_corrupt:
                logger.warning(
                    f"Local repository at {path} is invalid, performing initial mirror"
                )
            else:
                logger.info("Local repository not found, performing initial mirror")
            return self._mirror(keep_workspace=self.config.mirror.keep_workspace)

        try:
            repo = self.workspace.open(path)
            self.remotes.ensure(repo, SOURCE_REMOTE, self.source.url)
            self.remotes.ensure(repo, TARGET_REMOTE, self.target.url)
            self._fetch(repo)

            if not self._has_new_commits(repo):
                logger.info("Repository is up to date")
                return SyncOutcome.success(SyncReason.UP_TO_DATE)

            self._update_local(repo)
            self._push(repo)
        except Exception as e:
            return self._failure("sync", e)

        logger.info("Repository sync completed successfully")
        return SyncOutcome.success(SyncReason.UPDATED)

    def _mirror(self, keep_workspace: bool) -> SyncOutcome:
        logger.info("Starting repository mirror operation")
        path = self.config.mirror.local_path
        try:
            self.workspace.cleanup(path)
            repo = self._clone()
            self.remotes.ensure(repo, TARGET_REMOTE, self.target.url)
            self._push(repo)
            if not keep_workspace:
                self.workspace.cleanup(path)
        except Exception as e:
            outcome = self._failure("mirror", e)
            self._cleanup_best_effort()
            return outcome

        logger.info("Repository mirror operation completed successfully")
        return SyncOutcome.success(SyncReason.MIRRORED_FRESH)

    def _failure(self, operation: str, error: Exception) -> SyncOutcome:
        """Converts an exception raised inside a cycle into a failed outcome."""
        if isinstance(error, MirrorError):
            logger.error(f"Error during repository {operation} operation: {error}")
            return SyncOutcome.failed(error.kind, str(error))

        logger.exception(f"Unexpected error during repository {operation} operation")
        message = f"Unexpected error during {operation}: {error}"
        return SyncOutcome.failed(FailureKind.TRANSPORT_FAILED, message)

    def _cleanup_best_effort(self) -> None:
        try:
            self.workspace.cleanup(self.config.mirror.local_path)
        except MirrorError as e:
            logger.warning(f"Workspace left behind after failed mirror: {e}")

    def _auth_env(self, endpoint: RepositoryEndpoint) -> dict:
        """Resolves credentials for one git operation against `endpoint`."""
        return credential_env(self.credentials.resolve(endpoint, endpoint.url))

    def _clone(self) -> GitRepo:
        path = self.config.mirror.local_path
        logger.info(
            f"Cloning {self.source.url} (branch {self.source.branch}) into {path}"
        )
        try:
            return GitRepo.clone(
                self.source.url,
                path,
                self.source.branch,
                SOURCE_REMOTE,
                env=self._auth_env(self.source),
            )
        except GitError as e:
            raise TransportFailed(
                f"Failed to clone source repository '{self.source.url}': {e}",
                hint=diagnose_transport_error(e.stderr),
            ) from e

    def _fetch(self, repo: GitRepo) -> None:
        logger.debug(f"Fetching from {SOURCE_REMOTE}")
        try:
            repo.fetch(SOURCE_REMOTE, env=self._auth_env(self.source))
        except GitError as e:
            raise TransportFailed(
                f"Failed to fetch from source repository '{self.source.url}': {e}",
                hint=diagnose_transport_error(e.stderr),
            ) from e

    def _has_new_commits(self, repo: GitRepo) -> bool:
        """Compares the fetched source tip with the local branch tip by commit id."""
        branch = self.source.branch
        source_tip = repo.rev_parse(f"refs/remotes/{SOURCE_REMOTE}/{branch}")
        if source_tip is None:
            raise TransportFailed(
                f"Branch '{branch}' not found on source repository '{self.source.url}'"
            )
        local_tip = repo.rev_parse(f"refs/heads/{branch}")
        logger.debug(f"Source tip {source_tip}, local tip {local_tip}")
        return source_tip != local_tip

    def _update_local(self, repo: GitRepo) -> None:
        """Fast-forwards the local branch to the fetched source tip."""
        branch = self.source.branch
        try:
            if repo.current_branch() != branch:
                repo.checkout(branch)
            repo.merge_ff_only(f"refs/remotes/{SOURCE_REMOTE}/{branch}")
        except GitError as e:
            raise TransportFailed(
                f"Could not fast-forward '{branch}' to the source tip: {e}",
                hint=DIVERGED_HINT,
            ) from e

    def _push(self, repo: GitRepo) -> None:
        url = self.target.url
        logger.info(f"Starting push to target repository: {url}")
        refspecs = self.remotes.push_refspecs(repo, TARGET_REMOTE)
        logger.debug(f"Pushing {len(refspecs)} ref specs to target")
        try:
            repo.push(TARGET_REMOTE, refspecs, env=self._auth_env(self.target))
        except GitError as e:
            raise TransportFailed(
                f"Failed to push to target repository '{url}': {e}",
                hint=diagnose_transport_error(e.stderr),
            ) from e
        logger.info("Successfully pushed to target repository")
