import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME
from .errors import WorkspaceCleanupFailed
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class LocalWorkspace:
    """A snapshot of the single working-copy slot on disk.

    Attributes:
        path (Path): Location of the working copy.
        exists (bool): Whether anything exists at `path`.
        is_valid_git_repository (bool): Whether git recognizes `path` as a
            well-formed repository root.
    """

    path: Path
    exists: bool
    is_valid_git_repository: bool

    @property
    def is_corrupt(self) -> bool:
        """True when something is on disk but it is not a usable repository."""
        return self.exists and not self.is_valid_git_repository


def _make_writable(path: Path) -> None:
    """Clears the read-only bit on a single file or directory."""
    mode = os.lstat(path).st_mode
    if stat.S_ISLNK(mode):
        return
    wanted = stat.S_IWRITE | stat.S_IREAD
    if stat.S_ISDIR(mode):
        wanted |= stat.S_IEXEC
    if mode & wanted != wanted:
        os.chmod(path, stat.S_IMODE(mode) | wanted)


def clear_readonly(root: Path) -> None:
    """Clears the read-only attribute on `root` and everything beneath it.

    Git marks its object files read-only, which makes a naive recursive delete
    fail on some platforms. Directories are fixed before they are walked so
    their contents can be listed.
    """
    _make_writable(root)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames:
            _make_writable(Path(dirpath) / name)
        for name in filenames:
            try:
                _make_writable(Path(dirpath) / name)
            except OSError as e:
                # The delete below may still succeed.
                logger.debug(f"Could not clear read-only attribute on {name}: {e}")


class WorkspaceManager:
    """Owns the on-disk working copy: inspection, validity checks and deletion."""

    def inspect(self, path: Path) -> LocalWorkspace:
        """Evaluates the workspace slot at `path`.

        Args:
            path (Path): The configured local path.

        Returns:
            LocalWorkspace: The current state of the slot.
        """
        exists = path.exists()
        return LocalWorkspace(
            path=path,
            exists=exists,
            is_valid_git_repository=exists and self.is_valid(path),
        )

    def is_valid(self, path: Path) -> bool:
        """True iff `path` exists and git recognizes it as a repository root."""
        return path.is_dir() and GitRepo.is_repository(path)

    def open(self, path: Path) -> GitRepo:
        """Returns a handle on the existing working copy at `path`."""
        return GitRepo(path)

    def cleanup(self, path: Path) -> None:
        """Recursively deletes `path` if present.

        Calling this on an absent path is a no-op.

        Args:
            path (Path): The workspace to delete.

        Raises:
            WorkspaceCleanupFailed: If the tree cannot be removed.
        """
        if not path.exists() and not path.is_symlink():
            return

        logger.debug(f"Cleaning up local repository: {path}")
        try:
            if path.is_dir() and not path.is_symlink():
                clear_readonly(path)
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            logger.error(f"Failed to clean up local repository {path}: {e}")
            raise WorkspaceCleanupFailed(
                f"Unable to clean up local repository at '{path}'. "
                "This may prevent future sync operations."
            ) from e
        logger.debug("Successfully cleaned up local repository")
