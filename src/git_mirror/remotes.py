import logging

from .constants import APP_NAME
from .errors import TransportFailed
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


def branch_refspec(branch: str) -> str:
    """Returns the refspec pushing a local branch to the same-named remote branch."""
    return f"refs/heads/{branch}:refs/heads/{branch}"


class RemoteManager:
    """Keeps the workspace's named remotes pointed at the configured URLs."""

    def ensure(self, repo: GitRepo, name: str, desired_url: str) -> None:
        """Makes remote `name` point at `desired_url`.

        An existing remote is always removed and re-added rather than edited,
        so no refspec configuration from an older URL survives.

        Args:
            repo (GitRepo): The workspace repository.
            name (str): The remote name.
            desired_url (str): The URL the remote must have.
        """
        if name in repo.remotes():
            logger.debug(f"Replacing remote '{name}'")
            repo.remove_remote(name)
        repo.add_remote(name, desired_url)

    def push_refspecs(self, repo: GitRepo, name: str) -> list[str]:
        """Resolves the refspecs to push to remote `name`.

        Falls back to pushing the current branch to the same-named branch when
        the remote carries no configured push refspecs.

        Args:
            repo (GitRepo): The workspace repository.
            name (str): The remote name.

        Returns:
            list[str]: At least one refspec.

        Raises:
            TransportFailed: If there are no refspecs and HEAD is detached.
        """
        refspecs = repo.push_refspecs(name)
        if refspecs:
            return refspecs

        branch = repo.current_branch()
        if not branch:
            raise TransportFailed(
                "No push refspecs found and no current branch detected"
            )
        logger.debug(f"Using current branch for push: {branch}")
        return [branch_refspec(branch)]
