import logging
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class GitError(RuntimeError):
    """A git command exited with a non-zero status.

    Attributes:
        stderr (str): The error output of the failed command.
    """

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


def _execute(
    args: list[str], cwd: Path, capture: bool = True, env: dict | None = None
) -> str:
    """Runs `git <args>` in `cwd`, translating failures into GitError."""
    try:
        res = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=True,
            env=env,
        )
        return res.stdout.strip() if capture else ""
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise GitError(f"Git error: {stderr or e}", stderr=stderr) from e


class GitRepo:
    """A wrapper around the Git command-line interface for the mirror workspace.

    Every operation the mirror needs from Git (clone, fetch, push, checkout and
    remote bookkeeping) goes through this class, which shells out to `git` and
    raises `GitError` on failure. Authentication is supplied by the caller
    through the `env` argument of the network operations.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def clone(
        cls,
        url: str,
        path: Path,
        branch: str,
        remote_name: str,
        env: dict | None = None,
    ) -> "GitRepo":
        """Clones `url` into `path`, checking out `branch`.

        Args:
            url (str): The repository to clone.
            path (Path): The destination directory (must not exist yet).
            branch (str): The branch to check out.
            remote_name (str): Name given to the cloned-from remote.
            env (dict | None, optional): Environment for the git process.

        Returns:
            GitRepo: A wrapper around the new working copy.

        Raises:
            GitError: If the clone fails.
        """
        parent = path.resolve().parent
        parent.mkdir(parents=True, exist_ok=True)
        cmd = ["clone", "--origin", remote_name, "--branch", branch]
        cmd.extend(["--", url, str(path.resolve())])
        _execute(cmd, cwd=parent, env=env)
        return cls(path)

    @staticmethod
    def is_repository(path: Path) -> bool:
        """Checks whether git recognizes `path` itself as a working copy root.

        A directory nested inside some other repository is not considered valid.

        Args:
            path (Path): The directory to inspect.

        Returns:
            bool: True if `path` is the top level of a well-formed repository.
        """
        if not path.is_dir():
            return False
        try:
            top = _execute(["rev-parse", "--show-toplevel"], cwd=path)
        except (GitError, OSError) as e:
            logger.debug(f"rev-parse failed for '{path}': {e}")
            return False
        return bool(top) and Path(top).resolve() == path.resolve()

    def _run(
        self, args: list[str], capture: bool = True, env: dict | None = None
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Used to hand credentials
                                            to network operations.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            GitError: If the git command returns a non-zero exit code.
        """
        return _execute(args, cwd=self.path, capture=capture, env=env)

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The branch name, or an empty string on a detached HEAD.
        """
        return self._run(["branch", "--show-current"])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'refs/heads/main').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            sha = self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
            return sha or None
        except GitError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def checkout(self, branch: str) -> None:
        """Checks out a local branch.

        Args:
            branch (str): The branch name.
        """
        self._run(["checkout", branch])

    def merge_ff_only(self, rev: str) -> None:
        """Advances the current branch to `rev`, refusing anything but a fast-forward.

        Args:
            rev (str): The commit or ref to fast-forward to.

        Raises:
            GitError: If the branch has diverged from `rev`.
        """
        self._run(["merge", "--ff-only", rev])

    def remotes(self) -> list[str]:
        """Lists the names of the configured remotes.

        Returns:
            list[str]: Remote names (e.g., ['origin', 'source']).
        """
        output = self._run(["remote"])
        return output.splitlines() if output else []

    def remote_url(self, name: str) -> str | None:
        """Returns the configured URL of a remote, or None if it does not exist."""
        try:
            return self._run(["remote", "get-url", name])
        except GitError:
            return None

    def add_remote(self, name: str, url: str) -> None:
        """Adds a remote with the default fetch refspec.

        Args:
            name (str): The remote name.
            url (str): The remote URL.
        """
        self._run(["remote", "add", name, url])

    def remove_remote(self, name: str) -> None:
        """Removes a remote together with its remote-tracking refs."""
        self._run(["remote", "remove", name])

    def push_refspecs(self, name: str) -> list[str]:
        """Lists the push refspecs configured for a remote.

        Args:
            name (str): The remote name.

        Returns:
            list[str]: The configured `remote.<name>.push` values (often empty).
        """
        try:
            output = self._run(["config", "--get-all", f"remote.{name}.push"])
        except GitError:
            # `git config` exits 1 when the key is unset.
            return []
        return output.splitlines() if output else []

    def fetch(
        self, remote: str, refspecs: list[str] | None = None, env: dict | None = None
    ) -> None:
        """Fetches from a remote.

        Args:
            remote (str): The remote name.
            refspecs (list[str] | None, optional): Explicit refspecs; the remote's
                                                   configured ones when omitted.
            env (dict | None, optional): Environment for the git process.
        """
        self._run(["fetch", "--prune", remote, *(refspecs or [])], env=env)

    def push(self, remote: str, refspecs: list[str], env: dict | None = None) -> None:
        """Pushes refspecs to a remote.

        Args:
            remote (str): The remote name.
            refspecs (list[str]): The `src:dst` mappings to push.
            env (dict | None, optional): Environment for the git process.
        """
        self._run(["push", "--porcelain", remote, *refspecs], env=env)
