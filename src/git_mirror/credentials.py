"""Credential resolution for the source and target remotes.

Credentials are resolved fresh for every authenticated git operation through a
three-tier chain: explicit token configuration, the system `git credential`
helper, then whatever ambient mechanism git itself supports (SSH agent,
credential cache). Nothing is cached or persisted.
"""

import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from .config import RepositoryEndpoint
from .constants import APP_NAME, CREDENTIAL_HELPER_TIMEOUT, ENV_PREFIX
from .errors import CredentialResolutionExhausted

logger = logging.getLogger(APP_NAME)

HELPER_SCHEMES = ("http", "https")

# Inline credential helper that answers git's `get` requests from the
# environment of the calling process.
_ENV_HELPER = (
    '!f() { test "$1" = get || exit 0; '
    'echo "username=${GIT_MIRROR_USERNAME}"; '
    'echo "password=${GIT_MIRROR_PASSWORD}"; }; f'
)


@dataclass(frozen=True)
class CredentialResult:
    """A username/secret pair for one authenticated operation."""

    username: str
    secret: str = field(repr=False)


class CredentialProvider:
    """Base class for anything that can supply credentials for a URL."""

    def resolve(
        self, endpoint: RepositoryEndpoint, url: str
    ) -> CredentialResult | None:
        """Returns credentials for `url`, or None if this provider has none.

        Args:
            endpoint (RepositoryEndpoint): The configured endpoint being accessed.
            url (str): The URL being authenticated.

        Returns:
            CredentialResult | None: The credentials, or None.
        """
        return None


class StaticCredentials(CredentialProvider):
    """Always returns the same credentials. Useful for embedding and tests."""

    def __init__(self, username: str, secret: str):
        self._result = CredentialResult(username=username, secret=secret)

    def resolve(
        self, endpoint: RepositoryEndpoint, url: str
    ) -> CredentialResult | None:
        return self._result


def is_interactive() -> bool:
    """Checks whether a user could answer a credential dialog or prompt."""
    try:
        return sys.stdin.isatty() and sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


def build_helper_request(url: str) -> str | None:
    """Builds the `git credential fill` input for a URL.

    Args:
        url (str): An http(s) repository URL.

    Returns:
        str | None: The key=value lines terminated by a blank line, or None if
                    the URL is not one the helper can answer for.
    """
    parts = urlsplit(url)
    if parts.scheme.lower() not in HELPER_SCHEMES or not parts.hostname:
        return None

    lines = [f"protocol={parts.scheme.lower()}", f"host={parts.hostname}"]
    try:
        port = parts.port
    except ValueError:
        return None
    default_port = 443 if parts.scheme.lower() == "https" else 80
    if port is not None and port != default_port:
        lines.append(f"port={port}")
    lines.append(f"path={parts.path.lstrip('/')}")
    return "\n".join(lines) + "\n\n"


def parse_helper_output(output: str) -> CredentialResult | None:
    """Extracts `username=` and `password=` lines from helper output.

    Returns:
        CredentialResult | None: Credentials if both values are non-empty.
    """
    username = None
    password = None
    for line in output.splitlines():
        if line.startswith("username="):
            username = line[len("username=") :].strip()
        elif line.startswith("password="):
            password = line[len("password=") :].strip()

    if username and password:
        return CredentialResult(username=username, secret=password)
    return None


class GitCredentialHelper(CredentialProvider):
    """Asks the system credential helper via `git credential fill`.

    The helper may show an interactive dialog (OAuth/device flow), so it gets a
    generous timeout. On timeout the process is killed and treated as having
    no credentials.
    """

    def __init__(self, timeout: float = CREDENTIAL_HELPER_TIMEOUT):
        self.timeout = timeout

    def resolve(
        self, endpoint: RepositoryEndpoint, url: str
    ) -> CredentialResult | None:
        request = build_helper_request(url)
        if request is None:
            logger.debug(f"No credential helper lookup for non-http URL {url}")
            return None

        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "1"
        env["GCM_INTERACTIVE"] = "auto"

        try:
            proc = subprocess.Popen(
                ["git", "credential", "fill"],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
            )
        except OSError as e:
            logger.debug(f"Could not start git credential helper: {e}")
            return None

        # Input is closed before waiting; output is only read after exit.
        try:
            proc.stdin.write(request)
            proc.stdin.close()
        except OSError as e:
            logger.debug(f"Could not write to git credential helper: {e}")

        logger.info(
            "Waiting for Git credential authentication (this may show a dialog)..."
        )
        try:
            proc.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Git credential process timed out - killing process")
            proc.kill()
            proc.wait()
            self._close(proc)
            return None

        stdout = proc.stdout.read()
        stderr = proc.stderr.read()
        self._close(proc)

        if proc.returncode != 0:
            logger.warning(
                f"Git credential process exited with code: {proc.returncode}"
            )
            if stderr.strip():
                logger.debug(f"Git credential error output: {stderr.strip()}")
            return None

        result = parse_helper_output(stdout)
        if result is None:
            logger.warning(
                "Git credential helper returned success but no valid username/password"
            )
        return result

    @staticmethod
    def _close(proc: subprocess.Popen) -> None:
        for stream in (proc.stdout, proc.stderr):
            if stream:
                stream.close()


class CredentialResolver(CredentialProvider):
    """Resolves credentials through explicit config, a helper, then ambient auth.

    Attributes:
        helper (CredentialProvider | None): The second-tier provider. Defaults
            to `GitCredentialHelper`; pass None to skip straight to ambient.
    """

    def __init__(self, helper: CredentialProvider | None = None):
        self.helper = helper if helper is not None else GitCredentialHelper()

    def resolve(
        self, endpoint: RepositoryEndpoint, url: str
    ) -> CredentialResult | None:
        """Returns explicit or helper credentials, or None for ambient auth."""
        logger.debug(f"Credential request for {url}")

        # 1. Explicit configuration.
        if endpoint.token:
            logger.debug(f"Using provided credentials for {url}")
            return CredentialResult(
                username=endpoint.username or endpoint.token, secret=endpoint.token
            )

        # 2. System credential helper.
        try:
            return self._from_helper(endpoint, url)
        except CredentialResolutionExhausted as e:
            logger.debug(str(e))

        # 3. Ambient credentials.
        logger.debug(f"Using default credentials for {url}")
        return None

    def _from_helper(
        self, endpoint: RepositoryEndpoint, url: str
    ) -> CredentialResult:
        log_credential_guidance(url)
        try:
            result = self.helper.resolve(endpoint, url)
        except Exception as e:
            logger.warning(
                f"Failed to get credentials from credential helper for {url}: {e}"
            )
            result = None

        if result is None:
            raise CredentialResolutionExhausted(
                f"No explicit or helper credentials for {url}"
            )
        logger.info(f"Obtained credentials for {url} from the credential helper")
        return result


def log_credential_guidance(url: str) -> None:
    """Tells operators how authentication is about to be attempted."""
    if build_helper_request(url) is None:
        return
    logger.info(f"Git authentication required for {url}")
    if is_interactive():
        logger.info(
            "If a dialog appears, complete authentication "
            f"(waiting up to {CREDENTIAL_HELPER_TIMEOUT} seconds)."
        )
    else:
        logger.info(
            "Running non-interactively. Consider setting an explicit token, "
            f"e.g. {ENV_PREFIX}TARGET__TOKEN=<token>"
        )


def credential_env(
    credentials: CredentialResult | None, base: dict | None = None
) -> dict:
    """Builds the environment for a git transport command.

    Prompts are disabled so a missing credential fails instead of hanging.
    Resolved credentials are handed over through an environment-scoped
    credential helper, keeping them off the command line.

    Args:
        credentials (CredentialResult | None): Resolved credentials, or None
            to let git use its ambient mechanisms.
        base (dict | None, optional): Starting environment. Defaults to
            a copy of `os.environ`.

    Returns:
        dict: The environment to pass to `GitRepo` network operations.
    """
    env = dict(os.environ if base is None else base)
    env["GIT_TERMINAL_PROMPT"] = "0"
    if credentials is None:
        return env

    index = int(env.get("GIT_CONFIG_COUNT", "0") or 0)
    # An empty value resets any inherited helper list first.
    env[f"GIT_CONFIG_KEY_{index}"] = "credential.helper"
    env[f"GIT_CONFIG_VALUE_{index}"] = ""
    env[f"GIT_CONFIG_KEY_{index + 1}"] = "credential.helper"
    env[f"GIT_CONFIG_VALUE_{index + 1}"] = _ENV_HELPER
    env["GIT_CONFIG_COUNT"] = str(index + 2)
    env["GIT_MIRROR_USERNAME"] = credentials.username
    env["GIT_MIRROR_PASSWORD"] = credentials.secret
    return env
