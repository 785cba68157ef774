"""Git Mirror: keep a target Git repository in step with a source repository.

This package provides the command-line interface, the daemon loop and the
synchronization engine that mirrors one branch of a source remote to a
target remote through a single local working copy.
"""

from . import (
    cli,
    config,
    constants,
    credentials,
    daemon,
    errors,
    git_wrapper,
    remotes,
    sync,
    workspace,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "credentials",
    "daemon",
    "errors",
    "git_wrapper",
    "remotes",
    "sync",
    "workspace",
]
