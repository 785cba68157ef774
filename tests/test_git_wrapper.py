import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_mirror.git_wrapper import GitError, GitRepo


def _repo(tmp_path: Path) -> GitRepo:
    # Create a fake .git directory so GitRepo accepts the path
    (tmp_path / ".git").mkdir()
    return GitRepo(tmp_path)


def test_rejects_non_repository(tmp_path: Path) -> None:
    """Verifies that a directory without .git cannot be wrapped."""
    with pytest.raises(ValueError, match="Not a git repository"):
        GitRepo(tmp_path)


def test_run_raises_git_error_with_stderr(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that failed commands surface git's stderr for diagnosis."""
    repo = _repo(tmp_path)
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            128, ["git", "push"], stderr="remote: Permission denied\n"
        ),
    )

    with pytest.raises(GitError) as excinfo:
        repo.push("origin", ["refs/heads/main:refs/heads/main"])

    assert excinfo.value.stderr == "remote: Permission denied"
    assert "Permission denied" in str(excinfo.value)


def test_clone_names_source_remote(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies the clone command line, branch and remote naming."""
    target = tmp_path / "work" / "repo"

    def fake_run(cmd: list[str], **kwargs: object) -> MagicMock:
        (target / ".git").mkdir(parents=True)
        return MagicMock(stdout="")

    mock_run = mocker.patch("subprocess.run", side_effect=fake_run)

    repo = GitRepo.clone(
        "https://example.com/a.git", target, "main", "source", env={"X": "1"}
    )

    assert repo.path == target
    cmd = mock_run.call_args[0][0]
    assert cmd == [
        "git",
        "clone",
        "--origin",
        "source",
        "--branch",
        "main",
        "--",
        "https://example.com/a.git",
        str(target.resolve()),
    ]
    assert mock_run.call_args.kwargs["env"] == {"X": "1"}
    assert mock_run.call_args.kwargs["cwd"] == target.resolve().parent


def test_is_repository_requires_top_level(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that a directory nested in another repository is not valid."""
    nested = tmp_path / "nested"
    nested.mkdir()

    mocker.patch("subprocess.run", return_value=MagicMock(stdout=f"{tmp_path}\n"))
    assert GitRepo.is_repository(nested) is False
    assert GitRepo.is_repository(tmp_path) is True


def test_is_repository_missing_path(tmp_path: Path) -> None:
    """Verifies that an absent path is never a repository."""
    assert GitRepo.is_repository(tmp_path / "absent") is False


def test_is_repository_git_failure(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that git refusing the directory means it is not valid."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(128, ["git"], stderr="fatal"),
    )
    assert GitRepo.is_repository(tmp_path) is False


def test_rev_parse_returns_none_on_failure(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that unresolvable revisions map to None."""
    repo = _repo(tmp_path)
    mock_run = mocker.patch.object(repo, "_run", side_effect=GitError("bad"))

    assert repo.rev_parse("refs/heads/missing") is None
    mock_run.assert_called_once_with(
        ["rev-parse", "--verify", "--quiet", "refs/heads/missing^{commit}"]
    )


def test_push_refspecs_empty_when_unset(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that an unset remote.<name>.push yields no refspecs."""
    repo = _repo(tmp_path)
    mocker.patch.object(repo, "_run", side_effect=GitError("exit 1"))

    assert repo.push_refspecs("origin") == []


def test_network_operations_pass_env(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies fetch and push command lines and environment propagation."""
    repo = _repo(tmp_path)
    mock_run = mocker.patch.object(repo, "_run", return_value="")
    env = {"GIT_TERMINAL_PROMPT": "0"}

    repo.fetch("source", env=env)
    mock_run.assert_called_with(["fetch", "--prune", "source"], env=env)

    repo.push("origin", ["refs/heads/main:refs/heads/main"], env=env)
    mock_run.assert_called_with(
        ["push", "--porcelain", "origin", "refs/heads/main:refs/heads/main"], env=env
    )


def test_remotes_listing(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that remote names are split into a list."""
    repo = _repo(tmp_path)
    mocker.patch.object(repo, "_run", return_value="origin\nsource")

    assert repo.remotes() == ["origin", "source"]
