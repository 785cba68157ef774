"""Tests for the configuration management subsystem."""

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_mirror.config import Config, parse_bool, parse_size, parse_time


@pytest.fixture(autouse=True)
def no_default_config_file(tmp_path: Path, mocker: MagicMock) -> None:
    """Keeps a stray gitmirror.toml in the working directory out of the tests."""
    mocker.patch("git_mirror.config.CONFIG_FILE", tmp_path / "absent.toml")


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.source.branch == "main"
    assert conf.target.url == ""
    assert conf.mirror.local_path == Path("./temp_repo")
    assert conf.mirror.sync_interval == 300
    assert conf.mirror.keep_workspace is False
    assert conf.logging.level == "INFO"


def test_token_is_hidden_from_repr() -> None:
    """Verifies that endpoint tokens never show up in logged reprs."""
    conf = Config.load(environ={}, overrides={"source": {"token": "s3cret"}})
    assert conf.source.token == "s3cret"
    assert "s3cret" not in repr(conf)


def test_config_load_merges_layers(tmp_path: Path) -> None:
    """Verifies the precedence order: file < environment < command line.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    config_file = tmp_path / "gitmirror.toml"
    config_file.write_text(
        '[source]\nurl = "https://example.com/src.git"\nbranch = "develop"\n'
        '[target]\nurl = "https://example.com/file.git"\n'
        '[mirror]\nsync_interval = "10m"\nlocal_path = "/tmp/from-file"\n'
    )
    environ = {
        "GITMIRROR__TARGET__URL": "https://example.com/env.git",
        "GITMIRROR__MIRROR__SYNC_INTERVAL": "120",
        "UNRELATED": "x",
    }
    overrides = {"mirror": {"sync_interval": "30s"}}

    conf = Config.load(config_file, environ=environ, overrides=overrides)

    assert conf.source.url == "https://example.com/src.git"  # From file
    assert conf.source.branch == "develop"  # From file
    assert conf.target.url == "https://example.com/env.git"  # Env overrides file
    assert conf.mirror.local_path == Path("/tmp/from-file")
    assert conf.mirror.sync_interval == 30  # CLI overrides env


def test_config_load_appsettings_json(tmp_path: Path) -> None:
    """Verifies that an appsettings-style JSON file with PascalCase keys loads."""
    config_file = tmp_path / "appsettings.json"
    config_file.write_text(
        json.dumps(
            {
                "GitMirror": {
                    "SourceRepository": {
                        "Url": "https://github.com/acme/app.git",
                        "Branch": "main",
                    },
                    "TargetRepository": {
                        "Url": "https://gitlab.com/acme/app.git",
                        "Username": "bot",
                        "Token": "abc",
                    },
                    "LocalPath": "./work",
                    "SyncInterval": 600,
                }
            }
        )
    )

    conf = Config.load(config_file, environ={})

    assert conf.source.url == "https://github.com/acme/app.git"
    assert conf.target.username == "bot"
    assert conf.target.token == "abc"
    assert conf.mirror.local_path == Path("./work")
    assert conf.mirror.sync_interval == 600


def test_environment_keys_are_case_insensitive() -> None:
    """Verifies that mixed-case double-underscore environment names are accepted."""
    environ = {
        "GitMirror__TargetRepository__Token": "tok",
        "GITMIRROR__LOCALPATH": "/srv/mirror",
        "GITMIRROR__MIRROR__KEEP_WORKSPACE": "true",
    }

    conf = Config.load(environ=environ)

    assert conf.target.token == "tok"
    assert conf.mirror.local_path == Path("/srv/mirror")
    assert conf.mirror.keep_workspace is True


def test_missing_explicit_config_file_warns(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a missing --config file is reported but not fatal."""
    caplog.set_level(logging.WARNING)

    conf = Config.load(tmp_path / "nope.toml", environ={})

    assert conf.mirror.sync_interval == 300
    assert "not found" in caplog.text


def test_config_syntax_error_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a broken TOML file is skipped with an error message."""
    caplog.set_level(logging.ERROR)
    config_file = tmp_path / "gitmirror.toml"
    config_file.write_text("[source\nurl = ")

    conf = Config.load(config_file, environ={})

    assert conf.source.url == ""
    assert "Config syntax error" in caplog.text


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    config_file = tmp_path / "gitmirror.toml"
    config_file.write_text(
        "[mirror]\n"
        'sync_interval = "fast"\n'
        'fake_setting = "ignored"\n'
        "[logging]\n"
        'max_log_size = "10 gallons"\n'
        'level = "LOUD"\n'
    )

    conf = Config.load(config_file, environ={})

    # Assert fallbacks to defaults
    assert conf.mirror.sync_interval == 300
    assert conf.logging.max_log_size == 5242880
    assert conf.logging.level == "INFO"

    # Assert warnings were logged
    assert "Unknown config keys in [mirror]: fake_setting" in caplog.text
    assert "Config error in [mirror].sync_interval: Invalid time format" in caplog.text
    assert "Config error in [logging].max_log_size: Invalid size format" in caplog.text
    assert "Config error in [logging].level: Invalid log level" in caplog.text


def test_validate_reports_missing_urls() -> None:
    """Verifies that endpoints without URLs are rejected before running."""
    problems = Config().validate()

    assert "source repository URL is not configured" in problems
    assert "target repository URL is not configured" in problems


def test_validate_accepts_complete_config() -> None:
    """Verifies that a fully specified configuration has no problems."""
    conf = Config.load(
        environ={},
        overrides={
            "source": {"url": "https://a/b.git"},
            "target": {"url": "https://c/d.git"},
        },
    )
    assert conf.validate() == []


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("2048") == 2048
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time("300") == 300
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200
    assert parse_time("1.5h") == 5400

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


def test_parse_bool() -> None:
    """Verifies environment-style boolean parsing."""
    assert parse_bool(True) is True
    assert parse_bool("yes") is True
    assert parse_bool("0") is False

    with pytest.raises(ValueError, match=r"Invalid boolean 'maybe'"):
        parse_bool("maybe")
