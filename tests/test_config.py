"""Tests for the configuration management subsystem."""

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from gsync.config import (
    GitConfigStore,
    SessionConfig,
    Settings,
    parse_duration,
    parse_size,
    resolve_session,
)


@pytest.fixture(autouse=True)
def clear_config_cache() -> Any:
    """Ensures every test starts with a clean settings cache."""
    Settings._global_cache = None
    yield
    Settings._global_cache = None


class MemoryStore:
    """In-memory stand-in for the git config store."""

    def __init__(self, **values: str) -> None:
        self.values: dict[str, str | bool] = dict(values)

    def get(self, name: str) -> str | bool | None:
        return self.values.get(name)

    def set(self, name: str, value: str | bool) -> None:
        self.values[name] = value


def test_settings_defaults() -> None:
    """Verifies that the settings initialize with sensible defaults."""
    conf = Settings()
    assert conf.watch.debounce == 0.2
    assert conf.watch.ignore == []
    assert conf.logging.max_log_size == 5 * 1024 * 1024


def test_settings_load_merges_layers(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    global_config_path = tmp_path / "global_config.toml"
    global_config_path.write_text(
        '[watch]\ndebounce = "1s"\nignore = ["dist"]\n'
        '[logging]\nmax_log_size = "1MB"\n'
    )
    local_toml = tmp_path / "gsync.toml"
    local_toml.write_text('[watch]\ndebounce = "500ms"\nignore = ["*.swp"]\n')

    mocker.patch("gsync.config.CONFIG_FILE", global_config_path)

    conf = Settings.load(repo_path=tmp_path)

    assert conf.watch.debounce == pytest.approx(0.5)  # Local overrides Global
    assert conf.logging.max_log_size == 1024 * 1024  # From Global
    assert conf.watch.ignore == ["dist", "*.swp"]  # Appended


def test_settings_load_does_not_leak_into_cache(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that local ignore patterns do not mutate the cached global layer."""
    mocker.patch("gsync.config.CONFIG_FILE", tmp_path / "missing.toml")
    (tmp_path / "gsync.toml").write_text('[watch]\nignore = ["build"]\n')

    Settings.load(repo_path=tmp_path)

    assert Settings.load().watch.ignore == []


def test_settings_load_from_pyproject(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that settings can be loaded from pyproject.toml."""
    mocker.patch("gsync.config.CONFIG_FILE", tmp_path / "missing.toml")
    (tmp_path / "pyproject.toml").write_text("[tool.gsync.watch]\ndebounce = 2\n")

    conf = Settings.load(repo_path=tmp_path)

    assert conf.watch.debounce == 2.0


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_duration() -> None:
    """Verifies that human-readable durations are correctly converted to seconds."""
    assert parse_duration(3) == 3.0
    assert parse_duration("200ms") == pytest.approx(0.2)
    assert parse_duration("1.5s") == 1.5
    assert parse_duration("2 min") == 120

    with pytest.raises(ValueError, match=r"Invalid duration format 'soon'"):
        parse_duration("soon")


def test_settings_invalid_keys_and_values(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fall back to defaults."""
    import logging

    caplog.set_level(logging.WARNING)
    mocker.patch("gsync.config.CONFIG_FILE", tmp_path / "missing.toml")
    (tmp_path / "gsync.toml").write_text(
        '[watch]\ndebounce = "whenever"\nfake_setting = 1\n'
    )

    conf = Settings.load(repo_path=tmp_path)

    assert conf.watch.debounce == 0.2
    assert "Unknown config keys in [watch]: fake_setting" in caplog.text
    assert "Config error in [watch].debounce: Invalid duration format" in caplog.text


def test_git_config_store_round_trips_booleans() -> None:
    """Verifies the string encoding used for persisted values."""
    repo = MagicMock()
    store = GitConfigStore(repo)

    store.set("update", True)
    repo.config_set.assert_called_with("gsync.update", "true")

    repo.config_get.return_value = "false"
    assert store.get("update") is False

    repo.config_get.return_value = "host:/repo"
    assert store.get("repositoryUri") == "host:/repo"

    repo.config_get.return_value = None
    assert store.get("branch") is None


def test_resolve_prefers_explicit_values(tmp_path: Path) -> None:
    """Verifies the explicit flag > stored value order and write-back."""
    store = MemoryStore(branch="old", repositoryUri="old:/repo")

    conf = resolve_session(tmp_path, branch="feature", store=store)

    assert conf.branch == "feature"
    assert conf.repository_uri == "old:/repo"
    assert conf.master == "master"
    assert store.values["branch"] == "feature"


def test_resolve_reuses_previous_launch(tmp_path: Path) -> None:
    """Verifies that a bare launch reuses the remembered parameters."""
    store = MemoryStore(branch="feature", repositoryUri="host:/repo")

    conf = resolve_session(tmp_path, master="main", update=True, store=store)

    assert conf == SessionConfig(
        branch="feature",
        root=tmp_path,
        repository_uri="host:/repo",
        master="main",
        update=True,
    )


def test_resolve_single_implies_update(tmp_path: Path) -> None:
    """Verifies that single mode publishes the local state like update mode."""
    conf = resolve_session(tmp_path, branch="feature", single=True, store=MemoryStore())

    assert conf.update is True
    assert conf.single is True
    assert "update: True | single: True" in conf.describe()


def test_resolve_without_branch_exits(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that a launch with no known branch stops immediately."""
    mocker.patch("gsync.config.console")

    with pytest.raises(SystemExit) as exc:
        resolve_session(tmp_path, store=MemoryStore())
    assert exc.value.code == 1


def test_session_config_derived_values(tmp_path: Path) -> None:
    """Verifies the mirror remote name and launch banner."""
    conf = SessionConfig(branch="feature", root=tmp_path, repository_uri="host:/repo")

    assert conf.remote == "feature_origin"
    assert conf.describe() == (
        "branch: feature | repositoryUri: host:/repo | master: master"
    )
