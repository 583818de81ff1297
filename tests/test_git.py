"""Tests for git module."""

import pytest
from git import Repo

from markban.git import is_git_repo, read_git_config, write_git_config_key


@pytest.fixture
def temp_repo(tmp_path):
    """Create a temporary git repository."""
    repo_path = tmp_path / "repo"
    repo_path.mkdir()
    repo = Repo.init(repo_path)
    # Create an initial commit so the repo is valid
    (repo_path / "README.md").write_text("# Test")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")
    return repo_path


def test_is_git_repo_true(temp_repo):
    """Returns True for a git repository."""
    assert is_git_repo(temp_repo) is True


def test_is_git_repo_subdirectory(temp_repo):
    """Returns True inside a repository's subdirectory."""
    sub = temp_repo / "boards"
    sub.mkdir()
    assert is_git_repo(sub) is True


def test_is_git_repo_false(tmp_path):
    """Returns False for a non-git directory."""
    assert is_git_repo(tmp_path) is False


def test_is_git_repo_missing_path(tmp_path):
    assert is_git_repo(tmp_path / "nope") is False


def test_read_git_config_defaults(temp_repo):
    """Missing markban keys are filled from defaults."""
    section = read_git_config(temp_repo)["markban"]
    assert section["sync_enabled"] is True
    assert section["auto_sync"] is False
    assert section["cooldown_ms"] == 300
    assert section["complete_marker"] == "[x]"


def test_write_and_read_back(temp_repo):
    write_git_config_key(temp_repo, "markban", "cooldown_ms", 500)
    write_git_config_key(temp_repo, "markban", "auto_sync", True)
    write_git_config_key(temp_repo, "markban", "complete_marker", "[v]")

    section = read_git_config(temp_repo)["markban"]
    assert section["cooldown_ms"] == 500
    assert section["auto_sync"] is True
    assert section["complete_marker"] == "[v]"


def test_keys_are_hyphenated_in_git(temp_repo):
    write_git_config_key(temp_repo, "markban", "min_write_interval_ms", 50)
    reader = Repo(temp_repo).config_reader()
    assert reader.get_value("markban", "min-write-interval-ms") == 50


def test_bool_coercion(temp_repo):
    writer = Repo(temp_repo).config_writer("repository")
    writer.set_value("markban", "protect-normalization", "no")
    writer.release()
    assert read_git_config(temp_repo)["markban"]["protect_normalization"] is False


def test_bad_number_raises(temp_repo):
    writer = Repo(temp_repo).config_writer("repository")
    writer.set_value("markban", "cooldown-ms", "soon")
    writer.release()
    with pytest.raises(ValueError):
        read_git_config(temp_repo)


def test_subsections_skipped(temp_repo):
    Repo(temp_repo).create_remote("origin", "https://example.com/repo.git")
    config = read_git_config(temp_repo)
    assert not any('"' in name for name in config)
