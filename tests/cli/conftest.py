"""Shared fixtures for CLI tests."""

import pytest
from git import Repo

from tests.conftest import BOARD

NORMALIZED = BOARD.replace("- [/] Ship parser", "- [x] Ship parser")


@pytest.fixture
def workspace(tmp_path):
    """A directory holding a board in sync, an out-of-sync board and a plain note."""
    (tmp_path / "board.md").write_text(BOARD, encoding="utf-8")
    (tmp_path / "normalized.md").write_text(NORMALIZED, encoding="utf-8")
    (tmp_path / "notes.md").write_text("# Notes\n\nnothing here\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def repo(workspace):
    """The workspace as a git repository."""
    Repo.init(workspace)
    return workspace
