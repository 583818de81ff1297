"""Shared fixtures for markban tests."""

import pytest

from markban.models import Policy

BOARD = """\
---
kanban-plugin: basic
---

# Sprint

## Todo

- [ ] Write docs
- [ ] Fix login
  needs a repro

## In Progress

- [/] Ship parser

## Done

- [x] Set up CI
"""


@pytest.fixture
def policy():
    return Policy({"Todo": "[ ]", "In Progress": "[/]", "Done": "[x]"})


@pytest.fixture
def board_text():
    return BOARD
