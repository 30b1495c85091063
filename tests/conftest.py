"""Shared fixtures for the dorkly tests."""

import shutil
from pathlib import Path

import pytest

from _helpers import TEST_PROJECT, TESTDATA


@pytest.fixture
def test_project_path(tmp_path) -> Path:
    """A writable copy of testdata/testProject1."""
    destination = tmp_path / TEST_PROJECT
    shutil.copytree(TESTDATA / TEST_PROJECT, destination)
    return destination
