"""
Pytest configuration for the swc test suite.
"""

import os
import sys
import textwrap
from pathlib import Path

import pytest


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (real processes and multi-second waits)"
    )
    config.addinivalue_line(
        "markers", "posix: requires POSIX process groups and signals"
    )


def pytest_collection_modifyitems(config, items):
    if os.name == "posix":
        return
    skip_posix = pytest.mark.skip(reason="requires POSIX process groups and signals")
    for item in items:
        if "posix" in item.keywords:
            item.add_marker(skip_posix)


@pytest.fixture
def make_executable(tmp_path):
    """
    Factory writing a small Python script as an executable file.

    Usage:
        path = make_executable("fake-tool", "print('hi')")
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def _make(name: str, body: str) -> str:
        path = bin_dir / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        path.chmod(0o755)
        return str(path)

    return _make


@pytest.fixture
def output_dir(tmp_path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def workspace_root(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path
