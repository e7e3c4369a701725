"""Tests for the packaging metadata in pyproject.toml."""

from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def pyproject():
    with open(ROOT / "pyproject.toml", "rb") as fh:
        return tomllib.load(fh)


def test_namespace_packages_are_discovered(pyproject):
    find = pyproject["tool"]["setuptools"]["packages"]["find"]
    assert find["namespaces"] is True
    for package in ("textrag", "cli"):
        assert not (ROOT / package / "__init__.py").exists()
        assert any(pattern.rstrip("*") == package for pattern in find["include"])


def test_console_script_target_exists(pyproject):
    module, _, attr = pyproject["project"]["scripts"]["textrag"].partition(":")
    assert (ROOT / Path(*module.split("."))).with_suffix(".py").exists()
    assert attr == "app"
