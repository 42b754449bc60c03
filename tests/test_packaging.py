"""
Checks that pyproject.toml only points at files that exist in the repo.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def _pyproject() -> dict:
    with open(ROOT / "pyproject.toml", "rb") as f:
        return tomllib.load(f)


def test_readme_exists_if_declared() -> None:
    readme = _pyproject()["project"].get("readme")
    if readme is not None:
        assert (ROOT / readme).is_file()


def test_package_dirs_exist() -> None:
    package_dir = _pyproject()["tool"]["setuptools"]["package-dir"]
    for package, path in package_dir.items():
        assert (ROOT / path / "__init__.py").is_file(), package
