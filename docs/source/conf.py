"""Sphinx configuration for the env-serve documentation."""
from __future__ import annotations

import importlib
import pathlib
import sys
from datetime import UTC, datetime

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[2]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

release = importlib.import_module("envserve").__version__
version = release

project = "env-serve"
author = "env-serve contributors"
copyright = f"{datetime.now(UTC):%Y}, env-serve contributors"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
]

autodoc_default_options = {
    "members": True,
    "undoc-members": False,
}
autodoc_mock_imports = ["typer", "rich"]

exclude_patterns: list[str] = ["_build"]

html_theme = "sphinx_rtd_theme"
html_title = f"{project} {release} Docs"

napoleon_google_docstring = False
napoleon_numpy_docstring = True
