#!/usr/bin/env python3
"""Check that a release tag matches the package version.

CI calls this before publishing: ``v<version>`` tags release the package and
``docs-v<version>`` tags publish the documentation. The version is read from
``src/envserve/__init__.py`` without importing the package.
"""
from __future__ import annotations

import argparse
import ast
import pathlib
import sys

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
INIT_PATH = PROJECT_ROOT / "src" / "envserve" / "__init__.py"
TAG_PREFIXES = {"release": "v", "docs": "docs-v"}


class TagValidationError(RuntimeError):
    """Raised when a tag does not follow the expected scheme."""


def load_package_version(init_path: pathlib.Path = INIT_PATH) -> str:
    """Return ``__version__`` parsed from *init_path*."""
    module = ast.parse(init_path.read_text(encoding="utf-8"), filename=str(init_path))
    for node in module.body:
        if not isinstance(node, ast.Assign):
            continue
        if any(getattr(target, "id", None) == "__version__" for target in node.targets):
            if isinstance(node.value, ast.Constant) and isinstance(node.value.value, str):
                return node.value.value
    raise TagValidationError(f"Unable to determine __version__ from {init_path}")


def expected_version_from_tag(tag: str, kind: str) -> str:
    """Strip the tag prefix for *kind* and return the version it names."""
    prefix = TAG_PREFIXES.get(kind)
    if prefix is None:
        raise TagValidationError(f"Unknown tag kind '{kind}'.")
    if not tag.startswith(prefix) or len(tag) == len(prefix):
        raise TagValidationError(
            f"{kind.capitalize()} tags must be formatted as {prefix}<version>; received '{tag}'."
        )
    return tag[len(prefix) :]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Return parsed CLI arguments."""
    parser = argparse.ArgumentParser(description="Validate tag name against package version.")
    parser.add_argument("--kind", required=True, choices=sorted(TAG_PREFIXES))
    parser.add_argument("--tag", required=True, help="Git tag name to validate.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point used by the release workflow."""
    args = parse_args(argv)
    try:
        expected_version = expected_version_from_tag(args.tag, args.kind)
        package_version = load_package_version()
    except TagValidationError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1

    if package_version != expected_version:
        sys.stderr.write(
            f"Tag version '{expected_version}' does not match package version "
            f"'{package_version}'.\n"
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
