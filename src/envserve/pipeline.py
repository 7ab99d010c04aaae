"""Run the config pipeline against a file on disk.

The pipeline runs once, before any listener is created::

    detect format -> existence check -> read -> parse
        -> environment overlay -> overrides -> splice -> write back

Every failure is raised before the write, so an invalid file is never touched.
The write itself overwrites the file in place without a temporary file and
rename; a crash in the middle of the write can leave a truncated file.
"""
from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .config import (
    DEFAULT_GLOBAL_NAME,
    ConfigFileError,
    ConfigFileNotFoundError,
    ConfigFormat,
    apply_overrides,
    detect_format,
    merge_environment,
    read_config,
    write_config,
)


@dataclass(frozen=True)
class ConfigDocument:
    """A config file as read from disk."""

    path: Path
    format: ConfigFormat
    raw: str
    config: dict[str, object]


@dataclass(frozen=True)
class ResolvedConfig:
    """Outcome of a pipeline run."""

    path: Path
    format: ConfigFormat
    config: dict[str, object]
    text: str
    changed: bool
    written: bool

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable summary."""
        return {
            "path": str(self.path),
            "format": self.format.value,
            "changed": self.changed,
            "written": self.written,
            "config": self.config,
        }


def config_exists(path: Path) -> bool:
    """Return True when *path* points at an existing regular file."""
    return path.is_file()


def read_config_file(path: Path) -> str:
    """Read *path* as UTF-8 without translating line endings."""
    try:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()
    except UnicodeDecodeError as exc:
        raise ConfigFileError(f"Config file {path} is not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise ConfigFileError(f"Unable to read config file {path}: {exc}") from exc


def write_config_file(path: Path, text: str) -> None:
    """Overwrite *path* in place with *text*."""
    try:
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(text)
    except OSError as exc:
        raise ConfigFileError(f"Unable to write config file {path}: {exc}") from exc


def load_document(path: Path, global_name: str = DEFAULT_GLOBAL_NAME) -> ConfigDocument:
    """Detect, check, read and parse the config file at *path*."""
    fmt = detect_format(path)
    if not config_exists(path):
        raise ConfigFileNotFoundError(f"Can't find config file under path {path}")
    raw = read_config_file(path)
    return ConfigDocument(
        path=path,
        format=fmt,
        raw=raw,
        config=read_config(fmt, raw, global_name),
    )


def resolve(
    document: ConfigDocument,
    env: Mapping[str, str],
    overrides: Iterable[str] = (),
) -> dict[str, object]:
    """Merge environment values and overrides over the file's own values."""
    merged = merge_environment(document.config, env)
    return apply_overrides(merged, overrides)


def run_pipeline(
    path: Path,
    *,
    global_name: str = DEFAULT_GLOBAL_NAME,
    env: Mapping[str, str] | None = None,
    overrides: Iterable[str] = (),
    write: bool = True,
) -> ResolvedConfig:
    """Resolve the config stored at *path* and write it back.

    ``env`` defaults to the process environment. With ``write=False`` the
    resolved text is computed but the file is left alone.
    """
    document = load_document(path, global_name)
    config = resolve(document, os.environ if env is None else env, overrides)
    text = write_config(document.raw, config, document.format, global_name)
    changed = text != document.raw
    if write:
        write_config_file(path, text)
    return ResolvedConfig(
        path=path,
        format=document.format,
        config=config,
        text=text,
        changed=changed,
        written=write,
    )


__all__ = [
    "ConfigDocument",
    "ResolvedConfig",
    "config_exists",
    "load_document",
    "read_config_file",
    "resolve",
    "run_pipeline",
    "write_config_file",
]
