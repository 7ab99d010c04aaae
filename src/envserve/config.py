"""Configuration extraction, merging and write-back for env-serve.

A single file acts as both the source of the default configuration and the
sink for the resolved one, so browser code loading the same file sees the
effective values. Three layers are merged, lowest precedence first:

1. Values declared in the file itself.
2. Environment variables whose name matches a *top-level* key.
3. Explicit ``key.path=value`` overrides supplied on the command line.

Environment values are taken verbatim as strings. Override values are coerced
(``true``/``false``/``null``, integers, decimals, JSON documents) and may use
dotted keys to address nested mappings, e.g.::

    env-serve --set api.timeout=30 --set 'features=["search"]'

JSON files are rewritten wholesale. For ``.js`` and ``.html`` files only the
object literal assigned to the global name (``appConfig = { ... }`` by
default) is replaced; every other byte of the file is preserved.
"""
from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .literal import LiteralSyntaxError, find_literal_end, parse_object_literal

DEFAULT_GLOBAL_NAME = "appConfig"
JSON_INDENT = 4

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.[0-9]*|\.[0-9]+)")
_STRUCTURED_PREFIXES = ("{", "[", '"')
_KEYWORD_VALUES: dict[str, object] = {"true": True, "false": False, "null": None}

LOGGER = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Base class for configuration pipeline failures."""


class UnsupportedFormatError(ConfigError):
    """Raised when the config file extension is not json, js or html."""


class ConfigFileNotFoundError(ConfigError):
    """Raised when the config file does not exist."""


class ConfigFileError(ConfigError):
    """Raised when the config file cannot be read or written."""


class ConfigParseError(ConfigError):
    """Raised when a JSON config file cannot be parsed."""


class ConfigNotFoundError(ConfigError):
    """Raised when no ``<name> = {...}`` assignment exists in a script file."""


class ConfigFormatError(ConfigError):
    """Raised when an embedded config literal is malformed or cannot be located."""


class ConfigFormat(Enum):
    """Supported config file formats, keyed by file extension."""

    JSON = "json"
    JS = "js"
    HTML = "html"

    @property
    def is_script(self) -> bool:
        """Return True when the config lives in an embedded object literal."""
        return self is not ConfigFormat.JSON


@dataclass(frozen=True)
class ConfigRegion:
    """Location of an embedded config literal inside raw text.

    ``text[start:end]`` is the object literal itself, braces included.
    """

    start: int
    end: int

    def prefix(self, text: str) -> str:
        """Return the text preceding the literal."""
        return text[: self.start]

    def literal(self, text: str) -> str:
        """Return the literal itself."""
        return text[self.start : self.end]

    def suffix(self, text: str) -> str:
        """Return the text following the literal."""
        return text[self.end :]


def detect_format(path: Path | str) -> ConfigFormat:
    """Return the config format implied by the extension of *path*."""
    name = Path(path).name
    _, dot, extension = name.rpartition(".")
    if not dot:
        raise UnsupportedFormatError(f"Unsupported file type for {name!r}: no extension.")
    try:
        return ConfigFormat(extension.lower())
    except ValueError as exc:
        raise UnsupportedFormatError(f"Unsupported file type {extension!r}.") from exc


def locate_config_region(text: str, global_name: str = DEFAULT_GLOBAL_NAME) -> ConfigRegion:
    """Find the object literal assigned to *global_name* in *text*.

    The first assignment wins when the name is assigned more than once.
    """
    pattern = re.compile(rf"(?<![\w$]){re.escape(global_name)}\s*=(?![=>])\s*(?=\{{)")
    match = pattern.search(text)
    if match is None:
        raise ConfigNotFoundError(
            f"Can not find '{global_name} = {{...}}' configuration in the file."
        )
    start = match.end()
    try:
        end = find_literal_end(text, start)
    except LiteralSyntaxError as exc:
        raise ConfigFormatError(f"Wrong configuration format: {exc}") from exc
    return ConfigRegion(start=start, end=end)


def read_config(
    fmt: ConfigFormat,
    raw: str,
    global_name: str = DEFAULT_GLOBAL_NAME,
) -> dict[str, object]:
    """Extract the configuration mapping from *raw* text."""
    if fmt is ConfigFormat.JSON:
        return _read_json(raw)

    region = locate_config_region(raw, global_name)
    try:
        return parse_object_literal(region.literal(raw))
    except LiteralSyntaxError as exc:
        raise ConfigFormatError(f"Wrong configuration format: {exc}") from exc


def merge_environment(
    config: Mapping[str, object],
    env: Mapping[str, str],
) -> dict[str, object]:
    """Overlay environment values onto matching top-level keys of *config*.

    Keys missing from *config* are never imported and nested keys are never
    considered. Matching values replace the file value as raw strings.
    """
    merged = _deep_copy(config)
    for key in merged:
        if key in env:
            merged[key] = env[key]
    return merged


def coerce_value(raw: str) -> object:
    """Convert an override value to its typed representation."""
    text = raw.strip()
    if text in _KEYWORD_VALUES:
        return _KEYWORD_VALUES[text]
    if _INTEGER_RE.fullmatch(text):
        return int(text)
    if _DECIMAL_RE.fullmatch(text):
        number = float(text)
        return number if math.isfinite(number) else text
    if text.startswith(_STRUCTURED_PREFIXES):
        try:
            return _strict_json_loads(text)
        except ValueError:
            return text
    return text


def parse_override(entry: str) -> tuple[list[str], object] | None:
    """Split ``dotted.path=value`` into path segments and a coerced value.

    Returns None for entries without ``=`` or without any key segment.
    """
    key, sep, raw_value = entry.partition("=")
    if not sep:
        return None
    segments = [segment for segment in key.strip().split(".") if segment]
    if not segments:
        return None
    return segments, coerce_value(raw_value)


def apply_overrides(
    config: Mapping[str, object],
    overrides: Iterable[str],
) -> dict[str, object]:
    """Apply ``key.path=value`` overrides in order and return a new mapping."""
    merged = _deep_copy(config)
    for entry in overrides:
        parsed = parse_override(entry)
        if parsed is None:
            LOGGER.debug("Skipping override without key=value form: %r", entry)
            continue
        path, value = parsed
        _assign_nested(merged, path, value)
    return merged


def render_config(config: Mapping[str, object]) -> str:
    """Serialise *config* the way it is written back to disk."""
    return json.dumps(config, indent=JSON_INDENT, ensure_ascii=False, allow_nan=False)


def write_config(
    raw: str,
    config: Mapping[str, object],
    fmt: ConfigFormat,
    global_name: str = DEFAULT_GLOBAL_NAME,
) -> str:
    """Return *raw* with its configuration replaced by *config*."""
    rendered = render_config(config)
    if fmt is ConfigFormat.JSON:
        return rendered + "\n" if raw.endswith("\n") else rendered

    try:
        region = locate_config_region(raw, global_name)
    except ConfigNotFoundError as exc:
        raise ConfigFormatError(f"Can't locate js configuration for write: {exc}") from exc
    if fmt is ConfigFormat.HTML:
        # String values must not close the inline <script> element.
        rendered = rendered.replace("</", "<\\/")
    return region.prefix(raw) + rendered + region.suffix(raw)


def _read_json(raw: str) -> dict[str, object]:
    try:
        parsed = _strict_json_loads(raw)
    except ValueError as exc:
        raise ConfigParseError(f"Malformed JSON configuration: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ConfigParseError(
            f"JSON configuration must be an object. Got {type(parsed).__name__}."
        )
    return parsed


def _reject_constant(name: str) -> object:
    raise ValueError(f"{name} is not valid JSON")


def _strict_json_loads(text: str) -> object:
    """Parse JSON, rejecting the NaN and Infinity extensions of ``json``."""
    return json.loads(text, parse_constant=_reject_constant)


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if not isinstance(existing, MutableMapping):
            existing = {}
            current[segment] = existing
        current = existing
    current[path[-1]] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        result[key] = _copy_value(value)
    return result


def _copy_value(value: object) -> object:
    if isinstance(value, Mapping):
        return _deep_copy(value)
    if isinstance(value, list):
        return [_copy_value(item) for item in value]
    return value


__all__ = [
    "DEFAULT_GLOBAL_NAME",
    "ConfigError",
    "ConfigFileError",
    "ConfigFileNotFoundError",
    "ConfigFormat",
    "ConfigFormatError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "ConfigRegion",
    "UnsupportedFormatError",
    "apply_overrides",
    "coerce_value",
    "detect_format",
    "locate_config_region",
    "merge_environment",
    "parse_override",
    "read_config",
    "render_config",
    "write_config",
]
