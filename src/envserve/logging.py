"""Structured operation logging for env-serve.

Every CLI invocation is recorded twice:

* one JSON object per line in ``operations.jsonl`` (command, arguments,
  steps, result and runtime context), for tooling;
* a one-line summary in ``env-serve.log`` through a standard
  :class:`logging.FileHandler` on the ``envserve`` logger, which also
  receives the listener's request log.

Logging never breaks a command. When the directory cannot be created, or a
write fails, the logger disables itself and later calls become no-ops.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from . import __version__

OPERATIONS_LOG_NAME = "operations.jsonl"
HUMAN_LOG_NAME = "env-serve.log"
ROOT_LOGGER_NAME = "envserve"
HUMAN_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_STATUS_LEVELS = {
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _iso_now() -> str:
    return datetime.now(UTC).isoformat()


def _sanitise(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final result of a single operation."""

    def __init__(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Start timing *command*."""
        self.op_id = uuid.uuid4().hex
        self.command = command
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None
        self._started_at = _iso_now()
        self._started = time.monotonic()

    def add_step(self, name: str, *, status: str = "success", detail: object = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"name": name, "status": status, "timestamp": _iso_now()}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._finish("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] = (),
        errors: Sequence[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._finish(
            "warning",
            message,
            changed=changed,
            warnings=list(warnings),
            errors=list(errors),
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed with exit status *rc*."""
        self._finish(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _finish(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
        rc: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        self.result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": warnings or [],
            "errors": errors or [],
            "rc": rc,
            "context": _sanitise(dict(context or {})),
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON-safe record written to ``operations.jsonl``."""
        result = self.result or {"status": "unknown", "message": "", "rc": None}
        return {
            "op_id": self.op_id,
            "timestamp": self._started_at,
            "command": self.command,
            "args": _sanitise(self.args),
            "target": _sanitise(self.target),
            "steps": _sanitise(self.steps),
            "result": result,
            "context": {
                "envserve_version": __version__,
                "duration_ms": int((time.monotonic() - self._started) * 1000),
            },
        }


class StructuredLogger:
    """Write operation records and the human-readable log."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare *logs_dir*; disable logging when it is unusable."""
        self._operations_log_path = logs_dir / OPERATIONS_LOG_NAME
        self._human_log_path = logs_dir / HUMAN_LOG_NAME
        self._handler: logging.Handler | None = None
        self._enabled = True
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(self._human_log_path, encoding="utf-8")
        except OSError:
            self._enabled = False
            return
        handler.setFormatter(logging.Formatter(HUMAN_LOG_FORMAT))
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.addHandler(handler)
        if root.level == logging.NOTSET or root.level > logging.INFO:
            root.setLevel(logging.INFO)
        self._handler = handler

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` recorded when the block exits.

        An exception escaping the block is recorded as an error (unless a
        result was already set) and re-raised.
        """
        scope = OperationScope(command, args=args, target=target)
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            self._record(scope)

    def close(self) -> None:
        """Detach and close the human-readable log handler."""
        if self._handler is None:
            return
        logging.getLogger(ROOT_LOGGER_NAME).removeHandler(self._handler)
        self._handler.close()
        self._handler = None

    def _record(self, scope: OperationScope) -> None:
        if not self._enabled:
            return
        record = scope.to_record()
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False
            return
        result = record["result"]
        status = str(result.get("status"))
        logging.getLogger(f"{ROOT_LOGGER_NAME}.operations").log(
            _STATUS_LEVELS.get(status, logging.INFO),
            "%s [%s] %s",
            scope.command,
            status,
            result.get("message", ""),
        )


__all__ = ["OperationScope", "StructuredLogger"]
