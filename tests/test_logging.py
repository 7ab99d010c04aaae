"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from envserve import __version__
from envserve.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    path = logger._operations_log_path  # type: ignore[attr-defined]
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)

    assert not log_dir.exists()


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    try:
        with logger.operation("demo") as op:
            op.success("done", changed=0)

        assert logger._enabled is False  # type: ignore[attr-defined]

        # Subsequent operations should not raise even though logger is disabled.
        with logger.operation("demo-2") as op:
            op.success("done", changed=0)
    finally:
        logger.close()


def test_operation_record_layout(tmp_path: Path) -> None:
    """Records carry command, args, steps, result and runtime context."""
    logger = StructuredLogger(tmp_path / "logs")
    try:
        with logger.operation(
            "serve",
            args={"config_file": Path("index.html")},
            target={"kind": "config"},
        ) as op:
            op.add_step("config.resolve", detail={"keys": ["a"]})
            op.add_step("config.write", status="skipped")
            op.success("Resolved.", changed=1, context={"path": Path("/srv/index.html")})
    finally:
        logger.close()

    (record,) = _records(logger)
    assert record["command"] == "serve"
    assert record["args"] == {"config_file": "index.html"}
    assert record["target"] == {"kind": "config"}
    assert [step["name"] for step in record["steps"]] == ["config.resolve", "config.write"]
    assert record["steps"][1]["status"] == "skipped"
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 1
    assert record["result"]["context"] == {"path": "/srv/index.html"}
    assert record["context"]["envserve_version"] == __version__
    assert isinstance(record["context"]["duration_ms"], int)


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    try:
        with logger.operation("demo", args={"path": Path("foo")}) as op:
            op.warning(
                "warned",
                warnings=("note",),
                errors=("err",),
                changed=1,
                context={"path": Path("/var/lib"), "obj": Custom()},
            )
    finally:
        logger.close()

    result = _records(logger)[-1]["result"]
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    try:
        with logger.operation("demo") as op:
            op.error("boom", errors=None, rc=3, context={"value": {1, 2}})
    finally:
        logger.close()

    result = _records(logger)[-1]["result"]
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["rc"] == 3
    assert result["context"] == {"value": "{1, 2}"}


def test_escaping_exception_is_recorded_and_reraised(tmp_path: Path) -> None:
    """Unhandled exceptions become error records and still propagate."""
    logger = StructuredLogger(tmp_path / "logs")

    try:
        with pytest.raises(ValueError, match="unexpected"):
            with logger.operation("demo"):
                raise ValueError("unexpected")
    finally:
        logger.close()

    result = _records(logger)[-1]["result"]
    assert result["status"] == "error"
    assert result["message"] == "unexpected"


def test_human_log_receives_operation_and_library_messages(tmp_path: Path) -> None:
    """The human log gets operation summaries and ``envserve.*`` log lines."""
    logger = StructuredLogger(tmp_path / "logs")
    try:
        logging.getLogger("envserve.server").info("GET /index.html 200")
        with logger.operation("serve") as op:
            op.success("Server started.")
    finally:
        logger.close()

    content = (tmp_path / "logs" / "env-serve.log").read_text(encoding="utf-8")
    assert "GET /index.html 200" in content
    assert "serve [success] Server started." in content


def test_close_detaches_handler(tmp_path: Path) -> None:
    """After close() the human log stops receiving messages."""
    logger = StructuredLogger(tmp_path / "logs")
    logger.close()

    logging.getLogger("envserve.server").info("after close")

    content = (tmp_path / "logs" / "env-serve.log").read_text(encoding="utf-8")
    assert "after close" not in content
