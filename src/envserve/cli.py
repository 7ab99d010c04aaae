"""Typer-powered command line entry point for ``env-serve``.

``env-serve`` resolves the configuration embedded in a file (``index.html``
by default), writes the resolved values back into that same file and then
serves the current directory over HTTP or HTTPS, so browser code loading the
file sees the effective configuration.
"""
from __future__ import annotations

import os
import textwrap
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from . import get_version
from .config import (
    DEFAULT_GLOBAL_NAME,
    ConfigError,
    ConfigFileError,
    ConfigFileNotFoundError,
)
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .pipeline import ResolvedConfig, run_pipeline
from .server import ServerError, ServerHandle, start_server
from .tls import TLSConfigurationError, TLSMaterial, resolve_tls_material

console = Console()

DEFAULT_CONFIG_FILE = Path("index.html")
DEFAULT_PORT = 3000
DEFAULT_LOGS_DIR = Path.home() / ".local" / "state" / "env-serve" / "logs"

CONFIG_FILE_OPTION = typer.Option(
    DEFAULT_CONFIG_FILE,
    "--config-file",
    "-f",
    dir_okay=False,
    help="File holding the configuration; it is rewritten with the resolved values.",
)
GLOBAL_NAME_OPTION = typer.Option(
    DEFAULT_GLOBAL_NAME,
    "--global",
    "-g",
    help="Global variable name of the config literal, e.g. window.<name> in js/html files.",
)
SET_OPTION = typer.Option(
    None,
    "--set",
    "-o",
    metavar="KEY=VALUE",
    help="Override a config value (repeatable). Dotted keys address nested values.",
)
PORT_OPTION = typer.Option(DEFAULT_PORT, "--port", "-p", min=0, max=65535, help="Port to listen on.")
HTTPS_OPTION = typer.Option(False, "--https", "-S", help="Serve over HTTPS.")
SELF_SIGNED_OPTION = typer.Option(
    False,
    "--self-signed",
    "-s",
    help="Generate a self-signed certificate for the server (implies --https).",
)
CERT_OPTION = typer.Option(None, "--cert", "-c", dir_okay=False, help="Path to the certificate (PEM).")
CERT_KEY_OPTION = typer.Option(
    None,
    "--cert-key",
    "-k",
    dir_okay=False,
    help="Path to the certificate private key (PEM).",
)
CA_OPTION = typer.Option(None, "--ca", "-C", dir_okay=False, help="Path to a CA bundle (PEM).")
ROOT_OPTION = typer.Option(
    None,
    "--root",
    "-r",
    file_okay=False,
    help="Directory to serve (defaults to the current directory).",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Print the resolved configuration without writing the file or serving.",
)
LOGS_DIR_OPTION = typer.Option(
    DEFAULT_LOGS_DIR,
    "--logs-dir",
    envvar="ENV_SERVE_LOGS_DIR",
    file_okay=False,
    help="Directory for operations.jsonl and env-serve.log.",
)
VERSION_OPTION = typer.Option(False, "--version", "-V", help="Show the env-serve version and exit.")

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Serve a static directory with runtime configuration.

        The configuration embedded in the config file is merged with matching
        environment variables and --set overrides (highest precedence), then
        written back into the same file before the server starts.
        """
    ).strip(),
)


@app.command()
def serve(
    config_file: Path = CONFIG_FILE_OPTION,
    global_name: str = GLOBAL_NAME_OPTION,
    overrides: list[str] | None = SET_OPTION,
    port: int = PORT_OPTION,
    https: bool = HTTPS_OPTION,
    self_signed: bool = SELF_SIGNED_OPTION,
    cert: Path | None = CERT_OPTION,
    cert_key: Path | None = CERT_KEY_OPTION,
    ca: Path | None = CA_OPTION,
    root: Path | None = ROOT_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    logs_dir: Path = LOGS_DIR_OPTION,
    version: bool = VERSION_OPTION,
) -> None:
    """Resolve the config file, write it back and serve the directory."""
    if version:
        console.print(f"env-serve {get_version()}")
        raise typer.Exit(code=ExitCode.OK)

    is_https = https or self_signed
    logger = StructuredLogger(logs_dir)
    args = {
        "config_file": str(config_file),
        "global": global_name,
        "overrides": list(overrides or []),
        "port": port,
        "https": is_https,
        "self_signed": self_signed,
        "cert": str(cert) if cert else None,
        "cert_key": str(cert_key) if cert_key else None,
        "ca": str(ca) if ca else None,
        "dry_run": dry_run,
    }
    try:
        with logger.operation(
            "serve",
            args=args,
            target={"kind": "config", "path": str(config_file)},
        ) as op:
            resolved = _resolve_config(op, config_file, global_name, overrides or [], dry_run)
            if dry_run:
                console.print_json(data=resolved.config)
                _dry_run_complete(op, resolved)
                return

            handle = _start_listener(
                op,
                root or Path.cwd(),
                port,
                is_https=is_https,
                self_signed=self_signed,
                cert=cert,
                cert_key=cert_key,
                ca=ca,
            )
            console.print(f"Server url: {handle.url}")
            console.print("Config:")
            console.print_json(data=resolved.config)
            op.success(
                "Server started.",
                changed=1 if resolved.changed else 0,
                context={"url": handle.url, "root": handle.root},
            )
        _serve_until_interrupted(handle)
    finally:
        logger.close()


def _resolve_config(
    op: OperationScope,
    config_file: Path,
    global_name: str,
    overrides: Sequence[str],
    dry_run: bool,
) -> ResolvedConfig:
    try:
        resolved = run_pipeline(
            config_file,
            global_name=global_name,
            env=os.environ,
            overrides=overrides,
            write=not dry_run,
        )
    except (ConfigFileNotFoundError, ConfigFileError) as exc:
        _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
    except ConfigError as exc:
        _command_error(op, str(exc), rc=ExitCode.VALIDATION)

    op.add_step(
        "config.resolve",
        detail={"format": resolved.format.value, "keys": sorted(resolved.config)},
    )
    op.add_step(
        "config.write",
        status="success" if resolved.written else "skipped",
        detail={"path": resolved.path, "changed": resolved.changed},
    )
    return resolved


def _start_listener(
    op: OperationScope,
    root: Path,
    port: int,
    *,
    is_https: bool,
    self_signed: bool,
    cert: Path | None,
    cert_key: Path | None,
    ca: Path | None,
) -> ServerHandle:
    # Runs after the config file has been written back.
    tls: TLSMaterial | None = None
    try:
        if is_https:
            tls = resolve_tls_material(
                self_signed=self_signed,
                cert_path=cert,
                key_path=cert_key,
                ca_path=ca,
            )
            op.add_step("tls.resolve", detail=tls.describe())
        handle = start_server(root, port, tls=tls)
    except (TLSConfigurationError, ServerError) as exc:
        _command_error(op, str(exc), rc=ExitCode.PROVIDER)
    op.add_step("server.listen", detail={"url": handle.url})
    return handle


def _serve_until_interrupted(handle: ServerHandle) -> None:
    try:
        handle.serve_forever()
    except KeyboardInterrupt:
        console.print("[yellow]Shutting down.[/yellow]")
    finally:
        handle.shutdown()


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _dry_run_complete(op: OperationScope, resolved: ResolvedConfig) -> None:
    """Standardise dry-run completion messaging."""
    context: Mapping[str, object] = resolved.to_dict()
    console.print(f"[yellow]Dry run[/yellow]: {escape(str(resolved.path))} was not modified.")
    op.success("Dry run complete.", changed=0, context=context)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
