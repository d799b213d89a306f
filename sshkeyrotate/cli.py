"""Command line interface for rotating SSH keys."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import RotationSettings, SshKeyRotateConfig, load_config
from .constants import TOOL_VERSION
from .errors import RotationError
from .metadata import compute_relationship_id
from .rotation import RotationOrchestrator
from .stores import SshAuthorizationStore
from .transports import get_transport

app = typer.Typer(
    help="Rotate the SSH key pair used to reach a remote account",
    context_settings={"help_option_names": ["-H", "--help"]},
)

EXIT_FAILED = 1
EXIT_INCOMPLETE = 2


class _EchoHandler(logging.Handler):
    """Send log records to stderr through typer."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            typer.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("sshkeyrotate")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, _EchoHandler) for h in package_logger.handlers):
        handler = _EchoHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(handler)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(TOOL_VERSION)
        raise typer.Exit()


def _load(config_path: Optional[Path]) -> SshKeyRotateConfig:
    try:
        return load_config(str(config_path) if config_path else None)
    except RotationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED)


def _settings(
    user: str, host: str, config: SshKeyRotateConfig, **overrides
) -> RotationSettings:
    try:
        return RotationSettings.build(user, host, config=config, **overrides)
    except RotationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Print the version and exit",
    ),
) -> None:
    """sshkeyrotate CLI entry point."""
    pass


@app.command("rotate")
def rotate(
    user: str = typer.Option(..., "--user", "-u", help="Remote user"),
    host: str = typer.Option(..., "--host", "-h", help="Remote host"),
    key_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Key algorithm: rsa, ecdsa or ed25519 (default: rsa)"
    ),
    bits: Optional[int] = typer.Option(
        None, "--bits", "-b", help="Key size (default: 2048 for rsa, 256 for ecdsa; fixed for ed25519)"
    ),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Remote SSH port"),
    backend: Optional[str] = typer.Option(
        None, "--backend", help="Transport: openssh, paramiko or local"
    ),
    passphrase: bool = typer.Option(
        False, "--passphrase", help="Prompt for a passphrase protecting the new private key"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbosity"),
) -> None:
    """
    Rotate the key pair used to log in as USER on HOST.

    Generates a new key pair, appends its public key to the remote
    authorized_keys, checks that it can log in on its own, removes the keys
    of earlier rotations and points ~/.ssh/config at the new private key.

    Example:
        sshkeyrotate rotate -u bob -h server1
        sshkeyrotate rotate -u bob -h server1 -t ed25519 -v
    """
    _configure_logging(verbose)
    config = _load(config_path)
    secret = ""
    if passphrase:
        secret = typer.prompt("Passphrase", hide_input=True, confirmation_prompt=True)
    settings = _settings(
        user,
        host,
        config,
        algorithm=key_type,
        bits=bits,
        passphrase=secret,
        verbose=verbose,
    )

    transport = None
    try:
        transport = get_transport(
            settings.remote_host,
            backend=backend,
            config=config,
            port=port,
            key_passphrase=secret,
        )
        orchestrator = RotationOrchestrator(
            settings, SshAuthorizationStore(transport), transport
        )
        report = orchestrator.run()
    except RotationError as exc:
        typer.secho(f"Rotation failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED)
    finally:
        if transport is not None:
            transport.close()

    typer.echo(f"New key: {report.key_pair.private_key_path}")
    typer.echo(f"Retired keys: {len(report.retired)}")
    if report.config_changed:
        typer.echo(f"Updated {settings.ssh_config}")
    if report.errors:
        for error in report.errors:
            typer.secho(f"Warning: {error}", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=EXIT_INCOMPLETE)


@app.command("keys")
def keys(
    user: str = typer.Option(..., "--user", "-u", help="Remote user"),
    host: str = typer.Option(..., "--host", "-h", help="Remote host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Remote SSH port"),
    backend: Optional[str] = typer.Option(None, "--backend", help="Transport backend"),
    show_all: bool = typer.Option(
        False, "--all", help="List keys of every relationship, not only this one"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbosity"),
) -> None:
    """List the tagged keys authorized for USER on HOST."""
    _configure_logging(verbose)
    config = _load(config_path)
    settings = _settings(user, host, config)
    relationship_id = compute_relationship_id(
        settings.local_user, settings.local_host, settings.remote_user, settings.remote_host
    )

    transport = None
    try:
        transport = get_transport(settings.remote_host, backend=backend, config=config, port=port)
        entries = SshAuthorizationStore(transport).scan(settings.remote_user)
    except RotationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILED)
    finally:
        if transport is not None:
            transport.close()

    tagged = [
        entry
        for entry in entries
        if entry.metadata is not None
        and (show_all or entry.metadata.relationship_id == relationship_id)
    ]
    if not tagged:
        typer.echo("No tagged keys found")
        return
    for entry in tagged:
        meta = entry.metadata
        typer.echo(f"{meta.relationship_id}\t{meta.issued_at}\t{meta.tool_version}")


@app.command("relationship")
def relationship(
    user: str = typer.Option(..., "--user", "-u", help="Remote user"),
    host: str = typer.Option(..., "--host", "-h", help="Remote host"),
) -> None:
    """Print the relationship id tagging keys for USER on HOST."""
    settings = _settings(user, host, SshKeyRotateConfig())
    typer.echo(
        compute_relationship_id(
            settings.local_user,
            settings.local_host,
            settings.remote_user,
            settings.remote_host,
        )
    )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
