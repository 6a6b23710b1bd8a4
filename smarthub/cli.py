"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from smarthub.core.codec import decode_blob, split_frames
from smarthub.core.config_loader import LoadedConfig, load_config, parse_address
from smarthub.core.errors import FrameDecodeError, SmartHubError
from smarthub.core.messages import decode_message, describe
from smarthub.core.model import BROADCAST_ADDRESS
from smarthub.core.session import HubSession, SessionStatus
from smarthub.transports.http import HTTPTransport

EXIT_FAILURE = 99

app = typer.Typer(help="Smart home hub for the base64-framed device protocol")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config: Path | None, overrides: dict | None = None) -> LoadedConfig:
    loaded = load_config(config, overrides)
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded


@app.command("run")
def run_hub(
    url: str | None = typer.Argument(None, help="Server URL"),
    address: str | None = typer.Argument(None, help="Hub address in hex, e.g. ef0"),
    name: str | None = typer.Option(None, "--name", help="Name announced by the hub"),
    config: Path | None = typer.Option(None, "--config", help="YAML config file"),
    timeout: float | None = typer.Option(None, "--timeout", help="HTTP timeout in seconds"),
    max_cycles: int | None = typer.Option(None, "--max-cycles", help="Stop after N exchanges"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run the hub until the server reports no further work."""
    _configure_logging(verbose)
    try:
        loaded = _load(
            config,
            {
                "hub": {"address": address, "name": name},
                "server": {"url": url, "timeout_s": timeout},
                "session": {"max_cycles": max_cycles},
            },
        )
        settings = loaded.config
        if settings.url is None:
            raise typer.BadParameter("Server URL is required (argument or server.url in config)")
        if settings.address is None:
            raise typer.BadParameter("Hub address is required (argument or hub.address in config)")

        transport = HTTPTransport(settings.url, timeout_s=settings.timeout_s)
        session = HubSession(settings.address, transport, name=settings.name)
        result = session.run(max_cycles=settings.max_cycles)
    except typer.BadParameter as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from None
    except SmartHubError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from None

    if result.status is SessionStatus.FAILED:
        typer.echo(f"Error: {result.reason}", err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    typer.echo(f"Finished after {result.cycles} cycles ({result.status.value})")


@app.command("decode")
def decode(
    blob: str,
    address: str | None = typer.Option(None, "--address", help="Only show messages for this hub address"),
) -> None:
    """Print the messages contained in a base64 blob."""
    try:
        hub_address = parse_address(address) if address is not None else None
        batch = split_frames(decode_blob(blob))
        shown = 0
        for payload in batch.payloads:
            try:
                message = decode_message(payload)
            except FrameDecodeError as exc:
                typer.echo(f"<malformed {payload.hex()}: {exc}>")
                continue
            if message is None:
                typer.echo(f"<unknown command {payload.hex()}>")
                continue
            if hub_address is not None and message.dst not in (hub_address, BROADCAST_ADDRESS):
                continue
            typer.echo(describe(message))
            shown += 1
        if batch.dropped:
            typer.echo(f"{batch.dropped} frame(s) dropped", err=True)
        if not shown and not batch.payloads:
            typer.echo("No messages")
    except SmartHubError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from None


@app.command("config")
def show_config(
    config: Path | None = typer.Option(None, "--config", help="YAML config file"),
) -> None:
    """Print the effective configuration and where it came from."""
    try:
        loaded = _load(config)
    except SmartHubError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from None

    settings = loaded.config
    address = f"0x{settings.address:04X}" if settings.address is not None else "<unset>"
    typer.echo(f"hub.address: {address}")
    typer.echo(f"hub.name: {settings.name}")
    typer.echo(f"server.url: {settings.url or '<unset>'}")
    typer.echo(f"server.timeout_s: {settings.timeout_s}")
    typer.echo(f"session.max_cycles: {settings.max_cycles if settings.max_cycles is not None else '<unbounded>'}")
    typer.echo(f"sources: {', '.join(loaded.sources)}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
