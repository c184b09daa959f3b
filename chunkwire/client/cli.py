"""
Command-line interface for chunkwire.

Usage:
    chunkwire serve --port 8765 --out-dir ./received
    chunkwire send ws://localhost:8765 report.pdf photo.jpg
    chunkwire send ws://localhost:8765 -m "hello" --serialization json
    chunkwire info
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from websockets.asyncio.server import serve as ws_serve

from ..config import SessionConfig
from ..core.payload import File
from ..core.serialization import SerializationMode
from ..network.session import TransferSession
from ..network.websocket import WebSocketNegotiator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S"
)

logger = logging.getLogger(__name__)

SERIALIZATION_CHOICES = [mode.value for mode in SerializationMode]


def build_config(serialization: Optional[str], max_message_size: Optional[int]) -> SessionConfig:
    """Session config from CLI options (unset options fall back to env/defaults)."""
    overrides: dict[str, Any] = {}
    if serialization:
        overrides["serialization"] = serialization
    if max_message_size:
        overrides["max_message_size"] = max_message_size
    return SessionConfig(**overrides)


def describe_value(value: Any) -> str:
    """Short human-readable description of a received value."""
    text = repr(value)
    return text if len(text) <= 80 else text[:77] + "..."


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool):
    """Chunkwire - large payloads over size-limited data channels"""
    ctx.ensure_object(dict)

    config = SessionConfig()
    if debug:
        config.log_level = "DEBUG"
    logging.getLogger().setLevel(config.log_level.upper())

    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def info(ctx):
    """Show the effective session configuration."""
    config = ctx.obj["config"]

    click.echo(click.style("Session configuration", bold=True))
    for key, value in config.to_dict().items():
        click.echo(f"  {key:<20} {value}")


@cli.command()
@click.option("--host", "-h", default="localhost", help="Interface to listen on")
@click.option("--port", "-p", default=8765, help="Port to listen on")
@click.option("--out-dir", "-o", type=click.Path(file_okay=False), default=".",
              help="Directory for received files")
@click.option("--serialization", "-s", type=click.Choice(SERIALIZATION_CHOICES), default=None,
              help="Serialization mode (must match the sender)")
@click.option("--max-message-size", type=int, default=None, help="Channel message bound in bytes")
def serve(host: str, port: int, out_dir: str, serialization: Optional[str],
          max_message_size: Optional[int]):
    """Accept peers and store what they send."""
    config = build_config(serialization, max_message_size)
    directory = Path(out_dir)
    directory.mkdir(parents=True, exist_ok=True)

    def handle_data(peer: str, value: Any) -> None:
        if isinstance(value, File):
            path = value.save(directory)
            click.echo(click.style(f"✓ {peer}: saved {value.name} ({value.size} bytes) -> {path}",
                                   fg="green"))
        else:
            click.echo(f"{peer}: {describe_value(value)}")

    async def handle_connection(websocket):
        peer = "{}:{}".format(*websocket.remote_address[:2])
        negotiator = WebSocketNegotiator(
            websocket=websocket,
            max_message_size=config.max_message_size,
        )
        session = TransferSession(peer, negotiator, config, payload={"originator": False})
        closed = asyncio.Event()

        session.on("data", lambda value: handle_data(peer, value))
        session.on("error", lambda err: click.echo(click.style(f"✗ {peer}: {err}", fg="red")))
        session.on("close", closed.set)

        await closed.wait()

    async def run_server():
        async with ws_serve(handle_connection, host, port, max_size=None):
            click.echo(f"Listening on ws://{host}:{port} ({config.serialization})")
            await asyncio.get_running_loop().create_future()

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        click.echo("Stopped.")


@cli.command()
@click.argument("url")
@click.argument("paths", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option("--message", "-m", "messages", multiple=True, help="Text value to send")
@click.option("--serialization", "-s", type=click.Choice(SERIALIZATION_CHOICES), default=None,
              help="Serialization mode")
@click.option("--max-message-size", type=int, default=None, help="Channel message bound in bytes")
@click.option("--timeout", default=10.0, help="Seconds to wait for the channel")
def send(url: str, paths: tuple[str, ...], messages: tuple[str, ...],
         serialization: Optional[str], max_message_size: Optional[int], timeout: float):
    """Send files and text values to a peer."""
    if not paths and not messages:
        click.echo(click.style("✗ Nothing to send", fg="red"))
        sys.exit(1)

    config = build_config(serialization, max_message_size)

    async def do_send() -> list[Exception]:
        negotiator = WebSocketNegotiator(url=url, max_message_size=config.max_message_size)
        session = TransferSession(url, negotiator, config)
        settled = asyncio.Event()
        errors: list[Exception] = []

        def on_error(err: Exception) -> None:
            errors.append(err)
            settled.set()

        session.on("open", settled.set)
        session.on("error", on_error)

        # Buffered until the channel is ready
        for path in paths:
            session.send(File.from_path(path))
        for message in messages:
            session.send(message)

        await asyncio.wait_for(settled.wait(), timeout)
        if session.is_open:
            await session.flush()
            await negotiator.channel.drain()
        session.close()
        return errors

    try:
        click.echo(f"Sending {len(paths)} file(s) and {len(messages)} message(s) to {url}...")
        errors = asyncio.run(do_send())
    except asyncio.TimeoutError:
        click.echo(click.style(f"✗ Channel not ready after {timeout}s", fg="red"))
        sys.exit(1)

    if errors:
        for err in errors:
            click.echo(click.style(f"✗ Error: {err}", fg="red"))
        sys.exit(1)

    click.echo(click.style("✓ Sent!", fg="green"))


def main():
    """Entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
