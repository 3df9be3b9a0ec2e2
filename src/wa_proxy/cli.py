# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for wa-proxy.

Usage:
    wa-proxy serve --port 8000
    wa-proxy status
    wa-proxy queue
    wa-proxy send 0501234567 "Hello"
    wa-proxy send 0501234567 --image /srv/uploads/photo.jpg "Caption"
    wa-proxy logout
    wa-proxy reconnect
    wa-proxy clear

Commands other than ``serve`` talk to a running instance through its HTTP
API. The target defaults to ``http://localhost:8000`` and can be changed with
``--url`` or ``WAP_URL``; the token comes from ``--token`` or ``WAP_API_TOKEN``.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import aiohttp
import click
from rich.console import Console
from rich.table import Table

from .client import WaProxyClient, WaProxyClientError

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Execute an async coroutine synchronously from CLI context."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print a formatted error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a formatted success message with checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    """Print data as syntax-highlighted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _call(ctx: click.Context, method: str, *args, **kwargs) -> Any:
    """Invoke one :class:`WaProxyClient` method, exiting with status 1 on failure."""
    url = ctx.obj["url"]

    async def _run():
        client = WaProxyClient(url, token=ctx.obj["token"])
        try:
            return await getattr(client, method)(*args, **kwargs)
        finally:
            await client.close()

    try:
        return run_async(_run())
    except WaProxyClientError as exc:
        detail = exc.detail
        if isinstance(detail, dict):
            detail = detail.get("error") or detail
        print_error(f"{detail} (HTTP {exc.status})")
    except aiohttp.ClientError as exc:
        print_error(f"Cannot reach wa-proxy at {url}: {exc}")
    sys.exit(1)


@click.group()
@click.version_option(package_name="wa-proxy")
@click.option("--url", envvar="WAP_URL", default="http://localhost:8000", show_default=True,
              help="Base URL of the running instance.")
@click.option("--token", envvar="WAP_API_TOKEN", default=None, help="API token (X-API-Token).")
@click.pass_context
def main(ctx: click.Context, url: str, token: str | None) -> None:
    """wa-proxy: paced WhatsApp message dispatch proxy."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["token"] = token


@main.command("serve")
@click.option("--host", "-h", default=None, help="Host to bind to (default: from config, 0.0.0.0).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: from config, 8000).")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="INI configuration file (default: WAP_CONFIG or config.ini).")
@click.option("--log-level", default=None, help="Logging level (default: WAP_LOG_LEVEL or INFO).")
def serve(host: str | None, port: int | None, config_path: str | None, log_level: str | None) -> None:
    """Run the proxy and its HTTP API in the foreground."""
    import uvicorn

    from .config_loader import load_settings
    from .logger import configure_logging
    from .server import build_app

    configure_logging(log_level)
    settings = load_settings(config_path)
    bind_host = host or str(settings["http_host"])
    bind_port = port or int(settings["http_port"])
    console.print(f"[bold cyan]Starting wa-proxy on {bind_host}:{bind_port}[/bold cyan]")
    console.print(f"  Bridge: {settings['bridge_url']} (session {settings['bridge_session']})")
    uvicorn.run(build_app(settings), host=bind_host, port=bind_port)


@main.command("status")
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON response.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the transport connection state."""
    data = _call(ctx, "status")
    if as_json:
        print_json(data)
        return
    phase = data.get("phase", "unknown")
    color = {"connected": "green", "awaiting_challenge": "yellow"}.get(phase, "red")
    console.print(f"\n[bold cyan]wa-proxy at {ctx.obj['url']}[/bold cyan]")
    console.print(f"  Phase:       [{color}]{phase}[/{color}]")
    console.print(f"  Reconnects:  {data.get('reconnect_attempts', 0)}")
    if data.get("last_close_cause"):
        console.print(f"  Last close:  {data['last_close_cause']}")
    if data.get("challenge"):
        console.print("  Pairing challenge pending, scan it from the bridge:")
        console.print(f"  [dim]{data['challenge']}[/dim]")
    console.print()


@main.command("queue")
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON response.")
@click.pass_context
def queue(ctx: click.Context, as_json: bool) -> None:
    """Show the queue counters."""
    data = _call(ctx, "queue_status")
    if as_json:
        print_json(data)
        return
    table = Table(title="Queue")
    table.add_column("Pending", justify="right")
    table.add_column("In flight", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Processing")
    table.add_row(
        str(data.get("pending", 0)),
        str(data.get("in_flight", 0)),
        str(data.get("total", 0)),
        "yes" if data.get("processing") else "no",
    )
    console.print(table)


@main.command("send")
@click.argument("destination")
@click.argument("text", required=False)
@click.option("--image", "image", type=click.Path(), help="Attach an image stored on the proxy host.")
@click.option("--document", "document", type=click.Path(), help="Attach a document stored on the proxy host.")
@click.option("--video", "video", type=click.Path(), help="Attach a video stored on the proxy host.")
@click.option("--audio", "audio", type=click.Path(), help="Attach an audio file stored on the proxy host.")
@click.option("--filename", default=None, help="File name shown to the recipient.")
@click.pass_context
def send(
    ctx: click.Context,
    destination: str,
    text: str | None,
    image: str | None,
    document: str | None,
    video: str | None,
    audio: str | None,
    filename: str | None,
) -> None:
    """Queue a message for DESTINATION."""
    media = [(kind, path) for kind, path in
             (("image", image), ("document", document), ("video", video), ("audio", audio)) if path]
    if len(media) > 1:
        print_error("Only one attachment per message is supported")
        sys.exit(1)
    if not media and not text:
        print_error("Message text or attachment is required")
        sys.exit(1)
    attachment = None
    if media:
        kind, path = media[0]
        attachment = {"kind": kind, "path": path}
        if filename:
            attachment["filename"] = filename
    data = _call(ctx, "send", destination, text, attachment)
    print_success(f"Message queued: {data.get('id')} (position {data.get('queue_position')})")


@main.command("message")
@click.argument("message_id")
@click.pass_context
def message(ctx: click.Context, message_id: str) -> None:
    """Show a pending or in-flight message."""
    data = _call(ctx, "message", message_id)
    print_json(data.get("message", data))


@main.command("logout")
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Log out of the transport session."""
    _call(ctx, "logout")
    print_success("Logged out")


@main.command("reconnect")
@click.pass_context
def reconnect(ctx: click.Context) -> None:
    """Open a new transport session."""
    _call(ctx, "reconnect")
    print_success("Reconnect requested")


@main.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Discard every pending message."""
    if not yes and not click.confirm("Discard all pending messages?"):
        console.print("[dim]Aborted.[/dim]")
        return
    data = _call(ctx, "clear_queue")
    print_success(f"Removed {data.get('removed', 0)} pending message(s)")


if __name__ == "__main__":
    main()
