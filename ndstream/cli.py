from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import typer

from ndstream.client import StreamClient, stream_label
from ndstream.config import NdStreamConfig, load_config, merge_config
from ndstream.request import ConfigError, build_request
from ndstream.sinks import JsonLinesSink
from ndstream.tool_logging import setup_logging

app = typer.Typer(help="ndstream - resilient NDJSON stream client")


def _build_config(
    config_path: Optional[Path],
    url: Optional[str],
    token: Optional[str],
    headers: Optional[str],
    query: Optional[str],
    reconnect_delay: Optional[int] = None,
    output: Optional[Path] = None,
    include_line: bool = False,
    insecure: bool = False,
    debug: bool = False,
) -> NdStreamConfig:
    try:
        base = load_config(config_path)
        overrides: dict[str, Any] = {
            "stream": {"url": url, "token": token, "headers": headers, "query": query},
            "reconnect": {"delay_ms": reconnect_delay},
            "output": {"path": output, "include_line": include_line or None},
        }
        if insecure:
            overrides["stream"]["verify_tls"] = False
        if debug:
            overrides["debug"] = True
        return merge_config(base, overrides)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)


@app.command()
def run(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    url: Optional[str] = typer.Option(None, "--url", help="Stream URL"),
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token"),
    headers: Optional[str] = typer.Option(None, "--headers", help="Extra headers as JSON"),
    query: Optional[str] = typer.Option(None, "--query", help="Extra query string"),
    reconnect_delay: Optional[int] = typer.Option(
        None, "--reconnect-delay", help="Reconnect delay in milliseconds"
    ),
    output: Optional[Path] = typer.Option(None, "--output", help="Write records to this file"),
    include_line: bool = typer.Option(False, "--include-line", help="Keep raw lines in output"),
    insecure: bool = typer.Option(False, "--insecure", help="Disable TLS verification"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
) -> None:
    """Stream records until interrupted."""
    config_model = _build_config(
        config,
        url,
        token,
        headers,
        query,
        reconnect_delay,
        output,
        include_line,
        insecure,
        debug,
    )
    if not config_model.stream.url.strip():
        typer.echo("No URL provided", err=True)
        raise typer.Exit(code=1)
    setup_logging(config_model.debug, stream_label(config_model.stream.url))
    logging.getLogger(__name__).info("Starting ndstream")
    with contextlib.ExitStack() as stack:
        if config_model.output.path is not None:
            config_model.output.path.parent.mkdir(parents=True, exist_ok=True)
            handle = stack.enter_context(config_model.output.path.open("a", encoding="utf-8"))
        else:
            handle = sys.stdout
        sink = JsonLinesSink(handle, include_line=config_model.output.include_line)
        asyncio.run(_serve(StreamClient(config_model, sink)))
    logging.getLogger(__name__).info("Wrote %d records", sink.records)


@app.command()
def check(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    url: Optional[str] = typer.Option(None, "--url", help="Stream URL"),
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token"),
    headers: Optional[str] = typer.Option(None, "--headers", help="Extra headers as JSON"),
    query: Optional[str] = typer.Option(None, "--query", help="Extra query string"),
) -> None:
    """Show the request that would be sent."""
    config_model = _build_config(config, url, token, headers, query)
    try:
        request = build_request(config_model.stream)
    except ConfigError as exc:
        typer.echo(f"Invalid configuration: {exc}")
        raise typer.Exit(code=1)
    typer.echo(f"URL: {request.url}")
    typer.echo(f"Headers: {', '.join(request.header_names) or 'none'}")
    for warning in request.warnings:
        typer.echo(f"Warning: {warning}")
    reconnect = config_model.reconnect
    typer.echo(f"Reconnect: base {reconnect.base_delay:.1f}s, max {reconnect.max_delay:.1f}s")
    if not config_model.stream.verify_tls:
        typer.echo("Warning: TLS certificate verification is disabled")


async def _serve(client: StreamClient) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, client.stop)
    await client.run()


if __name__ == "__main__":
    app()
