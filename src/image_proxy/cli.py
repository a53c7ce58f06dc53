"""
CLI for the image proxy.

Commands:
- serve: Start the HTTP server
- info: Show configuration
- fetch: Run one request through the proxy pipeline
"""

import asyncio
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import settings
from .logging import setup_logging

app = typer.Typer(
    name="image-proxy",
    help="Caching, rate-limited image proxy with on-the-fly resizing",
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Image Proxy - fetch, transform and cache allowlisted images."""
    log_level = "DEBUG" if verbose else settings.log_level
    setup_logging(level=log_level, json_output=settings.log_json)
    logger.debug("CLI initialized with log level: {}", log_level)


@app.command()
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
):
    """Start the proxy HTTP server."""
    import uvicorn

    from .server import PROXY_PATH, create_app

    logger.info("Starting image proxy on {}:{}", host, port)
    console.print("[bold blue]Starting Image Proxy[/]")
    console.print(f"Host: {host}:{port}")
    console.print(f"Proxy endpoint: http://{host}:{port}{PROXY_PATH}?url=...")
    console.print(f"Allowed domain: {settings.allowed_domain}")
    console.print()

    # log_config=None keeps uvicorn on the handlers installed by setup_logging
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


@app.command()
def info():
    """Show configuration."""
    logger.debug("Displaying configuration")
    console.print("[bold blue]Image Proxy Configuration[/]")

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Allowed Domain", settings.allowed_domain)
    table.add_row(
        "Rate Limit",
        f"{settings.rate_max_requests} requests / {settings.rate_window_ms} ms",
    )
    table.add_row("Cache TTL", f"{settings.cache_ttl_seconds} s")
    table.add_row("Cache Sweep Interval", f"{settings.cache_sweep_interval_ms} ms")
    table.add_row("Default Quality", str(settings.default_quality))
    table.add_row("Fetch Timeout", f"{settings.fetch_timeout} s")
    table.add_row("Max Image Size", f"{settings.max_image_bytes} bytes")
    table.add_row("Server Host", settings.host)
    table.add_row("Server Port", str(settings.port))

    console.print(table)


@app.command()
def fetch(
    url: str = typer.Argument(..., help="Source image URL"),
    width: int | None = typer.Option(None, "--width", "-w", help="Maximum output width"),
    height: int | None = typer.Option(None, "--height", help="Maximum output height"),
    quality: int | None = typer.Option(None, "--quality", "-q", help="Encoder quality (0-100)"),
    fmt: str | None = typer.Option(None, "--format", "-f", help="Output format (jpeg, png, webp)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the image here"),
):
    """Run one request through the proxy pipeline and report the result."""
    from .handler import ProxyHandler, ProxyRequest

    query = {"url": url}
    for name, value in (("width", width), ("height", height), ("quality", quality), ("format", fmt)):
        if value is not None:
            query[name] = str(value)

    logger.info("Fetching through proxy: {}", url[:60])
    handler = ProxyHandler(settings=settings)
    response = asyncio.run(
        handler.handle(ProxyRequest(method="GET", query=query, client_address="127.0.0.1"))
    )

    if response.status_code != 200:
        console.print(f"[red]Error {response.status_code}: {response.body.decode()}[/]")
        raise typer.Exit(1)

    table = Table(title="Proxy Response")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Status", str(response.status_code))
    for header in ("Content-Type", "X-Original-Format", "X-Output-Format", "X-Cache"):
        table.add_row(header, response.headers.get(header, "-"))
    table.add_row("Size", f"{len(response.body)} bytes")
    console.print(table)

    if output is not None:
        output.write_bytes(response.body)
        logger.debug("Wrote {} bytes to {}", len(response.body), output)
        console.print(f"[green]Saved to {output}[/]")


if __name__ == "__main__":
    app()
