"""
Command line interface.

    auto-ipfs detect
    auto-ipfs upload ./photo.jpg
    auto-ipfs get ipfs://<cid>/photo.jpg --output photo.jpg
    auto-ipfs size ipfs://<cid>/photo.jpg
    auto-ipfs clear ipfs://<cid>/

Detection options default to the ``AUTO_IPFS_*`` environment variables
(a ``.env`` file is honoured).
"""

import asyncio
import json
import os
import sys
from typing import Any, Awaitable, Callable, Optional

import click
import httpx
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import DEFAULT_PRIORITY, BackendKind, DetectionConfig
from .detection import CapabilityDetector
from .exceptions import AutoIPFSError
from .providers import BaseProvider
from .selector import choose_default, create

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr; debug level when verbose."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="DEBUG" if verbose else "WARNING",
    )


def _run(ctx: click.Context, action: Callable[[CapabilityDetector], Awaitable[Any]]) -> Any:
    """Run ``action`` with a fresh detector, turning library errors into exit status 1."""

    async def runner():
        detector = CapabilityDetector(client=ctx.obj.get("client"))
        try:
            return await action(detector)
        finally:
            await detector.aclose()

    try:
        return asyncio.run(runner())
    except (AutoIPFSError, httpx.TransportError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        ctx.exit(1)


async def _provider(ctx: click.Context, detector: CapabilityDetector) -> BaseProvider:
    return await create(ctx.obj["config"], priority=ctx.obj["priority"], detector=detector)


@click.group()
@click.version_option(__version__, prog_name="auto-ipfs")
@click.option("--daemon-url", default=None, help="Kubo daemon API URL")
@click.option("--web3-storage-token", default=None, help="web3.storage API token")
@click.option("--estuary-token", default=None, help="Estuary API token")
@click.option("--gateway-url", default=None, help="Public gateway used for reads")
@click.option("--readonly/--no-readonly", default=None, help="Offer the gateway as a read-only fallback")
@click.option("--timeout", type=int, default=None, help="Per-probe timeout in milliseconds")
@click.option(
    "--backend",
    type=click.Choice([kind.value for kind in BackendKind]),
    default=None,
    help="Use this kind of backend instead of the default priority"
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, daemon_url, web3_storage_token, estuary_token, gateway_url, readonly, timeout, backend, verbose):
    """Use IPFS through whichever backend is available."""
    ctx.ensure_object(dict)
    setup_logging(verbose)

    try:
        ctx.obj["config"] = DetectionConfig.from_env(
            daemon_url=daemon_url,
            web3_storage_token=web3_storage_token,
            estuary_token=estuary_token,
            gateway_url=gateway_url,
            readonly=readonly,
            timeout=timeout,
        )
    except ValidationError as e:
        err_console.print(f"[bold red]Invalid configuration:[/bold red] {escape(str(e))}")
        ctx.exit(1)

    ctx.obj["priority"] = [BackendKind(backend)] if backend else DEFAULT_PRIORITY


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the detected backends as JSON")
@click.pass_context
def detect(ctx, as_json):
    """List the backends that are available right now."""

    async def action(detector: CapabilityDetector):
        return await detector.detect(ctx.obj["config"])

    candidates = _run(ctx, action)

    if as_json:
        click.echo(json.dumps([candidate.model_dump(mode="json") for candidate in candidates], indent=2))
        return

    table = Table(title="Detected backends")
    table.add_column("Kind", style="cyan")
    table.add_column("URL")
    table.add_column("Gateway", style="dim")
    for candidate in candidates:
        table.add_row(candidate.kind.value, candidate.url, candidate.gateway_url or "")
    console.print(table)

    try:
        chosen = choose_default(candidates, ctx.obj["priority"])
    except AutoIPFSError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        ctx.exit(1)
    console.print(f"Default: [bold green]{chosen}[/bold green]")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", default=None, help="File name to store the upload under")
@click.pass_context
def upload(ctx, path, name):
    """Upload a file; ``.car`` archives are imported as CARs."""
    is_car = path.lower().endswith(".car")

    async def action(detector: CapabilityDetector):
        provider = await _provider(ctx, detector)
        with open(path, "rb") as f:
            if is_car:
                return await provider.upload_car(f)
            return [await provider.upload_file(f, file_name=name or os.path.basename(path))]

    for uri in _run(ctx, action):
        click.echo(str(uri))


@cli.command()
@click.argument("uri")
@click.option("--start", type=int, default=None, help="First byte, inclusive")
@click.option("--end", type=int, default=None, help="Last byte, inclusive")
@click.option("--format", "fmt", default=None, help="IPLD format to fetch instead of file bytes, e.g. car")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None)
@click.pass_context
def get(ctx, uri, start, end, fmt, output):
    """Fetch content and write it to stdout or a file."""

    async def action(detector: CapabilityDetector):
        provider = await _provider(ctx, detector)
        written = 0
        out = open(output, "wb") if output else click.get_binary_stream("stdout")
        try:
            async for chunk in provider.get(uri, start=start, end=end, format=fmt):
                out.write(chunk)
                written += len(chunk)
        finally:
            if output:
                out.close()
            else:
                out.flush()
        return written

    written = _run(ctx, action)
    if output:
        err_console.print(f"Wrote {written} bytes to [cyan]{output}[/cyan]")


@cli.command()
@click.argument("uri")
@click.pass_context
def size(ctx, uri):
    """Print the size in bytes of the content behind URI."""

    async def action(detector: CapabilityDetector):
        provider = await _provider(ctx, detector)
        return await provider.get_size(uri)

    click.echo(str(_run(ctx, action)))


@cli.command()
@click.argument("uri")
@click.pass_context
def clear(ctx, uri):
    """Unpin content from the selected backend."""

    async def action(detector: CapabilityDetector):
        provider = await _provider(ctx, detector)
        await provider.clear(uri)

    _run(ctx, action)
    err_console.print(f"Cleared [cyan]{uri}[/cyan]")


def main(argv: Optional[list] = None) -> None:
    cli(args=argv, obj={})


if __name__ == "__main__":
    main()
