"""
chaindrive CLI

Command-line interface for storing files of any size in a Discord channel.

Usage:
    chaindrive config token <TOKEN>         # Set the bot token for this directory
    chaindrive config --global channel <ID> # Set the channel everywhere
    chaindrive upload FILE                  # Upload a file, prints its id
    chaindrive download ID                  # Download a file by id
    chaindrive list                         # List stored files
    chaindrive delete ID                    # Delete a stored file
    chaindrive disassemble FILE             # Split a file into .part files
    chaindrive assemble NAME                # Join .part files back together
    chaindrive check-update                 # Look for a newer release
"""

import asyncio
import logging
import os
from contextlib import contextmanager
from importlib import metadata
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from .config import CHANNEL, TOKEN, ConfigStore, Settings, load_settings, resolve_credentials
from .exceptions import ChainDriveError
from .file.splitter import ExtentSplitter
from .progress import ProgressChannel, TransferTask
from .store.base import RecordStore
from .store.discord import DiscordStore
from .transfer.catalog import Catalog
from .transfer.downloader import FileDownloader
from .transfer.uploader import LINK_MODES, FileUploader
from .update import check_update

console = Console()

T = TypeVar("T")


def setup_logging(verbose: bool = False, level: str = "WARNING"):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def current_version() -> str:
    """Installed chaindrive version."""
    try:
        return metadata.version("chaindrive")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def build_store(settings: Settings, token: str, version: str) -> RecordStore:
    """Record store used by the transfer commands."""
    return DiscordStore(
        token,
        api_base=settings.api_base,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        version=version,
    )


def mask(secret: str) -> str:
    """Hide all but the first few characters of a secret."""
    if len(secret) <= 8:
        return "*" * len(secret)
    return secret[:4] + "*" * 8


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


@contextmanager
def reporting_errors():
    """Print chaindrive errors in red and exit with status 1."""
    try:
        yield
    except ChainDriveError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise SystemExit(1)


async def run_with_progress(factory: Callable[[ProgressChannel], Awaitable[T]]) -> T:
    """
    Run a transfer in the background and render its progress.

    One bar per phase; this coroutine is the only one touching the display.
    """
    task = TransferTask.start(factory)

    with Progress(
        TextColumn("[progress.description]{task.description:>14}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        bars = {}
        async for event in task.events():
            if event.label not in bars:
                bars[event.label] = progress.add_task(event.label.capitalize(), total=1.0)
            progress.update(bars[event.label], completed=event.fraction)

    return await task.result()


def _credentials(ctx, token: Optional[str], channel: Optional[int]):
    store = ConfigStore(ctx.obj['settings'].config_file)
    return resolve_credentials(store, token=token, channel=channel)


def credential_options(f):
    """--token/--channel options shared by the remote commands."""
    f = click.option('--channel', '-c', type=int, help='Channel id (default: from config)')(f)
    f = click.option('--token', '-t', help='Bot token (default: from config)')(f)
    return f


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config-directory', type=click.Path(file_okay=False, path_type=Path),
              help='Custom config directory to use')
@click.pass_context
def cli(ctx, verbose, config_directory):
    """chaindrive - store files of any size in a Discord channel."""
    ctx.ensure_object(dict)
    with reporting_errors():
        settings = load_settings(config_directory)
    setup_logging(verbose, settings.log_level)
    ctx.obj['settings'] = settings
    ctx.obj['version'] = current_version()


@cli.command()
@click.option('--global', '-g', 'is_global', is_flag=True,
              help='Set or show the value used everywhere')
@click.argument('key', required=False)
@click.argument('value', required=False)
@click.pass_context
def config(ctx, is_global, key, value):
    """Print or set config values. Possible keys: token, channel."""
    if key is not None and value is None:
        raise click.UsageError("VALUE is required when KEY is given")

    with reporting_errors():
        store = ConfigStore(ctx.obj['settings'].config_file)

        if key is None:
            if is_global:
                token, channel = store.global_value(TOKEN), store.global_value(CHANNEL)
            else:
                token, channel = store.resolve(TOKEN), store.resolve(CHANNEL)
            console.print(f"Token: [cyan]{mask(token) if token else '(not set)'}[/cyan]")
            console.print(f"Channel: [cyan]{channel or '(not set)'}[/cyan]")
            return

        store.set(key, value, scope=None if is_global else os.getcwd())
        shown = mask(value) if key == TOKEN else value
        console.print(f"[green]Set[/green] \"{key}: {shown}\"")


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output-directory', '-o', default='./',
              type=click.Path(file_okay=False, path_type=Path),
              help='Directory for the part files. Defaults to the current directory')
@click.pass_context
def disassemble(ctx, file, output_directory):
    """Disassemble FILE into '.part' files."""
    splitter = ExtentSplitter(ctx.obj['settings'].part_size)

    with reporting_errors():
        extents = asyncio.run(run_with_progress(
            lambda progress: splitter.split_file(file, output_directory, progress)
        ))

    console.print(f"[green]Disassembled[/green] {escape(file.name)} into {len(extents)} parts")


@cli.command()
@click.argument('file_name')
@click.option('--parts', '-p', default='./',
              type=click.Path(exists=True, file_okay=False, path_type=Path),
              help='Directory containing the part files. Defaults to the current directory')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Output file (default: PARTS/FILE_NAME)')
@click.pass_context
def assemble(ctx, file_name, parts, output):
    """Assemble '.part' files of FILE_NAME into the original file."""
    splitter = ExtentSplitter(ctx.obj['settings'].part_size)

    with reporting_errors():
        result = asyncio.run(run_with_progress(
            lambda progress: splitter.assemble(file_name, parts, output, progress)
        ))

    console.print(f"[green]Assembled[/green] {escape(file_name)} into {escape(str(result))}")


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@credential_options
@click.option('--link-mode', type=click.Choice(LINK_MODES),
              help='atomic: create tail first; edit: create head first, then link')
@click.pass_context
def upload(ctx, file, token, channel, link_mode):
    """Upload FILE to the channel."""
    settings = ctx.obj['settings']

    async def run():
        token_, channel_ = _credentials(ctx, token, channel)
        async with build_store(settings, token_, ctx.obj['version']) as store:
            uploader = FileUploader(
                store, channel_,
                cache_dir=settings.extent_cache_dir,
                splitter=ExtentSplitter(settings.part_size),
                batch_limit=settings.batch_limit,
                link_mode=link_mode or settings.link_mode,
            )
            return await run_with_progress(lambda progress: uploader.upload(file, progress))

    with reporting_errors():
        result = asyncio.run(run())

    console.print(Panel.fit(
        f"[bold green]File Uploaded[/bold green]\n\n"
        f"Name: [cyan]{escape(result.head.name)}[/cyan]\n"
        f"Size: [yellow]{format_size(result.head.size)}[/yellow]\n"
        f"Parts: [yellow]{result.head.extent_count}[/yellow] "
        f"in [yellow]{result.record_count}[/yellow] messages\n\n"
        f"[bold]Message id (use it to download):[/bold]\n"
        f"[green]{result.head_id}[/green]",
        title="Uploaded"
    ))


@cli.command()
@click.argument('message_id', type=int)
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Output file (default: the stored file name)')
@credential_options
@click.pass_context
def download(ctx, message_id, output, token, channel):
    """Download the file whose head message is MESSAGE_ID."""
    settings = ctx.obj['settings']

    async def run():
        token_, channel_ = _credentials(ctx, token, channel)
        async with build_store(settings, token_, ctx.obj['version']) as store:
            downloader = FileDownloader(store, channel_, batch_limit=settings.batch_limit)
            return await run_with_progress(
                lambda progress: downloader.download(message_id, output, progress)
            )

    with reporting_errors():
        result = asyncio.run(run())

    console.print(f"[green]✓ Downloaded {escape(result.head.name)} "
                  f"to: {escape(str(result.path))}[/green]")


@cli.command('list')
@credential_options
@click.pass_context
def list_files(ctx, token, channel):
    """List files stored in the channel."""
    settings = ctx.obj['settings']

    async def run():
        token_, channel_ = _credentials(ctx, token, channel)
        async with build_store(settings, token_, ctx.obj['version']) as store:
            return await Catalog(store, channel_, page_size=settings.page_size).list_files()

    with reporting_errors():
        entries = asyncio.run(run())

    if not entries:
        console.print("[yellow]No stored files[/yellow]")
        return

    table = Table(title="Stored Files")
    table.add_column("ID", style="green")
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right", style="yellow")
    table.add_column("Parts", justify="right")

    for entry in entries:
        table.add_row(
            str(entry.record_id),
            escape(entry.name),
            format_size(entry.size),
            str(entry.record.extent_count),
        )

    console.print(table)


@cli.command()
@click.argument('message_id', type=int)
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@credential_options
@click.pass_context
def delete(ctx, message_id, yes, token, channel):
    """Delete the file whose head message is MESSAGE_ID."""
    settings = ctx.obj['settings']

    async def fetch_head(token_, channel_):
        async with build_store(settings, token_, ctx.obj['version']) as store:
            downloader = FileDownloader(store, channel_, batch_limit=settings.batch_limit)
            _, head = await downloader.fetch_head(message_id)
            return head

    async def run(token_, channel_):
        async with build_store(settings, token_, ctx.obj['version']) as store:
            downloader = FileDownloader(store, channel_, batch_limit=settings.batch_limit)
            return await run_with_progress(
                lambda progress: downloader.delete(message_id, progress)
            )

    with reporting_errors():
        token_, channel_ = _credentials(ctx, token, channel)
        head = asyncio.run(fetch_head(token_, channel_))

    # Prompt outside the event loop
    if not yes and not click.confirm(f"Do you really want to delete {head.name}?"):
        console.print("[yellow]Aborted[/yellow]")
        return

    with reporting_errors():
        deleted = asyncio.run(run(token_, channel_))

    console.print(f"[green]✓ Deleted {escape(head.name)} ({deleted} messages)[/green]")


@cli.command('check-update')
@click.pass_context
def check_update_command(ctx):
    """Check for a newer chaindrive release."""
    with reporting_errors():
        status = asyncio.run(check_update(ctx.obj['version']))

    if status.available:
        console.print(f"New version available: v{status.current} -> v{status.latest}")
        console.print("Run this command to update: pip install -U chaindrive")
    else:
        console.print(f"Already at the latest version: v{status.current}")


if __name__ == '__main__':
    cli()
