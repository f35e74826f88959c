"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from sailor_cli import __version__
from sailor_cli.api.search import SearchClient
from sailor_cli.core.download_manager import DownloadManager
from sailor_cli.core.lifecycle import dedupe_on_load
from sailor_cli.exceptions import PersistenceError, SailorError
from sailor_cli.models.config import SailorConfig
from sailor_cli.models.task import SearchResult
from sailor_cli.storage.config_manager import ConfigManager
from sailor_cli.storage.state_file import StateFile

from .formatters import (
    build_downloads_table,
    build_library_table,
    build_results_table,
    print_config,
    print_shell_help,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("sailor_cli")

app = typer.Typer(
    name="sailor",
    help=(
        "Search a torrent index, download through aria2c and keep finished"
        " items in a library. Use 'sailor <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "sailor-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _attach_log_file(path: Path) -> None:
    """Mirrors all log records into a plain text file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    handler.setLevel(logging.DEBUG)
    logging.getLogger("sailor_cli").addHandler(handler)


def _load_config(**overrides) -> SailorConfig:
    """Loads the INI config; options given on the command line win."""
    cli_options = {key: value for key, value in overrides.items() if value is not None}
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Enable debug logging.",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Also write a debug log to this file."
    ),
):
    """Sailor torrent downloader"""
    if version:
        console.print(f"[bold]sailor-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    logging.getLogger("sailor_cli").setLevel("DEBUG" if verbose else "INFO")

    if log_file:
        _attach_log_file(log_file)
        logging.getLogger("sailor_cli").setLevel("DEBUG")

    if show_config:
        print_config(CONFIG_FILE, _load_config(), console)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    download_dir: Optional[Path] = typer.Option(
        None, "--download-dir", "-d", help="Where downloads and the library live."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with default values."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {}
    if download_dir:
        settings["download_dir"] = download_dir.expanduser()
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command()
def search(query: List[str] = typer.Argument(..., help="Search terms.")):  # noqa: B008
    """Search the torrent index and print the results."""
    config = _load_config()

    async def _search_async() -> List[SearchResult]:
        client = SearchClient(config.search_url, config.search_timeout)
        try:
            return await client.search(" ".join(query))
        finally:
            await client.close()

    results = asyncio.run(_search_async())
    if not results:
        console.print("[yellow]No results.[/yellow]")
        return
    console.print(build_results_table(results))


@app.command()
def library(
    download_dir: Optional[Path] = typer.Option(
        None, "--download-dir", "-d", help="Read this download directory instead."
    ),
):
    """List the library and any downloads recorded in the state file."""
    config = _load_config(download_dir=download_dir)
    tasks = asyncio.run(StateFile(config.state_file).load())
    active, stored = dedupe_on_load(tasks)
    if active:
        console.print(build_downloads_table(active))
    if stored:
        console.print(build_library_table(stored))
    if not active and not stored:
        console.print("[dim]Nothing downloaded yet.[/dim]")


async def _read_lines() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
    )
    return reader


async def _watch_downloads(
    manager: DownloadManager, reader: asyncio.StreamReader, out: Console = console
) -> None:
    """Re-renders the downloads table every poll interval until Enter is pressed."""
    out.print("[dim]Watching downloads, press Enter to stop.[/dim]")
    stop = asyncio.ensure_future(reader.readline())
    try:
        with Live(
            build_downloads_table(manager.view().active),
            console=out,
            refresh_per_second=4,
            vertical_overflow="visible",
        ) as live:
            while not stop.done():
                await asyncio.wait({stop}, timeout=manager.config.poll_interval)
                live.update(build_downloads_table(manager.view().active))
    finally:
        stop.cancel()


async def _handle_command(
    manager: DownloadManager,
    line: str,
    results: List[SearchResult],
    reader: asyncio.StreamReader,
) -> bool:
    """Runs one shell command. Returns False when the shell should exit."""
    command, _, arg = line.strip().partition(" ")
    command, arg = command.lower(), arg.strip()

    if command in ("quit", "exit", "q"):
        return False
    if command in ("help", "?"):
        print_shell_help(console)
    elif command == "search" and arg:
        results[:] = await manager.search(arg)
        if results:
            console.print(build_results_table(results))
        else:
            console.print("[yellow]No results.[/yellow]")
    elif command == "get" and arg.isdigit():
        index = int(arg) - 1
        if not 0 <= index < len(results):
            console.print("[red]No such result. Run a search first.[/red]")
        else:
            manager.request_download(results[index].content_id)
    elif command == "ls":
        console.print(build_downloads_table(manager.view().active))
    elif command == "watch":
        await _watch_downloads(manager, reader)
    elif command == "lib":
        console.print(build_library_table(manager.view().stored))
    elif command == "retry" and arg.lower() == "all":
        manager.request_resume_all()
    elif command in ("cancel", "rm", "retry") and arg:
        task = manager.resolve(arg)
        if task is None:
            console.print(f"[red]No unique task matches '{arg}'.[/red]")
        elif command == "cancel":
            manager.request_cancel(task.content_id)
        elif command == "retry":
            manager.request_retry(task.content_id)
        else:
            manager.request_library_remove(task.content_id)
    elif command:
        console.print(f"[red]Unknown command '{command}'.[/red] Type 'help'.")
    return True


@app.command()
def shell(
    download_dir: Optional[Path] = typer.Option(
        None, "--download-dir", "-d", help="Use this download directory."
    ),
    poll_interval: Optional[float] = typer.Option(
        None, "--poll-interval", help="Seconds between progress polls."
    ),
):
    """Start an interactive session with live download tracking."""
    config = _load_config(download_dir=download_dir, poll_interval=poll_interval)

    async def _shell_async():
        results: List[SearchResult] = []
        async with DownloadManager(config) as manager:
            print_shell_help(console)
            reader = await _read_lines()
            while True:
                console.print("[bold cyan]sailor>[/bold cyan] ", end="")
                raw = await reader.readline()
                if not raw:
                    break
                try:
                    if not await _handle_command(
                        manager, raw.decode("utf-8", "replace"), results, reader
                    ):
                        break
                except SailorError as e:
                    console.print(f"[red]✗ {e}[/red]")

    try:
        asyncio.run(_shell_async())
    except PersistenceError as e:
        console.print(f"[bold red]Couldn't save your downloads: {e}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def diagnose():
    """Diagnose common configuration and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    try:
        config = _load_config()
        console.print("[green]✓[/] Configuration is valid.")
    except SailorError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    binary = config.downloader_command[0]
    if shutil.which(binary):
        console.print(f"[green]✓[/] Downloader found: [dim]{shutil.which(binary)}[/dim]")
    else:
        console.print(f"[red]✗ '{binary}' was not found on PATH.[/red]")
        issues_found = True

    try:
        tasks = asyncio.run(StateFile(config.state_file).load())
        console.print(f"[green]✓[/] State file readable ({len(tasks)} tasks).")
    except PersistenceError as e:
        console.print(f"[red]✗ {e}[/red]")
        issues_found = True

    console.print("\n[dim]Testing connectivity to the search index...[/dim]")

    async def test_connection() -> bool:
        client = SearchClient(config.search_url, config.search_timeout)
        try:
            await client.search("ubuntu")
            console.print("[green]✓[/] Successfully queried the search index.")
            return True
        except SailorError as e:
            console.print(f"[red]✗ Connection test failed: {e}[/red]")
            return False
        finally:
            await client.close()

    if not asyncio.run(test_connection()):
        issues_found = True
    console.print()
    if not issues_found:
        console.print(
            "[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n"
        )
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
