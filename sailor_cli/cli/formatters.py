"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any, Iterable

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sailor_cli.models.config import SailorConfig
from sailor_cli.models.task import SearchResult, Task, TaskState
from sailor_cli.utils.formatting import short_id

STATE_STYLES = {
    TaskState.PENDING: "yellow",
    TaskState.DOWNLOADING: "cyan",
    TaskState.COMPLETE: "green",
    TaskState.FAILED: "red",
    TaskState.STORED: "magenta",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `sailor init --force` to write a fresh default file.",
        ],
        "SearchError": [
            "• The torrent index may be temporarily unavailable.",
            "• Check your internet connection.",
        ],
        "PersistenceError": [
            "• Make sure the download directory is writable.",
            "• Check that the disk is not full.",
        ],
        "WorkerSpawnError": [
            "• Make sure aria2c is installed and on your PATH.",
            "• Run `sailor diagnose` to check your setup.",
        ],
        "PortAllocationError": [
            "• Too many local ports are in use; close some downloads and retry.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• Please try again in a few minutes.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config: SailorConfig, console: Console):
    """Displays the effective configuration."""
    content = ""
    for key in sorted(SailorConfig.get_ini_keys()):
        value: Any = getattr(config, key)
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def build_results_table(results: Iterable[SearchResult]) -> Table:
    table = Table(title="Search Results", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", overflow="fold")
    table.add_column("Size", justify="right")
    table.add_column("Seeders", justify="right", style="green")
    table.add_column("Leechers", justify="right", style="red")
    table.add_column("Files", justify="right")

    for index, result in enumerate(results, start=1):
        table.add_row(
            str(index),
            result.name,
            result.total_size,
            str(result.seeders),
            str(result.leechers),
            str(result.file_count),
        )
    return table


def build_downloads_table(tasks: Iterable[Task]) -> Table:
    table = Table(title="Current Downloads", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", overflow="fold")
    table.add_column("State")
    table.add_column("Progress", justify="right")
    table.add_column("Downloaded", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Speed", justify="right")
    table.add_column("ETA", justify="right")

    for task in tasks:
        style = STATE_STYLES.get(task.state, "white")
        table.add_row(
            short_id(task.content_id),
            task.name,
            f"[{style}]{task.state.value}[/{style}]",
            f"{task.progress * 100:.0f}%",
            task.completed_size,
            task.total_size,
            task.transfer_rate,
            task.eta if task.state is TaskState.DOWNLOADING else "-",
        )
    return table


def build_library_table(tasks: Iterable[Task]) -> Table:
    table = Table(title="Library", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", overflow="fold")
    table.add_column("Size", justify="right")
    table.add_column("State")

    for task in tasks:
        style = STATE_STYLES.get(task.state, "white")
        table.add_row(
            short_id(task.content_id),
            task.name,
            task.total_size,
            f"[{style}]{task.state.value}[/{style}]",
        )
    return table


def print_shell_help(console: Console):
    """Displays the commands understood by the interactive shell."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("search <query>", "Search the torrent index")
    table.add_row("get <n>", "Download result number <n> of the last search")
    table.add_row("ls", "Show current downloads")
    table.add_row("watch", "Follow download progress live (Enter stops)")
    table.add_row("lib", "Show the library")
    table.add_row("cancel <id>", "Stop a download and delete its files")
    table.add_row("retry <id>", "Relaunch a download that failed to start")
    table.add_row("retry all", "Relaunch every pending download")
    table.add_row("rm <id>", "Delete a library item and its files")
    table.add_row("quit", "Save state and exit")
    console.print(Panel(table, title="Commands", border_style="cyan", expand=False))
