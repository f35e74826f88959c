"""
Console entry point. Turns the errors that escape a command into a short
message and an exit status.
"""

import asyncio
import logging
import sys

import typer
from rich.console import Console

from sailor_cli.cli.app import app
from sailor_cli.cli.formatters import format_error_with_suggestions
from sailor_cli.exceptions import SailorError

log = logging.getLogger("sailor_cli")


def main() -> None:
    console = Console(stderr=True)

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        # Workers run in their own session and survive the interrupt.
        console.print(
            "\n[yellow]Interrupted.[/yellow] Running downloads continue in the"
            " background; start [bold]sailor shell[/bold] again to follow them."
        )
        sys.exit(130)
    except SailorError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        log.debug("Unhandled error", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
