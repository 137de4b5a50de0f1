"""Main CLI application using Typer."""

from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console

from cbzkit import __version__
from cbzkit.cli.commands.config import config_app
from cbzkit.cli.commands.convert import convert

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="cbzkit",
    help="Convert CBZ comic archives to PDF or EPUB within a fixed memory budget.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()

app.command(name="convert", help="Convert CBZ archives to PDF or EPUB.")(convert)
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]cbzkit[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """cbzkit - CBZ to PDF/EPUB converter.

    Large archives are split into parts and rendered in memory batches, so
    even multi-thousand-page volumes convert with a small, fixed footprint.
    """
    pass


if __name__ == "__main__":
    app()
