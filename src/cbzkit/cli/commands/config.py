"""Config command for configuration management."""

from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console
from rich.table import Table

from cbzkit.config import get_settings
from cbzkit.config.constants import DEFAULT_CONFIG_FILE

config_app = typer.Typer(help="Configuration management.")
console = Console()


@config_app.command("show")
def show(
    as_yaml: Annotated[
        bool,
        typer.Option("--yaml", help="Print the effective settings as YAML."),
    ] = False,
) -> None:
    """Show current configuration."""
    settings = get_settings()

    if as_yaml:
        console.print(yaml.safe_dump(settings.model_dump(), sort_keys=False), end="", markup=False)
        return

    console.print("\n[bold blue]Current Configuration[/bold blue]\n")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    # Global settings
    table.add_row("Log Level", settings.log_level)
    table.add_row("Log Directory", settings.log_dir)
    table.add_row("Scratch Directory", settings.scratch_dir)
    table.add_row("Output Directory", settings.output.default_dir)

    # Conversion settings
    conversion = settings.conversion
    table.add_row("Output Format", conversion.output_format)
    table.add_row("Max Pages per Output", str(conversion.max_pages_per_output))
    table.add_row("Batch Size", str(conversion.batch_size))
    table.add_row("Sort Mode", conversion.sort_mode)
    table.add_row("Merge Sources", str(conversion.merge_sources))
    table.add_row("Compress", str(conversion.compress))
    table.add_row("Chapter Names", str(conversion.chapter_auto_name))

    # Image and writer settings
    table.add_row("Transcode Quality", str(settings.image.transcode_quality))
    table.add_row("Compressed Quality", str(settings.image.compressed_quality))
    table.add_row("PDF Margins", " / ".join(f"{m:g}" for m in settings.pdf.margins))
    table.add_row("EPUB Title", settings.epub.title)

    console.print(table)
    console.print()


DEFAULT_CONFIG_TEMPLATE = """# cbzkit Configuration
# Values can also be set with CBZKIT_* environment variables,
# e.g. CBZKIT_CONVERSION__BATCH_SIZE=100

log_level: "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
log_dir: ".logs"

conversion:
  output_format: "pdf"  # pdf, epub
  max_pages_per_output: 10000  # Split larger archives into parts
  batch_size: 200  # Pages rendered per memory batch
  sort_mode: "lexicographic"  # lexicographic, on_disk
  merge_sources: false
  compress: false  # Recompress pages as JPEG to shrink output
  chapter_auto_name: false  # Append chapter numbers to output names

image:
  transcode_quality: 90  # JPEG quality when converting unsupported formats
  compressed_quality: 75  # JPEG quality when compress is enabled

pdf:
  margin_top: 15
  margin_right: 10
  margin_bottom: 15
  margin_left: 10

epub:
  title: "Converted Manga"

output:
  default_dir: "output"
"""


@config_app.command("init")
def init(
    path: Annotated[
        Path | None,
        typer.Option(
            "--path",
            "-p",
            help="Path to create config file.",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing config file.",
        ),
    ] = False,
) -> None:
    """Initialize a configuration file."""
    config_path = path or Path.cwd() / DEFAULT_CONFIG_FILE

    if config_path.exists() and not force:
        console.print(f"[red]Error:[/red] Config file already exists at {config_path}")
        console.print("Use --force to overwrite.")
        raise typer.Exit(1)

    config_path.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    console.print(f"[green]Created config file at:[/green] {config_path}")
