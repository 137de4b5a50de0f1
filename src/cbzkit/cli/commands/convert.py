"""Convert command: CBZ archives to PDF or EPUB."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from cbzkit.archive.reader import SortMode
from cbzkit.config import CbzkitSettings, get_settings
from cbzkit.config.constants import SUPPORTED_EXTENSIONS
from cbzkit.core.models import ConversionJob, ConversionResult, OutputFormat
from cbzkit.exceptions import CbzkitError
from cbzkit.services.naming import NamingResolver
from cbzkit.services.storage import FileSource, LocalOutputDirectory
from cbzkit.utils.fs import safe_filename
from cbzkit.utils.logging import get_logger, setup_task_logging

console = Console()
log = get_logger(__name__)


def collect_inputs(inputs: list[Path]) -> list[Path]:
    """Expand directories into their CBZ/zip files, sorted by name.

    Explicit file arguments are kept in the order given.
    """
    files: list[Path] = []
    for item in inputs:
        if item.is_dir():
            files.extend(
                sorted(
                    (p for p in item.iterdir() if p.suffix.lower() in SUPPORTED_EXTENSIONS),
                    key=lambda p: p.name,
                )
            )
        else:
            files.append(item)
    return files


def convert(
    inputs: Annotated[
        list[Path],
        typer.Argument(
            help="CBZ files (or directories of CBZ files) to convert.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output directory for converted files.",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ] = None,
    output_format: Annotated[
        OutputFormat | None,
        typer.Option("--format", help="Output format.", case_sensitive=False),
    ] = None,
    max_pages: Annotated[
        int | None,
        typer.Option("--max-pages", help="Maximum pages per output file (<= 0 uses default)."),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", help="Pages rendered per memory batch (<= 0 uses default)."),
    ] = None,
    merge: Annotated[
        bool | None,
        typer.Option("--merge/--no-merge", help="Merge all inputs into one output."),
    ] = None,
    sort: Annotated[
        SortMode | None,
        typer.Option("--sort", help="Page ordering inside each archive.", case_sensitive=False),
    ] = None,
    compress: Annotated[
        bool | None,
        typer.Option("--compress/--no-compress", help="Recompress page images to shrink output."),
    ] = None,
    chapter_names: Annotated[
        bool | None,
        typer.Option(
            "--chapter-names/--no-chapter-names",
            help="Append chapter numbers found in file names to output names.",
        ),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", help="Custom output name (without extension)."),
    ] = None,
    group: Annotated[
        str | None,
        typer.Option("--group", help="Series name to use instead of the folder name."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output."),
    ] = False,
) -> None:
    """Convert CBZ archives to PDF or EPUB.

    Examples:
        cbzkit convert "Vol 01.cbz"
        cbzkit convert ./Series -o ./out --merge --chapter-names
        cbzkit convert big.cbz --max-pages 500 --batch-size 100 --compress
        cbzkit convert ch1.cbz ch2.cbz --format epub
    """
    settings = get_settings()

    task_id, log_path = setup_task_logging(
        log_dir=settings.log_dir,
        prefix="convert",
        verbose=verbose,
    )
    if verbose:
        log.info("Logs will be saved to", log_file=str(log_path))
    log.info("Task Configuration", task_id=task_id, config=settings.model_dump())

    files = collect_inputs(inputs)
    if not files:
        console.print("[red]Error:[/red] No CBZ files found in the given inputs.")
        raise typer.Exit(1)

    defaults = settings.conversion
    group_name = safe_filename(group) if group else None
    sources = [FileSource(path, group=group_name or None) for path in files]
    merge_sources = defaults.merge_sources if merge is None else merge

    if merge_sources and not NamingResolver().can_merge(sources):
        console.print("[yellow]Merge disabled: files from different series[/yellow]")
        log.warning("Merge disabled", reason="different series", sources=len(sources))
        merge_sources = False

    job = ConversionJob(
        sources=tuple(sources),
        output_dir=LocalOutputDirectory(output or Path(settings.output.default_dir)),
        max_pages_per_output=defaults.max_pages_per_output if max_pages is None else max_pages,
        batch_size=defaults.batch_size if batch_size is None else batch_size,
        merge_sources=merge_sources,
        sort_mode=sort or SortMode(defaults.sort_mode),
        compress=defaults.compress if compress is None else compress,
        chapter_auto_name=defaults.chapter_auto_name if chapter_names is None else chapter_names,
        custom_name=safe_filename(name) if name else None,
        output_format=output_format or OutputFormat(defaults.output_format),
    )

    log.info(
        "Starting conversion",
        sources=len(job.sources),
        output_dir=job.output_dir.location,
        format=job.output_format.value,
        max_pages=job.max_pages_per_output,
        batch_size=job.batch_size,
        merge=job.merge_sources,
    )

    try:
        result = _execute_conversion(job, settings, verbose)
    except KeyboardInterrupt:
        log.warning("Task Interrupted by KeyboardInterrupt")
        console.print("\n[yellow]Interrupted. Exiting...[/yellow]")
        raise typer.Exit(130) from None
    except CbzkitError as e:
        log.error("Conversion failed", error=str(e))
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    _display_result(result)
    if result.outcome == "nothing_produced":
        raise typer.Exit(1)


def _execute_conversion(
    job: ConversionJob, settings: CbzkitSettings, verbose: bool
) -> ConversionResult:
    """Run the job, with a spinner unless verbose logging is on."""
    from cbzkit.core.pipeline import ConversionOrchestrator

    orchestrator = ConversionOrchestrator(settings=settings)

    if verbose:
        return orchestrator.run(job, progress=lambda message: log.info(message))

    # Console log handlers would break the spinner line; the task log file still records everything
    root_logger = logging.getLogger()
    console_handlers = [
        h
        for h in root_logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]
    original_levels = [(h, h.level) for h in console_handlers]
    for handler in console_handlers:
        handler.setLevel(logging.CRITICAL + 1)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Converting...", total=None)
            return orchestrator.run(
                job, progress=lambda message: progress.update(task, description=message)
            )
    finally:
        for handler, level in original_levels:
            handler.setLevel(level)


def _display_result(result: ConversionResult) -> None:
    if result.outcome == "nothing_produced":
        log.error("Task Failed", status=result.status_log[-5:])
        console.print("[bold red]No output was produced.[/bold red]")
        for line in result.status_log[-5:]:
            console.print(f"  {line}")
        return

    log.info(
        "Task Completed",
        outcome=result.outcome,
        artifacts=[artifact.name for artifact in result.artifacts],
        pages=result.total_pages,
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Output", style="cyan")
    table.add_column("Pages", justify="right")
    table.add_column("Part")
    for artifact in result.artifacts:
        table.add_row(
            str(artifact.path or artifact.name),
            str(artifact.page_count),
            f"{artifact.part_index + 1}/{artifact.part_count}",
        )

    if result.outcome == "partial":
        console.print("[bold yellow]Conversion completed with warnings[/bold yellow]")
    else:
        console.print("[bold green]Conversion completed![/bold green]")
    console.print(table)

    if result.skipped_pages:
        console.print(f"  [yellow]Skipped pages:[/yellow] {len(result.skipped_pages)}")
    if result.failed_sources:
        console.print(f"  [yellow]Failed sources:[/yellow] {', '.join(result.failed_sources)}")
