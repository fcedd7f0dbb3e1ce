"""
CLI Interface
=============
Command-line interface for the ingest engine.

Usage:
    qbank-ingest parse <source> [options]     # .txt, .pdf or - for stdin
    qbank-ingest segment <source>             # show detected blocks
    qbank-ingest normalize <source>           # show cleaned text
    qbank-ingest serve [--host --port]
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .anchors import DEFAULT_WATERMARKS
from .engine import IngestConfig, IngestEngine
from .models import IngestReport, ParsedQuestion
from .normalizer import normalize
from .segmenter import segment as segment_text
from .sources import load_text
from .strategies import AI_FIRST

console = Console()


def _read_source(
    source: str,
    page_start: Optional[int] = None,
    page_end: Optional[int] = None,
) -> str:
    if source == "-":
        return click.get_text_stream("stdin").read()

    page_range = None
    if page_start is not None or page_end is not None:
        page_range = (page_start or 1, page_end or 99999)
    return load_text(source, page_range)


def _watermarks(values: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(values) if values else DEFAULT_WATERMARKS


def _config_overrides(**options) -> dict:
    """Options given on the command line; QBANK_* variables fill the rest."""
    return {k: v for k, v in options.items() if v is not None}


@click.group()
@click.version_option(version=__version__, prog_name="qbank-ingest")
def cli():
    """Question-bank ingest engine: pasted exam text to question records."""
    pass


@cli.command()
@click.argument("source")
@click.option(
    "--output", "-o",
    default=None,
    help="Write the JSON result to this file",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
@click.option("--no-ai", is_flag=True, default=False, help="Heuristic tier only")
@click.option(
    "--ai-first",
    is_flag=True,
    default=False,
    help="Try the AI tier before the heuristic tier",
)
@click.option(
    "--subject",
    default=None,
    help="Subject for every record (default: QBANK_SUBJECT or Cyber Security)",
)
@click.option(
    "--difficulty",
    default=None,
    type=click.Choice(["easy", "medium", "hard"]),
    help="Default difficulty (default: QBANK_DIFFICULTY or medium)",
)
@click.option("--source-label", default=None, help="Source stored on every record")
@click.option(
    "--watermark", "-w",
    multiple=True,
    help="Watermark token to strip (repeatable; default CertyIQ)",
)
@click.option("--concurrency", default=None, type=int, help="Concurrent AI calls")
@click.option("--timeout", default=None, type=float, help="Per-call AI timeout (s)")
@click.option(
    "--deadline",
    default=None,
    type=float,
    help="Overall deadline (s); unfinished blocks are abandoned",
)
@click.option("--page-start", default=None, type=int, help="Start page (1-indexed)")
@click.option(
    "--page-end",
    default=None,
    type=int,
    help="End page (1-indexed, inclusive)",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option("--log-file", default=None, help="Path to log file")
def parse(
    source: str,
    output: Optional[str],
    json_output: bool,
    no_ai: bool,
    ai_first: bool,
    subject: Optional[str],
    difficulty: Optional[str],
    source_label: Optional[str],
    watermark: tuple[str, ...],
    concurrency: Optional[int],
    timeout: Optional[float],
    deadline: Optional[float],
    page_start: Optional[int],
    page_end: Optional[int],
    log_level: Optional[str],
    log_file: Optional[str],
):
    """Parse exam text (or a PDF) into structured question records."""

    if json_output:
        # Keep stdout clean for JSON consumers
        log_level = "ERROR"

    config = IngestConfig.from_env(**_config_overrides(
        watermarks=tuple(watermark) or None,
        strategy_order=AI_FIRST if ai_first else None,
        ai_enabled=False if no_ai else None,
        ai_timeout_seconds=timeout,
        ai_concurrency=concurrency,
        deadline_seconds=deadline,
        default_subject=subject,
        default_difficulty=difficulty,
        source=source_label,
        log_level=log_level,
        log_file=log_file,
    ))

    try:
        raw = _read_source(source, page_start, page_end)

        if not json_output:
            console.print()
            console.print(
                Panel.fit(
                    f"[bold cyan]Question-Bank Ingest v{__version__}[/]\n"
                    f"[dim]Parsing: {os.path.basename(source) or 'stdin'}[/]",
                    border_style="cyan",
                )
            )
            console.print()

        engine = IngestEngine(config)
        result = engine.run(raw)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/] {e}")
        if config.log_level == "DEBUG":
            console.print_exception()
        sys.exit(1)

    payload = result.model_dump(mode="json", by_alias=True)

    if output:
        out_path = Path(output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)

    if json_output:
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    _display_questions(result.questions)
    _display_report(result.report)
    if output:
        console.print(f"[dim]Saved to {output}[/]")
        console.print()


@cli.command()
@click.argument("source")
@click.option("--watermark", "-w", multiple=True, help="Watermark token to strip")
def segment(source: str, watermark: tuple[str, ...]):
    """Show the question blocks detected in a source."""
    try:
        raw = _read_source(source)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    blocks = segment_text(normalize(raw, _watermarks(watermark)))
    for idx, block in enumerate(blocks):
        console.rule(f"Block {idx}")
        console.print(block, markup=False, highlight=False)
    console.print()
    console.print(f"[bold]{len(blocks)}[/] blocks detected")


@cli.command("normalize")
@click.argument("source")
@click.option("--watermark", "-w", multiple=True, help="Watermark token to strip")
def normalize_command(source: str, watermark: tuple[str, ...]):
    """Print the source text after junk and watermark removal."""
    try:
        raw = _read_source(source)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    click.echo(normalize(raw, _watermarks(watermark)))


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP microservice server."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Question-Bank Ingest Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_questions(questions: list[ParsedQuestion]):
    """Display parsed questions as a rich table."""
    table = Table(title="Parsed Questions", border_style="cyan")
    table.add_column("#", justify="right", style="bold")
    table.add_column("Question")
    table.add_column("Options", justify="right")
    table.add_column("Answer")
    table.add_column("Type", justify="center")
    table.add_column("Tier", justify="center")

    for q in questions:
        stem = q.question_text
        if len(stem) > 60:
            stem = stem[:57] + "..."

        if q.correct_answer is None:
            answer = "[red]-[/]"
        elif isinstance(q.correct_answer, list):
            answer = " | ".join(q.correct_answer)
        else:
            answer = q.correct_answer
        if len(answer) > 40:
            answer = answer[:37] + "..."

        table.add_row(
            str(q.block_index),
            stem,
            str(len(q.options)),
            answer,
            q.question_type.value,
            q.parse_tier.value,
        )

    console.print(table)
    console.print()


def _display_report(report: IngestReport):
    """Display the ingest report as a rich table."""
    table = Table(title="Ingest Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[red]✗[/]"

    table.add_row(
        "Blocks Detected",
        str(report.blocks_detected),
        "[green]✓[/]" if report.blocks_detected > 0 else "[red]✗[/]",
    )
    table.add_row(
        "Records Emitted",
        f"{report.records_emitted} ({report.success_rate}%)",
        "[green]✓[/]" if report.success_rate >= 90 else "[yellow]⚠[/]",
    )
    table.add_row("Heuristic Records", str(report.heuristic_records), "")
    table.add_row("AI Records", str(report.ai_records), "")
    table.add_row(
        "Skipped Blocks",
        str(len(report.skipped_blocks)),
        status_icon(len(report.skipped_blocks)),
    )
    table.add_row(
        "Abandoned Blocks",
        str(len(report.abandoned_blocks)),
        status_icon(len(report.abandoned_blocks)),
    )
    table.add_row("Repaired Answers", str(len(report.repaired_answers)), "")
    table.add_row(
        "Records Missing Answer",
        str(len(report.records_missing_answer)),
        status_icon(len(report.records_missing_answer)),
    )
    table.add_row(
        "Multiple-Answer Records",
        str(report.multiple_answer_records),
        "",
    )

    console.print(table)
    console.print()


# ─── Entry point (for python -m qbank_ingest.cli) ─────────────────────────────


if __name__ == "__main__":
    cli()
