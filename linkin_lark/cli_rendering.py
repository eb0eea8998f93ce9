"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
progress lines, dry-run reports, and end-of-run summaries.
"""

from __future__ import annotations

import json
from typing import NoReturn

import typer

from .errors import PipelineStageError
from .io.storage import chapter_file_name
from .models.datatypes import Chapter, ConversionSummary, ParseResult
from .tts.elevenlabs_client import UnauthorizedError

_UNAUTHORIZED_HINT = (
    "Check the ElevenLabs API key passed with `--api-key`, set in `ELEVENLABS_API_KEY`, "
    "or stored with `linkin-lark credentials --set-api-key`."
)


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
        if isinstance(exc, UnauthorizedError):
            typer.secho(f"Hint: {_UNAUTHORIZED_HINT}", fg=typer.colors.YELLOW, err=True)
    raise typer.Exit(code=1) from exc


class ConvertProgressIndicator:
    """Render deterministic per-chapter progress lines on stderr."""

    def __init__(self, total_chapters: int) -> None:
        """Initialize progress indicator metadata for one conversion."""

        self._total = total_chapters

    def __call__(self, event: str, chapter: Chapter | None, detail: str) -> None:
        """Print one progress line for a pipeline event."""

        if chapter is None:
            typer.echo(f"[progress] event={event} {detail}", err=True)
            return
        typer.echo(
            f"[progress] event={event} chapter={chapter.ordinal + 1}/{self._total} "
            f"title={chapter.title!r} {detail}",
            err=True,
        )


def echo_dry_run(parse_result: ParseResult, summary: ConversionSummary) -> None:
    """Print detected chapters, character total, and estimated cost."""

    typer.echo("Dry run - no conversion performed")
    typer.echo("Chapters detected:")
    for chapter in parse_result.chapters:
        typer.echo(f"  {chapter.ordinal + 1}. {chapter.title} ({len(chapter.content)} characters)")
    typer.echo(f"Total characters: {summary.characters:,}")
    typer.echo(f"Estimated cost (USD): {summary.estimated_cost_usd:.2f} (approximate)")


def echo_summary(summary: ConversionSummary) -> None:
    """Print converted, skipped, and failed chapters plus cost."""

    done = summary.total_chapters - len(summary.failed)
    if summary.succeeded:
        typer.secho(
            f"Converted all {summary.total_chapters} chapters to {summary.output_dir}",
            fg=typer.colors.GREEN,
        )
    else:
        typer.secho(
            f"Converted {done}/{summary.total_chapters} chapters to {summary.output_dir}",
            fg=typer.colors.YELLOW,
        )
    if summary.skipped:
        typer.echo(f"Skipped (already converted): {len(summary.skipped)}")
    for ordinal in summary.converted:
        typer.echo(f"  {chapter_file_name(ordinal, summary.total_chapters)}")
    for failure in summary.failed:
        typer.secho(
            f"Failed chapter {failure.ordinal + 1}: {failure.title}: {failure.error}",
            fg=typer.colors.RED,
            err=True,
        )
    typer.echo(f"Characters billed: {summary.characters:,}")
    typer.echo(f"Estimated cost (USD): {summary.estimated_cost_usd:.6f}")
    if not summary.succeeded:
        typer.secho(
            "Rerun the same command with `--resume` to retry failed chapters.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def echo_json(summary: ConversionSummary) -> None:
    """Print the summary as one deterministic JSON document."""

    typer.echo(json.dumps(summary.as_payload(), sort_keys=True))
