"""Command-line interface for linkin-lark.

Responsibilities:
- Expose user-facing commands for chapter-to-MP3 conversion and credentials.
- Convert CLI arguments into `LinkinLarkConfig` and run the pipeline.
- Map outcomes to exit codes: 0 complete, 2 partial (resumable), 1 error.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

import typer

from .cli_rendering import (
    ConvertProgressIndicator,
    echo_dry_run,
    echo_json,
    echo_summary,
    exit_with_command_error,
)
from .cli_runtime import prompt_for_api_key, resolve_runtime_sources
from .config import ConfigLoader, LinkinLarkConfig, RuntimeConfigSources
from .credentials import CredentialStore, create_credential_store
from .errors import PipelineStageError
from .io.input_parser import parse_input
from .models.datatypes import ParseResult
from .pipeline import ConversionPipeline
from .telemetry.logger import RunLogger

PARTIAL_SUCCESS_EXIT_CODE = 2

app = typer.Typer(
    name="linkin-lark",
    no_args_is_help=True,
    help="Convert HTML books and PDFs into per-chapter MP3 tracks with ElevenLabs.",
)


def _resolve_command_base_config(
    config_file: Path | None,
    input_source: str | None,
) -> LinkinLarkConfig:
    """Resolve base config from YAML or environment, with the CLI input winning."""

    if config_file is None:
        return ConfigLoader.from_env(input_source=input_source)
    if not config_file.exists():
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_file}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        )
    config = ConfigLoader.from_yaml(config_file)
    if input_source is not None:
        config.input_source = input_source
    return config


def _apply_cli_overrides(config: LinkinLarkConfig, overrides: dict[str, object]) -> None:
    """Set every explicitly provided CLI value on the config."""

    for field_name, value in overrides.items():
        if value is not None:
            setattr(config, field_name, value)


def _parse_document(config: LinkinLarkConfig, run_logger: RunLogger) -> ParseResult:
    """Parse the input document and emit parse-stage telemetry."""

    run_logger.log_stage_start("parse", source=config.input_source)
    try:
        result = parse_input(config.input_source, config.pages_per_chapter)
    except Exception as exc:
        run_logger.log_stage_failure("parse", type(exc).__name__)
        raise
    run_logger.log_stage_complete("parse", kind=result.kind, chapters=len(result.chapters))
    return result


@app.command("convert")
def convert_command(
    input_source: Annotated[
        str | None,
        typer.Argument(help="HTTP(S) URL or PDF path. Required unless set by `--config`."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Output directory (default `./output`)."),
    ] = None,
    voice: Annotated[
        str | None, typer.Option("-v", "--voice", help="ElevenLabs voice id override.")
    ] = None,
    model: Annotated[
        str | None, typer.Option("--model", help="ElevenLabs model id override.")
    ] = None,
    pages_per_chapter: Annotated[
        int | None,
        typer.Option(
            "-p",
            "--pages-per-chapter",
            help="Pages per chapter for PDFs without an outline.",
        ),
    ] = None,
    max_concurrent: Annotated[
        int | None,
        typer.Option("--max-concurrent", help="Maximum in-flight speech requests."),
    ] = None,
    requests_per_interval: Annotated[
        int | None,
        typer.Option("--requests-per-interval", help="Request starts allowed per interval."),
    ] = None,
    interval_seconds: Annotated[
        float | None,
        typer.Option("--interval-seconds", help="Length of the request-start window."),
    ] = None,
    max_retries: Annotated[
        int | None,
        typer.Option("--max-retries", help="Retries per request after the first attempt."),
    ] = None,
    chunk_size: Annotated[
        int | None,
        typer.Option("--chunk-size", help="Maximum characters per speech request."),
    ] = None,
    resume: Annotated[
        bool, typer.Option("--resume", help="Continue a previous unfinished run.")
    ] = False,
    force: Annotated[
        bool, typer.Option("--force", help="Discard previous run state and start over.")
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="List chapters and estimate cost without converting."),
    ] = False,
    json_output: Annotated[
        bool, typer.Option("--json", help="Print the run summary as JSON on stdout.")
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file with command defaults."),
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option(
            "--api-key",
            help="API key override. Prefer `--prompt-api-key` to avoid shell history.",
        ),
    ] = None,
    prompt_api_key: Annotated[
        bool,
        typer.Option("--prompt-api-key", help="Prompt for API key with hidden input."),
    ] = False,
    store_api_key: Annotated[
        bool,
        typer.Option(
            "--store-api-key/--no-store-api-key",
            help="Persist a CLI-entered API key to secure credential storage.",
        ),
    ] = True,
) -> None:
    """Convert a document into one MP3 file per chapter."""

    try:
        runtime_cli_values, runtime_secure_values = resolve_runtime_sources(
            voice_id=voice,
            api_key=api_key,
            prompt_api_key=prompt_api_key,
            store_api_key=store_api_key,
            credential_store_factory=create_credential_store,
        )
        config = _resolve_command_base_config(config_file, input_source)
        _apply_cli_overrides(
            config,
            {
                "output_dir": output,
                "model_id": model,
                "pages_per_chapter": pages_per_chapter,
                "max_concurrent": max_concurrent,
                "requests_per_interval": requests_per_interval,
                "interval_seconds": interval_seconds,
                "max_retries": max_retries,
                "chunk_size_chars": chunk_size,
                "resume": True if resume else None,
                "force": True if force else None,
                "dry_run": True if dry_run else None,
            },
        )
        config.runtime_sources = RuntimeConfigSources(
            cli=runtime_cli_values,
            secure=runtime_secure_values,
            env=ConfigLoader.runtime_env(os.environ),
        )
        config.validate()

        run_logger = RunLogger()
        parse_result = _parse_document(config, run_logger)
        progress = None if json_output else ConvertProgressIndicator(len(parse_result.chapters))
        pipeline = ConversionPipeline(config, run_logger=run_logger, progress_callback=progress)
        summary = pipeline.run(parse_result)
    except Exception as exc:
        exit_with_command_error("convert", exc)

    if json_output:
        echo_json(summary)
    elif summary.dry_run:
        echo_dry_run(parse_result, summary)
    else:
        echo_summary(summary)

    if not summary.succeeded:
        raise typer.Exit(code=PARTIAL_SUCCESS_EXIT_CODE)


def _credentials_error(detail: str, hint: str) -> PipelineStageError:
    return PipelineStageError(stage="credentials", detail=detail, hint=hint)


def _store_prompted_api_key(credential_store: CredentialStore) -> None:
    """Prompt for a key with hidden input and save it to the keyring."""

    prompted_api_key = prompt_for_api_key("ElevenLabs API key (hidden input)")
    if prompted_api_key is None:
        raise _credentials_error(
            "No API key entered.",
            "Type the key at the prompt; blank input is not stored.",
        )
    try:
        credential_store.set_api_key(prompted_api_key)
    except (RuntimeError, ValueError) as exc:
        raise _credentials_error(
            f"Failed to store API key securely: {exc}",
            "Configure a keyring backend, or pass `--api-key` per run instead.",
        ) from exc
    typer.echo("API key stored in secure credential storage.")


def _report_credentials(credential_store: CredentialStore) -> None:
    backend = "available" if credential_store.is_available() else "unavailable"
    stored = "present" if credential_store.get_api_key() is not None else "not set"
    typer.echo(f"Secure credential storage: {backend}")
    typer.echo(f"Stored ElevenLabs API key: {stored}")


@app.command("credentials")
def credentials_command(
    set_api_key: Annotated[
        bool,
        typer.Option("--set-api-key", help="Prompt for the ElevenLabs key and keep it in the keyring."),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option("--clear-api-key", help="Remove the ElevenLabs key from the keyring."),
    ] = False,
) -> None:
    """Show, store, or remove the keyring-held ElevenLabs API key."""

    try:
        if set_api_key and clear_api_key:
            raise _credentials_error(
                "`--set-api-key` and `--clear-api-key` are mutually exclusive.",
                "Pick one action per invocation.",
            )
        credential_store = create_credential_store()
        if set_api_key:
            _store_prompted_api_key(credential_store)
        elif clear_api_key:
            if credential_store.clear_api_key():
                typer.echo("Stored API key cleared from secure credential storage.")
            else:
                typer.echo("Nothing to clear: no API key is stored.")
        else:
            _report_credentials(credential_store)
    except PipelineStageError as exc:
        exit_with_command_error("credentials", exc)


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
