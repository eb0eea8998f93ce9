"""Integration tests for the `convert` and `credentials` CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from linkin_lark.cli import app
from linkin_lark.models.datatypes import Chapter, ParseResult

_POST_TARGET = "linkin_lark.tts.elevenlabs_client.requests.post"
_ENV_KEYS = (
    "ELEVENLABS_API_KEY",
    "ELEVENLABS_VOICE_ID",
    "ELEVENLABS_MAX_CONCURRENT",
    "ELEVENLABS_MIN_INTERVAL",
    "ELEVENLABS_MAX_RETRIES",
    "LINKIN_LARK_API_KEY",
    "LINKIN_LARK_VOICE_ID",
    "LINKIN_LARK_INPUT_SOURCE",
    "LINKIN_LARK_OUTPUT_DIR",
    "LINKIN_LARK_RESUME",
    "LINKIN_LARK_FORCE",
    "LINKIN_LARK_DRY_RUN",
)


class InMemoryCredentialStore:
    """Simple in-memory credential store used for CLI tests."""

    def __init__(self, initial_api_key: str | None = None) -> None:
        """Initialize the store with an optional pre-seeded API key."""

        self._api_key = initial_api_key

    def is_available(self) -> bool:
        """Return availability flag expected by the CLI status command."""

        return True

    def get_api_key(self) -> str | None:
        """Return currently stored API key value."""

        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        """Persist a normalized API key value."""

        self._api_key = api_key.strip()

    def clear_api_key(self) -> bool:
        """Clear API key and return whether one existed."""

        existed = self._api_key is not None
        self._api_key = None
        return existed


class _Response:
    """Minimal `requests.Response` stand-in."""

    def __init__(self, status_code: int, content: bytes) -> None:
        """Initialize status and body bytes."""

        self.status_code = status_code
        self.content = content
        self.headers: dict[str, str] = {}


def _speech_post(failing_marker: str | None = None, status_code: int = 400):  # type: ignore[no-untyped-def]
    """Return a fake `requests.post` failing for texts containing `failing_marker`."""

    calls: list[str] = []

    def _post(url: str, **kwargs: object) -> _Response:
        payload = kwargs["json"]
        assert isinstance(payload, dict)
        text = str(payload["text"])
        calls.append(text)
        if failing_marker is not None and failing_marker in text:
            return _Response(status_code, b'{"detail": {"message": "rejected"}}')
        return _Response(200, b"ID3" + text[:4].encode("utf-8"))

    _post.calls = calls  # type: ignore[attr-defined]
    return _post


def _book() -> ParseResult:
    return ParseResult(
        chapters=(
            Chapter(title="Intro", content="Once upon a time.", ordinal=0),
            Chapter(title="Trouble", content="Then trouble came.", ordinal=1),
        ),
        source="book.pdf",
        kind="pdf",
    )


def _json_payload(output: str) -> dict[str, object]:
    """Return the JSON summary line from mixed CLI output."""

    lines = [line for line in output.splitlines() if line.startswith("{")]
    assert lines, output
    return json.loads(lines[-1])


@pytest.fixture
def credential_store(monkeypatch: pytest.MonkeyPatch) -> InMemoryCredentialStore:
    """Isolate CLI runs from the host environment and keyring."""

    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    store = InMemoryCredentialStore()
    monkeypatch.setattr("linkin_lark.cli.create_credential_store", lambda: store)
    monkeypatch.setattr("linkin_lark.cli.parse_input", lambda source, pages: _book())
    return store


def _convert_args(output_dir: Path, *extra: str) -> list[str]:
    return [
        "convert",
        "book.pdf",
        "--output",
        str(output_dir),
        "--api-key",
        "test-key",
        "--no-store-api-key",
        "--interval-seconds",
        "0.01",
        *extra,
    ]


def test_convert_writes_tracks_and_exits_zero(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, credential_store: InMemoryCredentialStore
) -> None:
    """A successful conversion should write every track and report JSON status."""

    post = _speech_post()
    monkeypatch.setattr(_POST_TARGET, post)
    out_dir = tmp_path / "out"

    result = CliRunner().invoke(app, _convert_args(out_dir, "--json"))

    assert result.exit_code == 0, result.output
    payload = _json_payload(result.output)
    assert payload["status"] == "complete"
    assert payload["converted"] == [0, 1]
    assert payload["failed"] == []
    assert (out_dir / "1.mp3").read_bytes() == b"ID3Once"
    assert (out_dir / "2.mp3").read_bytes() == b"ID3Then"
    assert len(post.calls) == 2
    assert credential_store.get_api_key() is None


def test_partial_run_exits_two_and_resume_finishes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, credential_store: InMemoryCredentialStore
) -> None:
    """A chapter failure should exit 2; `--resume` should retry only that chapter."""

    monkeypatch.setattr(_POST_TARGET, _speech_post(failing_marker="trouble"))
    out_dir = tmp_path / "out"

    first = CliRunner().invoke(app, _convert_args(out_dir))

    assert first.exit_code == 2, first.output
    assert "Converted 1/2 chapters" in first.output
    assert "Failed chapter 2: Trouble" in first.output
    assert (out_dir / ".linkin-lark-state.json").exists()

    blocked = CliRunner().invoke(app, _convert_args(out_dir))
    assert blocked.exit_code == 1
    assert "--resume" in blocked.output

    retry_post = _speech_post()
    monkeypatch.setattr(_POST_TARGET, retry_post)
    resumed = CliRunner().invoke(app, _convert_args(out_dir, "--resume", "--json"))

    assert resumed.exit_code == 0, resumed.output
    payload = _json_payload(resumed.output)
    assert payload["skipped"] == [0]
    assert payload["converted"] == [1]
    assert retry_post.calls == ["Then trouble came."]
    assert not (out_dir / ".linkin-lark-state.json").exists()


def test_unauthorized_exits_one(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, credential_store: InMemoryCredentialStore
) -> None:
    """An invalid API key should stop the run with exit code 1 and a key hint."""

    monkeypatch.setattr(_POST_TARGET, _speech_post(failing_marker="", status_code=401))

    result = CliRunner().invoke(
        app, _convert_args(tmp_path / "out", "--max-concurrent", "1")
    )

    assert result.exit_code == 1
    assert "authentication failed" in result.output
    assert "Hint: Check the ElevenLabs API key" in result.output
    assert "test-key" not in result.output


def test_resume_and_force_are_rejected(
    tmp_path: Path, credential_store: InMemoryCredentialStore
) -> None:
    """Conflicting resume flags should fail at the config stage."""

    result = CliRunner().invoke(app, _convert_args(tmp_path / "out", "--resume", "--force"))

    assert result.exit_code == 1
    assert "convert failed at stage `config`" in result.output


def test_missing_api_key_exits_one(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, credential_store: InMemoryCredentialStore
) -> None:
    """Without any API key source the command should fail before synthesis."""

    post = _speech_post()
    monkeypatch.setattr(_POST_TARGET, post)

    result = CliRunner().invoke(app, ["convert", "book.pdf", "-o", str(tmp_path / "out")])

    assert result.exit_code == 1
    assert "API key not found" in result.output
    assert post.calls == []


def test_dry_run_reports_chapters_without_requests(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, credential_store: InMemoryCredentialStore
) -> None:
    """`--dry-run` should list chapters and cost without needing a key."""

    post = _speech_post()
    monkeypatch.setattr(_POST_TARGET, post)

    result = CliRunner().invoke(
        app, ["convert", "book.pdf", "-o", str(tmp_path / "out"), "--dry-run"]
    )

    assert result.exit_code == 0, result.output
    assert "Dry run - no conversion performed" in result.output
    assert "1. Intro (17 characters)" in result.output
    assert "Total characters: 35" in result.output
    assert post.calls == []


def test_stored_api_key_is_used_when_no_cli_key(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, credential_store: InMemoryCredentialStore
) -> None:
    """A key saved in secure storage should authenticate the run."""

    seen_keys: list[str] = []

    def _post(url: str, **kwargs: object) -> _Response:
        headers = kwargs["headers"]
        assert isinstance(headers, dict)
        seen_keys.append(headers["xi-api-key"])
        return _Response(200, b"ID3")

    monkeypatch.setattr(_POST_TARGET, _post)
    credential_store.set_api_key("stored-key")

    result = CliRunner().invoke(
        app,
        ["convert", "book.pdf", "-o", str(tmp_path / "out"), "--interval-seconds", "0.01"],
    )

    assert result.exit_code == 0, result.output
    assert seen_keys == ["stored-key", "stored-key"]


def test_credentials_command_set_status_and_clear(
    credential_store: InMemoryCredentialStore,
) -> None:
    """The credentials command should manage the stored API key."""

    runner = CliRunner()

    stored = runner.invoke(app, ["credentials", "--set-api-key"], input="abc\n")
    assert stored.exit_code == 0, stored.output
    assert credential_store.get_api_key() == "abc"

    status = runner.invoke(app, ["credentials"])
    assert "Stored ElevenLabs API key: present" in status.output

    cleared = runner.invoke(app, ["credentials", "--clear-api-key"])
    assert "Stored API key cleared" in cleared.output
    assert credential_store.get_api_key() is None

    status = runner.invoke(app, ["credentials"])
    assert "Stored ElevenLabs API key: not set" in status.output
