"""Runtime value collection for the `convert` command.

Gathers the API key and voice from CLI flags, the hidden prompt, and the
keyring, and persists a newly entered key when asked to.
"""

from __future__ import annotations

from typing import Callable, Protocol

import typer

from .credentials import create_credential_store
from .errors import PipelineStageError
from .parsing import normalize_optional_string


class CredentialStoreProtocol(Protocol):
    """Subset of the key store used while resolving runtime values."""

    def get_api_key(self) -> str | None:
        ...

    def set_api_key(self, api_key: str) -> None:
        ...


def prompt_for_api_key(label: str = "ElevenLabs API key (hidden; leave blank to skip)") -> str | None:
    """Read a key from a hidden prompt; blank input returns `None`."""

    return normalize_optional_string(
        typer.prompt(label, default="", hide_input=True, show_default=False)
    )


def resolve_runtime_sources(
    voice_id: str | None,
    api_key: str | None,
    prompt_api_key: bool,
    store_api_key: bool,
    credential_store_factory: Callable[[], CredentialStoreProtocol] = create_credential_store,
) -> tuple[dict[str, str], dict[str, str]]:
    """Return `(cli_values, keyring_values)` for `RuntimeConfigSources`.

    A key given on the command line (or typed at the prompt) is written to the
    keyring when `store_api_key` is set and it differs from the stored one.

    Raises:
        PipelineStageError: If the keyring rejects the new key.
    """

    from_cli: dict[str, str] = {}
    for name, raw in (("voice_id", voice_id), ("api_key", api_key)):
        cleaned = normalize_optional_string(raw)
        if cleaned is not None:
            from_cli[name] = cleaned
    if prompt_api_key and "api_key" not in from_cli:
        typed = prompt_for_api_key()
        if typed is not None:
            from_cli["api_key"] = typed

    store = credential_store_factory()
    saved_key = store.get_api_key()
    from_keyring = {"api_key": saved_key} if saved_key is not None else {}

    new_key = from_cli.get("api_key")
    if store_api_key and new_key is not None and new_key != saved_key:
        try:
            store.set_api_key(new_key)
        except (RuntimeError, ValueError) as exc:
            raise PipelineStageError(
                stage="credentials",
                detail=f"Could not save the API key to the keyring: {exc}",
                hint="Configure a keyring backend, or add `--no-store-api-key` for this run.",
            ) from exc
        typer.echo("Stored API key in secure credential storage.", err=True)

    return from_cli, from_keyring
