"""Keyring access for the ElevenLabs API key.

Responsibilities:
- Keep the ElevenLabs key in the operating system keyring between runs.
- Degrade to "nothing stored" when no keyring backend is installed.
- Never echo or log the key itself.

Key types:
- `CredentialStore`: what the CLI needs from a key store.
- `KeyringCredentialStore`: the `keyring`-backed implementation.
"""

from __future__ import annotations

from dataclasses import dataclass

import keyring
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError

KEYRING_SERVICE = "linkin-lark"
KEYRING_ACCOUNT = "elevenlabs_api_key"


class CredentialStore:
    """Abstract ElevenLabs key store used by the CLI."""

    def is_available(self) -> bool:
        raise NotImplementedError

    def get_api_key(self) -> str | None:
        raise NotImplementedError

    def set_api_key(self, api_key: str) -> None:
        raise NotImplementedError

    def clear_api_key(self) -> bool:
        raise NotImplementedError


@dataclass(slots=True)
class KeyringCredentialStore(CredentialStore):
    """Store the key under `(service, account)` in the active keyring backend."""

    service_name: str = KEYRING_SERVICE
    account_name: str = KEYRING_ACCOUNT

    def is_available(self) -> bool:
        """Return `False` when keyring fell back to its failing backend."""

        return not isinstance(keyring.get_keyring(), fail.Keyring)

    def get_api_key(self) -> str | None:
        """Return the stored key stripped of whitespace, or `None`."""

        if not self.is_available():
            return None
        try:
            stored = keyring.get_password(self.service_name, self.account_name)
        except KeyringError:
            return None
        return (stored or "").strip() or None

    def set_api_key(self, api_key: str) -> None:
        """Save `api_key`, replacing any previous value.

        Raises:
            RuntimeError: If no keyring backend is installed.
            ValueError: If the key is blank.
        """

        if not self.is_available():
            raise RuntimeError("no keyring backend is configured on this system")
        cleaned = api_key.strip()
        if not cleaned:
            raise ValueError("API key must not be blank")
        keyring.set_password(self.service_name, self.account_name, cleaned)

    def clear_api_key(self) -> bool:
        """Delete the stored key; return whether there was one to delete."""

        if self.get_api_key() is None:
            return False
        try:
            keyring.delete_password(self.service_name, self.account_name)
        except PasswordDeleteError:
            return False
        return True


def create_credential_store() -> CredentialStore:
    """Return the key store the CLI uses by default."""

    return KeyringCredentialStore()
