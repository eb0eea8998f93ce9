"""Voice configuration for ElevenLabs synthesis.

Responsibilities:
- Represent the provider voice identity and tuning settings sent with each request.
- Keep default voice/model identifiers in one place.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_VOICE_ID = "EXAVITQu4vr4xnSDxMaL"
DEFAULT_MODEL_ID = "eleven_flash_v2_5"


@dataclass(frozen=True, slots=True)
class VoiceConfig:
    """Declarative voice settings used by the speech client.

    Attributes:
        voice_id: Provider-native voice identifier.
        model_id: Provider-native synthesis model identifier.
        stability: Voice stability in `[0, 1]`.
        similarity_boost: Similarity boost in `[0, 1]`.
    """

    voice_id: str = DEFAULT_VOICE_ID
    model_id: str = DEFAULT_MODEL_ID
    stability: float = 0.5
    similarity_boost: float = 0.75

    def voice_settings(self) -> dict[str, float]:
        """Return the `voice_settings` request payload."""

        return {
            "stability": max(0.0, min(1.0, self.stability)),
            "similarity_boost": max(0.0, min(1.0, self.similarity_boost)),
        }
