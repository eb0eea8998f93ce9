"""Cost accounting for speech synthesis usage.

Responsibilities:
- Track characters billed by the speech provider.
- Provide estimated USD cost for summaries and dry runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading

DEFAULT_USD_PER_MILLION_CHARS = 30.0


def estimate_cost_usd(
    characters: int, usd_per_million_chars: float = DEFAULT_USD_PER_MILLION_CHARS
) -> float:
    """Return the approximate cost of synthesizing `characters` characters."""

    return (max(0, characters) / 1_000_000) * usd_per_million_chars


@dataclass(slots=True)
class CostTracker:
    """Collect billed characters across concurrently converted chapters."""

    usd_per_million_chars: float = DEFAULT_USD_PER_MILLION_CHARS
    characters: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def add_characters(self, characters: int) -> None:
        """Add billed characters for one completed chapter."""

        with self._lock:
            self.characters += max(0, characters)

    @property
    def cost_usd(self) -> float:
        """Return the estimated cost of all characters tracked so far."""

        return estimate_cost_usd(self.characters, self.usd_per_million_chars)
