"""Output-format validators for linkin-lark."""

from .yoto import YotoValidator

__all__ = ["YotoValidator"]
