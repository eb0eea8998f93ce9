"""Scalar coercion helpers shared by config loading and CLI runtime resolution."""

from __future__ import annotations

_BOOLEAN_TOKENS = {
    "1": True,
    "true": True,
    "yes": True,
    "on": True,
    "0": False,
    "false": False,
    "no": False,
    "off": False,
}


def normalize_optional_string(value: object) -> str | None:
    """Return `str(value)` stripped, or `None` for `None` and blank input."""

    if value is None:
        return None
    return str(value).strip() or None


def parse_permissive_boolean(value: object) -> bool | None:
    """Map `true/yes/on/1` and `false/no/off/0` (any case) to a bool.

    Real booleans pass through; anything else yields `None` so callers can
    report the offending key.
    """

    if isinstance(value, bool):
        return value
    token = normalize_optional_string(value)
    if token is None:
        return None
    return _BOOLEAN_TOKENS.get(token.lower())


def parse_positive_int(value: object) -> int | None:
    """Parse a strictly positive integer, returning `None` for anything else.

    Booleans are rejected even though they are `int` subclasses.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    token = normalize_optional_string(value)
    if token is None:
        return None
    try:
        parsed = int(token)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def parse_positive_float(value: object) -> float | None:
    """Parse a strictly positive float, returning `None` for anything else."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if value > 0 else None
    token = normalize_optional_string(value)
    if token is None:
        return None
    try:
        parsed = float(token)
    except ValueError:
        return None
    return parsed if parsed > 0 else None
