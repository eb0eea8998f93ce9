"""Module entrypoint for running linkin-lark as ``python -m linkin_lark``."""

from __future__ import annotations

from linkin_lark.cli import main


if __name__ == "__main__":
    main()
