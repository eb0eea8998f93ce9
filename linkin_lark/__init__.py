"""Top-level package for linkin-lark.

This package converts HTML books and PDFs into per-chapter MP3 tracks through the
ElevenLabs speech API. The main orchestration entry point is `ConversionPipeline`.
"""

from .pipeline import ConversionPipeline

__all__ = ["ConversionPipeline", "__version__"]

__version__ = "0.2.0"
