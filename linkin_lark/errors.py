"""Domain exceptions for pipeline and CLI diagnostics."""

from __future__ import annotations


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class ConfigurationError(PipelineStageError):
    """Raised for invalid settings; always fatal before any network call."""

    def __init__(self, detail: str, hint: str | None = None) -> None:
        """Initialize a configuration error scoped to the `config` stage."""

        super().__init__(stage="config", detail=detail, hint=hint)


class InputError(PipelineStageError):
    """Raised when the input document cannot be resolved or parsed."""

    def __init__(self, detail: str, hint: str | None = None) -> None:
        """Initialize an input error scoped to the `parse` stage."""

        super().__init__(stage="parse", detail=detail, hint=hint)


class ChunkValidationError(ValueError):
    """Raised when chapter text cannot be chunked with the requested ceiling."""
