"""Error taxonomy shared by the router and its collaborators."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised at startup when a static configuration document is missing or malformed."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


class QueryValidationError(ValueError):
    """Raised before routing when the incoming question is empty or not text."""


class EmbeddingProviderError(RuntimeError):
    """Raised when the embedding capability fails; aborts the routing pipeline."""


class DimensionMismatchError(ValueError):
    """Raised when two vectors cannot be compared because their dimensions differ."""


class GenerationError(RuntimeError):
    """Raised when the answer generation backend fails."""


__all__ = [
    "ConfigurationError",
    "DimensionMismatchError",
    "EmbeddingProviderError",
    "GenerationError",
    "QueryValidationError",
]
