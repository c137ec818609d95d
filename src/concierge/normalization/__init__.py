"""Question normalization."""

from .service import Normalizer, ProtectedEntity

__all__ = ["Normalizer", "ProtectedEntity"]
