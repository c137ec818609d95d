"""Semantic intent classification."""

from .service import IntentClassifier, IntentMatch

__all__ = ["IntentClassifier", "IntentMatch"]
