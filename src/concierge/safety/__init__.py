"""Semantic safety gate."""

from .service import SafetyAssessment, SafetyGateConfig, SafetySemanticGate, TermCounter

__all__ = ["SafetyAssessment", "SafetyGateConfig", "SafetySemanticGate", "TermCounter"]
