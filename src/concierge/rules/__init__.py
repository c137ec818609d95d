"""Deterministic pattern rules."""

from .service import PatternRule, PatternRuleEngine, RuleKind, RuleMatch

__all__ = ["PatternRule", "PatternRuleEngine", "RuleKind", "RuleMatch"]
