"""Ordered regular-expression rules for the safety and business layers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from string import Template
from typing import Sequence, Tuple


class RuleKind(str, Enum):
    SAFETY = "safety"
    BUSINESS = "business"


@dataclass(frozen=True)
class RuleMatch:
    rule: "PatternRule"
    pattern: str


@dataclass(frozen=True)
class PatternRule:
    """Rule that fires when any of its patterns matches (case-insensitive).

    Safety rules always carry a response. Business rules carry a response, an
    intent id whose definition supplies the response and scope, or both.
    """

    rule_id: str
    kind: RuleKind
    category: str
    patterns: Tuple[str, ...]
    response: str | None = None
    intent: str | None = None
    compiled: Tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.patterns:
            raise ValueError(f"Rule {self.rule_id!r} has no patterns")
        if self.kind is RuleKind.SAFETY and not self.response:
            raise ValueError(f"Safety rule {self.rule_id!r} requires a response")
        if self.kind is RuleKind.BUSINESS and not (self.response or self.intent):
            raise ValueError(f"Business rule {self.rule_id!r} requires a response or an intent")
        object.__setattr__(self, "patterns", tuple(self.patterns))
        object.__setattr__(self, "compiled", tuple(re.compile(p, re.IGNORECASE) for p in self.patterns))

    def match(self, text: str) -> RuleMatch | None:
        for pattern in self.compiled:
            if pattern.search(text):
                return RuleMatch(rule=self, pattern=pattern.pattern)
        return None


def render_response(template: str, *, question: str, support_email: str) -> str:
    """Fill ``$question`` and ``$support_email`` placeholders in a response template."""

    return Template(template).safe_substitute(question=question, support_email=support_email)


class PatternRuleEngine:
    """Evaluates rules in declaration order; the first matching rule wins."""

    def __init__(self, safety_rules: Sequence[PatternRule], business_rules: Sequence[PatternRule]) -> None:
        for rule in safety_rules:
            if rule.kind is not RuleKind.SAFETY:
                raise ValueError(f"Rule {rule.rule_id!r} is not a safety rule")
        for rule in business_rules:
            if rule.kind is not RuleKind.BUSINESS:
                raise ValueError(f"Rule {rule.rule_id!r} is not a business rule")
        self._safety = tuple(safety_rules)
        self._business = tuple(business_rules)

    def match_safety(self, raw_text: str) -> RuleMatch | None:
        # Raw text on purpose: a normalization bug must not weaken safety precedence.
        return self._first_match(self._safety, raw_text)

    def match_business(self, normalized_text: str) -> RuleMatch | None:
        return self._first_match(self._business, normalized_text)

    @staticmethod
    def _first_match(rules: Sequence[PatternRule], text: str) -> RuleMatch | None:
        if not text:
            return None
        for rule in rules:
            match = rule.match(text)
            if match is not None:
                return match
        return None
