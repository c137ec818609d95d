"""Question normalization that keeps product entity names stable."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Sequence

from concierge.models import NormalizedQuery

_DASHES = "\\-\u2010\u2011\u2012\u2013\u2014\u2015\u2212\ufe58\ufe63\uff0d"
_DASH_RE = re.compile(f"[{_DASHES}]")
_SEPARATOR_RE = re.compile(f"[\\s{_DASHES}]+")
_WHITESPACE_RE = re.compile(r"\s+")

# Private-use code points survive lower-casing, whitespace and dash rewrites untouched.
_PLACEHOLDER_OPEN = "\ue000"
_PLACEHOLDER_CLOSE = "\ue001"
_PLACEHOLDER_RE = re.compile(f"{_PLACEHOLDER_OPEN}(\\d+){_PLACEHOLDER_CLOSE}")
_PLACEHOLDER_CHARS_RE = re.compile(f"[{_PLACEHOLDER_OPEN}{_PLACEHOLDER_CLOSE}]")


def _basic_normalize(text: str) -> str:
    lowered = text.lower()
    unified = _DASH_RE.sub("-", lowered)
    return _WHITESPACE_RE.sub(" ", unified).strip()


@dataclass(frozen=True)
class ProtectedEntity:
    """Multi-word name that must come out of normalization in one canonical spelling.

    Every spelling is matched case-insensitively as a whole word, with any run
    of whitespace or dash characters (or none) allowed between its words.
    """

    canonical: str
    variants: Sequence[str] = ()
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)
    canonical_form: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "variants", tuple(self.variants))
        forms = {self.canonical, *self.variants}
        alternatives: List[str] = []
        for form in forms:
            words = [word for word in _SEPARATOR_RE.split(form.strip()) if word]
            if not words:
                continue
            alternatives.append(f"[\\s{_DASHES}]*".join(re.escape(word) for word in words))
        if not alternatives:
            raise ValueError(f"Protected entity {self.canonical!r} has no usable spelling")
        alternatives.sort(key=lambda alternative: (-len(alternative), alternative))
        compiled = re.compile(r"(?<!\w)(?:" + "|".join(alternatives) + r")(?!\w)", re.IGNORECASE)
        object.__setattr__(self, "pattern", compiled)
        object.__setattr__(self, "canonical_form", _basic_normalize(self.canonical))


class Normalizer:
    """Lower-cases, collapses whitespace and unifies dashes.

    Protected entities are matched on the rewritten text, swapped for
    placeholder tokens and restored in their canonical lowercase form, so
    ``A Minus``, ``a—minus`` and ``AMINUS`` all come out as ``a-minus``.
    Normalization is idempotent.
    """

    def __init__(self, entities: Sequence[ProtectedEntity] = ()) -> None:
        self._entities = tuple(entities)

    @property
    def entities(self) -> Sequence[ProtectedEntity]:
        return self._entities

    def normalize(self, text: str) -> str:
        return self.normalize_query(text).normalized

    def normalize_query(self, text: str) -> NormalizedQuery:
        raw = text or ""
        # Placeholder code points are reserved; any the caller typed are dropped.
        base = _basic_normalize(_PLACEHOLDER_CHARS_RE.sub("", raw))
        if not base:
            return NormalizedQuery(raw=raw, normalized="")

        # Entities are matched after lower-casing so a second pass sees the same word boundaries.
        substitutions: List[str] = []
        protected = base
        for entity in self._entities:
            protected = entity.pattern.sub(
                lambda match, entity=entity: self._protect(entity, substitutions),
                protected,
            )

        normalized = protected
        if substitutions:
            normalized = _PLACEHOLDER_RE.sub(lambda match: substitutions[int(match.group(1))], protected)
        return NormalizedQuery(raw=raw, normalized=normalized, protected_entities=tuple(substitutions))

    @staticmethod
    def _protect(entity: ProtectedEntity, substitutions: List[str]) -> str:
        substitutions.append(entity.canonical_form)
        return f"{_PLACEHOLDER_OPEN}{len(substitutions) - 1}{_PLACEHOLDER_CLOSE}"
