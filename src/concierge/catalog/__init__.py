"""Static routing configuration: rules, lexicon, exemplars, intents and corpus."""

from .service import (
    Lexicon,
    RouterCatalog,
    load_catalog,
    load_corpus,
    load_exemplars,
    load_intents,
    load_lexicon,
    load_rules,
)

__all__ = [
    "Lexicon",
    "RouterCatalog",
    "load_catalog",
    "load_corpus",
    "load_exemplars",
    "load_intents",
    "load_lexicon",
    "load_rules",
]
