"""
Term dictionary for the death certificate text search.

Holds one cleaned TermList per category. Terms are lowercased, stripped of
punctuation, whitespace-squished, blanks dropped and duplicates collapsed
(first occurrence wins, original order preserved). The dictionary is built
once before any record is processed and never changes afterwards.
"""

from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Tuple

import pandas as pd
import structlog

from death_text_search.ingestion.parsers._parser_kit import MissingCategoryError
from death_text_search.search.normalize import clean_text
from death_text_search.search.types import TOKEN_CATEGORIES, TermCategory

logger = structlog.get_logger(__name__)

REQUIRED_CATEGORIES: Tuple[str, ...] = tuple(category.value for category in TermCategory)


def clean_terms(raw_terms: Iterable[Any]) -> Tuple[str, ...]:
    """
    Clean a raw term column.

    Examples:
        >>> clean_terms(["Fentanyl", None, "  ", "fentanyl", "6-MAM"])
        ('fentanyl', '6mam')
    """
    seen = set()
    cleaned: List[str] = []
    for raw in raw_terms:
        if raw is None:
            continue
        if not isinstance(raw, str):
            if pd.isna(raw):
                continue
            raw = str(raw)
        # In terms "/" and "," are plain punctuation and are removed
        term = clean_text(raw.replace("/", "").replace(",", ""))
        if not term or term in seen:
            continue
        seen.add(term)
        cleaned.append(term)
    return tuple(cleaned)


class TermDictionary:
    """
    Immutable category → TermList lookup.

    Examples:
        >>> terms = TermDictionary.from_mapping({c: [] for c in REQUIRED_CATEGORIES})
        >>> terms.terms("broad")
        ()
    """

    def __init__(self, term_lists: Mapping[str, Tuple[str, ...]]):
        missing = [category for category in REQUIRED_CATEGORIES if category not in term_lists]
        if missing:
            raise MissingCategoryError(missing, available=sorted(term_lists))

        self._terms: Dict[str, Tuple[str, ...]] = {
            category: tuple(term_lists[category]) for category in REQUIRED_CATEGORIES
        }
        self._sets: Dict[str, FrozenSet[str]] = {
            category: frozenset(terms) for category, terms in self._terms.items()
        }
        self._warn_unmatchable_terms()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Iterable[Any]]) -> "TermDictionary":
        """Build from an already-parsed category → raw term list mapping."""
        normalized_keys = {str(key).strip().lower(): value for key, value in raw.items()}
        missing = [category for category in REQUIRED_CATEGORIES if category not in normalized_keys]
        if missing:
            raise MissingCategoryError(missing, available=sorted(normalized_keys))
        return cls({category: clean_terms(normalized_keys[category]) for category in REQUIRED_CATEGORIES})

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "TermDictionary":
        """Build from a table with one column per category (blanks allowed)."""
        return cls.from_mapping({column: df[column].tolist() for column in df.columns})

    def terms(self, category: Any) -> Tuple[str, ...]:
        return self._terms[self._key(category)]

    def term_set(self, category: Any) -> FrozenSet[str]:
        return self._sets[self._key(category)]

    def counts(self) -> Dict[str, int]:
        return {category: len(terms) for category, terms in self._terms.items()}

    def _key(self, category: Any) -> str:
        key = category.value if isinstance(category, TermCategory) else str(category)
        if key not in self._terms:
            raise KeyError(f"Unknown term category: {category}")
        return key

    def _warn_unmatchable_terms(self) -> None:
        # Token-matched categories compare single tokens, so phrases never match
        for category in TOKEN_CATEGORIES:
            phrases = [term for term in self._terms[category.value] if " " in term]
            if phrases:
                logger.warning(
                    "multi_word_terms_never_match",
                    category=category.value,
                    terms=phrases,
                )

    def __repr__(self) -> str:
        return f"TermDictionary({self.counts()})"
