"""
Term matchers for the death certificate text search.

Two matching modes are used and must stay distinct:

  BroadTermScanner  substring containment over the canonical text, so
                    overdose-indicator phrases are found inside longer
                    phrases ("overdose" in "accidental overdose").
  CategoryMatcher   exact token equality, so drug names do not fire on
                    unrelated words ("meth" never matches "methodist").

CategoryMatcher is instantiated once per token category (specific, opioid,
fentanyl, cocaine, heroin, psychostimulant).
"""

from collections import Counter
from typing import Dict, Iterable, List, Tuple

from death_text_search.search.term_dictionary import TermDictionary
from death_text_search.search.types import (
    EMPTY_MATCH,
    TOKEN_CATEGORIES,
    MatchResult,
    NormalizedText,
    TermCategory,
)


class BroadTermScanner:
    """Literal substring search for broad overdose indicators."""

    def __init__(self, terms: Iterable[str]):
        self.terms: Tuple[str, ...] = tuple(terms)

    @classmethod
    def from_dictionary(cls, dictionary: TermDictionary) -> "BroadTermScanner":
        return cls(dictionary.terms(TermCategory.BROAD))

    def scan(self, text: NormalizedText) -> MatchResult:
        """
        Find every broad term contained anywhere in the canonical text.

        Each matching term counts once, however often it occurs.

        Examples:
            >>> from death_text_search.search.normalize import normalize_text
            >>> BroadTermScanner(["overdose", "toxicity"]).scan(
            ...     normalize_text(["accidental overdose death"])).terms
            ('overdose',)
        """
        if text.is_empty:
            return EMPTY_MATCH
        found = tuple(term for term in self.terms if term in text.canonical)
        return MatchResult(count=len(found), terms=found)


class CategoryMatcher:
    """
    Exact-token search for one drug category.

    Every (term, token) pair that is equal counts as one match, and the term
    is appended once per matching token. The matched-term list follows
    dictionary order, the same order a term-by-term, token-by-token scan
    would produce, but the work is a set lookup per token plus one pass over
    the terms that actually occur.
    """

    def __init__(self, category: TermCategory, terms: Iterable[str]):
        self.category = TermCategory(category)
        self.terms: Tuple[str, ...] = tuple(terms)
        self.term_set = frozenset(self.terms)

    @classmethod
    def from_dictionary(cls, category: TermCategory, dictionary: TermDictionary) -> "CategoryMatcher":
        return cls(category, dictionary.terms(category))

    def match(self, text: NormalizedText) -> MatchResult:
        """
        Examples:
            >>> from death_text_search.search.normalize import normalize_text
            >>> matcher = CategoryMatcher(TermCategory.SPECIFIC, ["heroin", "fentanyl"])
            >>> matcher.match(normalize_text(["fentanyl and heroin, fentanyl"]))
            MatchResult(count=3, terms=('heroin', 'fentanyl', 'fentanyl'))
        """
        if not self.term_set or not text.tokens:
            return EMPTY_MATCH

        occurrences = Counter(token for token in text.tokens if token in self.term_set)
        if not occurrences:
            return EMPTY_MATCH

        matched: List[str] = []
        for term in self.terms:
            hits = occurrences.get(term, 0)
            if hits:
                matched.extend([term] * hits)
        return MatchResult(count=len(matched), terms=tuple(matched))

    def __repr__(self) -> str:
        return f"CategoryMatcher({self.category.value!r}, terms={len(self.terms)})"


def build_category_matchers(dictionary: TermDictionary) -> Dict[TermCategory, CategoryMatcher]:
    """One matcher per token category, in evaluation order."""
    return {
        category: CategoryMatcher.from_dictionary(category, dictionary)
        for category in TOKEN_CATEGORIES
    }
