"""Death certificate text search engine"""

from .aggregate import CategoryAggregator, summarize
from .eligibility import EligibilityFilter
from .matchers import BroadTermScanner, CategoryMatcher
from .normalize import normalize_text
from .pipeline import SearchResult, TextSearchPipeline, run_text_search
from .term_dictionary import TermDictionary
from .types import DrugCategory, IneligibleReason, Record, TermCategory

__all__ = [
    "BroadTermScanner",
    "CategoryAggregator",
    "CategoryMatcher",
    "DrugCategory",
    "EligibilityFilter",
    "IneligibleReason",
    "Record",
    "SearchResult",
    "TermCategory",
    "TermDictionary",
    "TextSearchPipeline",
    "normalize_text",
    "run_text_search",
    "summarize",
]
