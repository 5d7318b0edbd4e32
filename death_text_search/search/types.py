"""
Text search types and data structures
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional, Tuple


class TermCategory(str, Enum):
    """Term dictionary categories"""
    BROAD = "broad"
    SPECIFIC = "specific"
    OPIOID = "opioid"
    FENTANYL = "fentanyl"
    COCAINE = "cocaine"
    HEROIN = "heroin"
    PSYCHOSTIMULANT = "psychostimulant"


# Categories matched by exact token equality, in evaluation order
TOKEN_CATEGORIES: Tuple[TermCategory, ...] = (
    TermCategory.SPECIFIC,
    TermCategory.OPIOID,
    TermCategory.FENTANYL,
    TermCategory.COCAINE,
    TermCategory.HEROIN,
    TermCategory.PSYCHOSTIMULANT,
)


class DrugCategory(str, Enum):
    """Output drug categories (labels written to the final table)"""
    ALL_DRUG = "All Drug"
    ANY_OPIOID = "Any Opioid"
    FENTANYL = "Fentanyl"
    HEROIN = "Heroin"
    COCAINE = "Cocaine"
    PSYCHOSTIMULANTS = "Psychostimulants"


class IneligibleReason(str, Enum):
    """Machine-readable reason codes for cases that do not count"""
    EMPTY_TEXT = "empty_text"
    NO_BROAD_TERM = "no_broad_term"
    NO_SPECIFIC_TERM = "no_specific_term"
    MULTIDRUG_ONLY = "multidrug_only"
    POLYSUBSTANCE_ABUSE_ONLY = "polysubstance_abuse_only"


class SkipReason(str, Enum):
    """Reason codes for records excluded before or during classification"""
    EMPTY_TEXT = "empty_text"
    CLASSIFICATION_ERROR = "classification_error"


@dataclass(frozen=True)
class Record:
    """One death certificate as handed to the search engine"""
    record_id: Any
    date_of_death: Optional[date] = None
    text_fields: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class NormalizedText:
    """Canonical search string and its tokens"""
    canonical: str
    tokens: Tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.canonical


@dataclass(frozen=True)
class MatchResult:
    """Matches for one record in one search stage"""
    count: int = 0
    terms: Tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.count > 0

    def joined(self, sep: str = "/") -> str:
        return sep.join(self.terms)


EMPTY_MATCH = MatchResult()


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of the inclusion/exclusion rules"""
    eligible: bool
    reason: Optional[IneligibleReason] = None


@dataclass(frozen=True)
class CaseResult:
    """A record with its matches across all stages and its eligibility"""
    record_id: Any
    date_of_death: Optional[date]
    text: NormalizedText
    broad: MatchResult
    matches: Tuple[Tuple[TermCategory, MatchResult], ...]
    decision: EligibilityDecision
    all_broad_terms: Tuple[str, ...] = field(default=())

    @property
    def eligible(self) -> bool:
        return self.decision.eligible

    def match_for(self, category: TermCategory) -> MatchResult:
        for cat, result in self.matches:
            if cat == category:
                return result
        return EMPTY_MATCH
