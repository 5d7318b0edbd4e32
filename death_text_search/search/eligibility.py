"""
Overdose case eligibility rules.

A record counts as an overdose case when all of the following hold:

  1. at least one broad overdose indicator was found
  2. at least one specific drug term was found
  3. the only signal is not a generic multi-drug mention: matched broad
     terms exactly "multi drug" (or exactly "multidrug") together with
     matched specific terms exactly "drug" is excluded
  4. "polysubstance abuse" is not the only evidence: matched specific terms
     exactly "polysubstance" while the text says "polysubstance abuse" is
     excluded

Rules are checked in order and the first failing rule is the reason.
"""

from typing import Tuple

from death_text_search.search.types import (
    EligibilityDecision,
    IneligibleReason,
    MatchResult,
    NormalizedText,
)

MULTIDRUG_BROAD_ONLY: Tuple[Tuple[str, ...], ...] = (("multi drug",), ("multidrug",))
GENERIC_DRUG_ONLY: Tuple[str, ...] = ("drug",)
POLYSUBSTANCE_ONLY: Tuple[str, ...] = ("polysubstance",)
POLYSUBSTANCE_ABUSE_PHRASE = "polysubstance abuse"

ELIGIBLE = EligibilityDecision(eligible=True)


def _ineligible(reason: IneligibleReason) -> EligibilityDecision:
    return EligibilityDecision(eligible=False, reason=reason)


class EligibilityFilter:
    """Inclusion/exclusion predicate over one record's broad and specific matches."""

    def evaluate(
        self,
        broad: MatchResult,
        specific: MatchResult,
        text: NormalizedText,
    ) -> EligibilityDecision:
        if text.is_empty:
            return _ineligible(IneligibleReason.EMPTY_TEXT)

        if broad.count < 1:
            return _ineligible(IneligibleReason.NO_BROAD_TERM)

        if specific.count <= 0:
            return _ineligible(IneligibleReason.NO_SPECIFIC_TERM)

        if broad.terms in MULTIDRUG_BROAD_ONLY and specific.terms == GENERIC_DRUG_ONLY:
            return _ineligible(IneligibleReason.MULTIDRUG_ONLY)

        if specific.terms == POLYSUBSTANCE_ONLY and POLYSUBSTANCE_ABUSE_PHRASE in text.canonical:
            return _ineligible(IneligibleReason.POLYSUBSTANCE_ABUSE_ONLY)

        return ELIGIBLE


def unique_broad_terms(broad: MatchResult) -> Tuple[str, ...]:
    """Matched broad terms with duplicates removed, first-seen order kept."""
    return tuple(dict.fromkeys(broad.terms))
