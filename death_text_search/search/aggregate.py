"""
Drug category aggregation.

Turns classified cases into the final overdose count table: one row per
record identifier per drug category it qualifies for, with a fixed category
label. The six category tables share one schema and are concatenated.
"""

from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd
import structlog

from death_text_search.search.types import TOKEN_CATEGORIES, CaseResult, DrugCategory

logger = structlog.get_logger(__name__)

OUTPUT_COLUMNS = ['record_id', 'number_ods', 'drug_category']

# Match-count column each category requires (None: base eligibility only)
CATEGORY_RULES: Dict[DrugCategory, Optional[str]] = {
    DrugCategory.ALL_DRUG: None,
    DrugCategory.ANY_OPIOID: 'opioid_count',
    DrugCategory.FENTANYL: 'fentanyl_count',
    DrugCategory.HEROIN: 'heroin_count',
    DrugCategory.COCAINE: 'cocaine_count',
    DrugCategory.PSYCHOSTIMULANTS: 'psychostimulant_count',
}

CASE_COLUMNS = (
    ['record_id', 'date_of_death', 'canonical_text', 'broad_count', 'broad_terms', 'all_broad_terms']
    + [column for category in TOKEN_CATEGORIES
       for column in (f'{category.value}_count', f'{category.value}_terms')]
    + ['eligible', 'ineligible_reason']
)


def case_to_row(case: CaseResult) -> Dict[str, Any]:
    """Flatten a CaseResult into one case-table row (matched terms "/"-joined)."""
    row: Dict[str, Any] = {
        'record_id': case.record_id,
        'date_of_death': case.date_of_death,
        'canonical_text': case.text.canonical,
        'broad_count': case.broad.count,
        'broad_terms': case.broad.joined(),
        'all_broad_terms': '/'.join(case.all_broad_terms),
    }
    for category in TOKEN_CATEGORIES:
        result = case.match_for(category)
        row[f'{category.value}_count'] = result.count
        row[f'{category.value}_terms'] = result.joined()
    row['eligible'] = case.eligible
    row['ineligible_reason'] = case.decision.reason.value if case.decision.reason else None
    return row


def cases_to_frame(cases: Iterable[CaseResult]) -> pd.DataFrame:
    rows = [case_to_row(case) for case in cases]
    if not rows:
        return pd.DataFrame(columns=CASE_COLUMNS)
    return pd.DataFrame(rows, columns=CASE_COLUMNS)


class CategoryAggregator:
    """Builds per-category count tables from eligible cases."""

    def __init__(self, rules: Optional[Dict[DrugCategory, Optional[str]]] = None):
        self.rules = dict(rules or CATEGORY_RULES)

    def category_table(self, cases: pd.DataFrame, category: DrugCategory) -> pd.DataFrame:
        """
        Count table for one category.

        Base eligibility is re-applied so every category stays a subset of
        All Drug even if ineligible rows are passed in.
        """
        if cases.empty:
            return pd.DataFrame(columns=OUTPUT_COLUMNS)

        mask = (
            cases['eligible'].astype(bool)
            & (cases['broad_count'] >= 1)
            & (cases['specific_count'] > 0)
        )
        count_column = self.rules[category]
        if count_column is not None:
            mask &= cases[count_column] >= 1

        qualifying = cases.loc[mask]
        if qualifying.empty:
            return pd.DataFrame(columns=OUTPUT_COLUMNS)

        table = (
            qualifying.groupby('record_id', sort=False)
            .size()
            .reset_index(name='number_ods')
        )
        table['drug_category'] = category.value
        return table[OUTPUT_COLUMNS]

    def aggregate(self, cases: Union[pd.DataFrame, Iterable[CaseResult]]) -> pd.DataFrame:
        """
        Concatenate the six category tables into the final table.

        Args:
            cases: Case table (see CASE_COLUMNS) or CaseResult objects

        Returns:
            DataFrame with OUTPUT_COLUMNS, categories in CATEGORY_RULES order
        """
        if not isinstance(cases, pd.DataFrame):
            cases = cases_to_frame(cases)

        tables: List[pd.DataFrame] = []
        for category in self.rules:
            table = self.category_table(cases, category)
            logger.debug("category_table_built", drug_category=category.value, rows=len(table))
            if not table.empty:
                tables.append(table)

        if not tables:
            return pd.DataFrame(columns=OUTPUT_COLUMNS)
        return pd.concat(tables, ignore_index=True)


def summarize(final_table: pd.DataFrame) -> pd.DataFrame:
    """
    Overdose counts per drug category (every category listed, zero-filled).

    Examples:
        >>> summarize(pd.DataFrame(columns=OUTPUT_COLUMNS))['number_ods'].tolist()
        [0, 0, 0, 0, 0, 0]
    """
    labels = [category.value for category in CATEGORY_RULES]
    if final_table.empty:
        counts = pd.Series(0, index=labels)
    else:
        counts = (
            final_table.groupby('drug_category')['number_ods']
            .sum()
            .reindex(labels, fill_value=0)
        )
    summary = counts.rename_axis('drug_category').reset_index(name='number_ods')
    summary['number_ods'] = summary['number_ods'].astype(int)
    return summary
