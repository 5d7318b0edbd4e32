"""
Death Certificate Text Search Pipeline

Classifies death records into drug overdose categories:

  records → normalize → broad scan + 6 category matches → eligibility
          → category aggregation → final count table

Per-record work is pure and independent, so it runs either serially or on a
process pool; the term dictionary is shipped to each worker once. Records
whose text is empty are skipped before classification, and a record whose
classification raises is skipped and reported instead of aborting the batch.
Both appear in ``SearchResult.skipped`` and in the run metrics.
"""

import concurrent.futures
import time
from collections import Counter
from datetime import date
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import pandas as pd
import structlog

from death_text_search.search.aggregate import CategoryAggregator, cases_to_frame, summarize
from death_text_search.search.eligibility import EligibilityFilter, unique_broad_terms
from death_text_search.search.matchers import BroadTermScanner, build_category_matchers
from death_text_search.search.normalize import TEXT_FIELD_COUNT, normalize_text
from death_text_search.search.term_dictionary import TermDictionary
from death_text_search.search.types import (
    EMPTY_MATCH,
    TOKEN_CATEGORIES,
    CaseResult,
    EligibilityDecision,
    IneligibleReason,
    Record,
    SkipReason,
    TermCategory,
)

logger = structlog.get_logger(__name__)

TEXT_COLUMNS = [f'text_field_{n}' for n in range(1, TEXT_FIELD_COUNT + 1)]
SKIPPED_COLUMNS = ['record_id', 'date_of_death', 'reason', 'error_message']


class SearchResult(NamedTuple):
    """
    Output of a text search run.

    Fields:
        final_table: One row per (record_id, drug_category), see OUTPUT_COLUMNS
        cases: Every classified record with its matches and eligibility
        skipped: Records excluded before/during classification, with reasons
        metrics: Run counts (records in, skipped by reason, eligible, categories)
    """
    final_table: pd.DataFrame
    cases: pd.DataFrame
    skipped: pd.DataFrame
    metrics: Dict[str, Any]

    @property
    def eligible_cases(self) -> pd.DataFrame:
        if self.cases.empty:
            return self.cases
        return self.cases.loc[self.cases['eligible'].astype(bool)].reset_index(drop=True)


class RecordClassifier:
    """Runs every search stage for a single record."""

    def __init__(self, dictionary: TermDictionary):
        self.scanner = BroadTermScanner.from_dictionary(dictionary)
        self.matchers = build_category_matchers(dictionary)
        self.eligibility = EligibilityFilter()

    def classify(self, record: Record) -> CaseResult:
        text = normalize_text(record.text_fields)

        if text.is_empty:
            return CaseResult(
                record_id=record.record_id,
                date_of_death=record.date_of_death,
                text=text,
                broad=EMPTY_MATCH,
                matches=tuple((category, EMPTY_MATCH) for category in TOKEN_CATEGORIES),
                decision=EligibilityDecision(eligible=False, reason=IneligibleReason.EMPTY_TEXT),
            )

        broad = self.scanner.scan(text)
        matches = tuple(
            (category, matcher.match(text)) for category, matcher in self.matchers.items()
        )
        specific = dict(matches)[TermCategory.SPECIFIC]
        decision = self.eligibility.evaluate(broad, specific, text)

        return CaseResult(
            record_id=record.record_id,
            date_of_death=record.date_of_death,
            text=text,
            broad=broad,
            matches=matches,
            decision=decision,
            all_broad_terms=unique_broad_terms(broad),
        )


# (case, None) on success, (None, skip_row) when the record is skipped
Outcome = Tuple[Optional[CaseResult], Optional[Dict[str, Any]]]


def _skip_row(record: Record, reason: SkipReason, error_message: Optional[str] = None) -> Dict[str, Any]:
    return {
        'record_id': record.record_id,
        'date_of_death': record.date_of_death,
        'reason': reason.value,
        'error_message': error_message,
    }


def classify_safely(classifier: RecordClassifier, record: Record) -> Outcome:
    try:
        case = classifier.classify(record)
    except Exception as e:
        return None, _skip_row(record, SkipReason.CLASSIFICATION_ERROR, f"{type(e).__name__}: {e}")

    if case.decision.reason == IneligibleReason.EMPTY_TEXT:
        return None, _skip_row(record, SkipReason.EMPTY_TEXT)
    return case, None


_WORKER_CLASSIFIER: Optional[RecordClassifier] = None


def _init_worker(dictionary: TermDictionary) -> None:
    global _WORKER_CLASSIFIER
    _WORKER_CLASSIFIER = RecordClassifier(dictionary)


def _classify_in_worker(record: Record) -> Outcome:
    return classify_safely(_WORKER_CLASSIFIER, record)


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def records_from_frame(df: pd.DataFrame) -> List[Record]:
    """
    Convert a loaded record table into Record objects.

    Expects ``record_id``; ``date_of_death`` and ``text_field_1..4`` are
    optional and treated as absent when the column is missing.
    """
    if 'record_id' not in df.columns:
        raise KeyError("Record table has no 'record_id' column")

    records = []
    for row in df.to_dict('records'):
        records.append(Record(
            record_id=row['record_id'],
            date_of_death=_as_date(row.get('date_of_death')),
            text_fields=tuple(row.get(column) for column in TEXT_COLUMNS),
        ))
    return records


class TextSearchPipeline:
    """
    End-to-end text search over a batch of death records.

    Args:
        dictionary: Built term dictionary (immutable)
        max_workers: Worker processes; 1 or less runs serially
        chunk_size: Records handed to a worker per task
    """

    def __init__(self, dictionary: TermDictionary, max_workers: int = 1, chunk_size: int = 500):
        self.dictionary = dictionary
        self.max_workers = max(1, int(max_workers or 1))
        self.chunk_size = max(1, int(chunk_size or 1))
        self.aggregator = CategoryAggregator()

    def _classify_all(self, records: Sequence[Record]) -> List[Outcome]:
        if self.max_workers <= 1 or len(records) <= 1:
            classifier = RecordClassifier(self.dictionary)
            return [classify_safely(classifier, record) for record in records]

        with concurrent.futures.ProcessPoolExecutor(
            max_workers=self.max_workers,
            initializer=_init_worker,
            initargs=(self.dictionary,),
        ) as executor:
            # map() yields in input order, so the merge is deterministic
            return list(executor.map(_classify_in_worker, records, chunksize=self.chunk_size))

    def run(self, records: Union[pd.DataFrame, Iterable[Record]]) -> SearchResult:
        """
        Classify records and build the final category table.

        Args:
            records: Loaded record table or Record objects

        Returns:
            SearchResult with final table, case detail, skipped records, metrics
        """
        start_time = time.time()

        if isinstance(records, pd.DataFrame):
            records = records_from_frame(records)
        else:
            records = list(records)

        logger.info(
            "text_search_start",
            records_in=len(records),
            max_workers=self.max_workers,
            term_counts=self.dictionary.counts(),
        )

        cases: List[CaseResult] = []
        skipped_rows: List[Dict[str, Any]] = []
        for case, skip in self._classify_all(records):
            if skip is not None:
                if skip['reason'] == SkipReason.CLASSIFICATION_ERROR.value:
                    logger.warning(
                        "record_classification_failed",
                        record_id=skip['record_id'],
                        error=skip['error_message'],
                    )
                skipped_rows.append(skip)
            else:
                cases.append(case)

        cases_df = cases_to_frame(cases)
        skipped_df = (
            pd.DataFrame(skipped_rows, columns=SKIPPED_COLUMNS)
            if skipped_rows else pd.DataFrame(columns=SKIPPED_COLUMNS)
        )
        final_table = self.aggregator.aggregate(cases_df)

        summary = summarize(final_table)
        ineligible = Counter(
            case.decision.reason.value for case in cases if not case.eligible
        )
        metrics = {
            'records_in': len(records),
            'records_classified': len(cases),
            'records_skipped': len(skipped_rows),
            'skipped_by_reason': dict(Counter(row['reason'] for row in skipped_rows)),
            'eligible_cases': sum(1 for case in cases if case.eligible),
            'ineligible_by_reason': dict(ineligible),
            'category_counts': dict(zip(summary['drug_category'], summary['number_ods'].tolist())),
            'max_workers': self.max_workers,
            'duration_sec': round(time.time() - start_time, 3),
        }

        logger.info(
            "text_search_complete",
            records_in=metrics['records_in'],
            records_classified=metrics['records_classified'],
            records_skipped=metrics['records_skipped'],
            eligible_cases=metrics['eligible_cases'],
            category_counts=metrics['category_counts'],
            duration_sec=metrics['duration_sec'],
        )

        return SearchResult(
            final_table=final_table,
            cases=cases_df,
            skipped=skipped_df,
            metrics=metrics,
        )


def run_text_search(
    records: Union[pd.DataFrame, Iterable[Record]],
    dictionary: TermDictionary,
    max_workers: int = 1,
    chunk_size: int = 500,
) -> SearchResult:
    """Convenience wrapper around TextSearchPipeline.run."""
    return TextSearchPipeline(dictionary, max_workers=max_workers, chunk_size=chunk_size).run(records)
