"""Tests for the end-to-end text search pipeline."""

from datetime import date

import pandas as pd
import pytest

from death_text_search.search.pipeline import (
    SKIPPED_COLUMNS,
    RecordClassifier,
    TextSearchPipeline,
    records_from_frame,
    run_text_search,
)
from death_text_search.search.term_dictionary import REQUIRED_CATEGORIES, TermDictionary
from death_text_search.search.types import (
    TOKEN_CATEGORIES,
    IneligibleReason,
    Record,
    TermCategory,
)


@pytest.mark.golden
def test_fentanyl_toxicity_end_to_end():
    mapping = {category: [] for category in REQUIRED_CATEGORIES}
    mapping.update(broad=["toxicity"], specific=["fentanyl"], fentanyl=["fentanyl"])
    dictionary = TermDictionary.from_mapping(mapping)

    record = Record(record_id="TN-001", text_fields=("Acute fentanyl toxicity", "", "", ""))
    result = run_text_search([record], dictionary)

    case = result.cases.iloc[0]
    assert bool(case['eligible'])
    categories = set(result.final_table['drug_category'])
    assert categories == {"All Drug", "Fentanyl"}  # fentanyl not in the opioid list

    mapping["opioid"] = ["fentanyl"]
    with_opioid = run_text_search([record], TermDictionary.from_mapping(mapping))
    assert set(with_opioid.final_table['drug_category']) == {"All Drug", "Any Opioid", "Fentanyl"}


def test_empty_record_has_zero_matches(sample_dictionary):
    record = Record(record_id="EMPTY", text_fields=(None, None, None, None))
    case = RecordClassifier(sample_dictionary).classify(record)

    assert case.decision.reason == IneligibleReason.EMPTY_TEXT
    assert case.broad.count == 0
    assert all(case.match_for(category).count == 0 for category in TOKEN_CATEGORIES)


def test_empty_record_is_skipped_not_counted(sample_dictionary, sample_records):
    result = run_text_search(sample_records, sample_dictionary)

    assert "R7" not in set(result.final_table['record_id'])
    assert "R7" not in set(result.cases['record_id'])
    skipped = result.skipped.set_index('record_id')
    assert skipped.loc["R7", 'reason'] == "empty_text"
    assert result.metrics['skipped_by_reason'] == {"empty_text": 1}


def test_run_metrics(sample_dictionary, sample_records):
    result = run_text_search(sample_records, sample_dictionary)

    assert result.metrics['records_in'] == 8
    assert result.metrics['records_classified'] == 7
    assert result.metrics['records_skipped'] == 1
    assert result.metrics['eligible_cases'] == 4
    assert result.metrics['ineligible_by_reason'] == {
        "multidrug_only": 1,
        "polysubstance_abuse_only": 1,
        "no_broad_term": 1,
    }
    assert result.metrics['category_counts']["All Drug"] == 4
    assert set(result.eligible_cases['record_id']) == {"R1", "R2", "R3", "R8"}


def test_undecodable_record_is_skipped_and_batch_continues(sample_dictionary, sample_records):
    bad = Record(record_id="BAD", text_fields=(b"\xff\xfe overdose", "fentanyl"))
    result = run_text_search(sample_records + [bad], sample_dictionary)

    skipped = result.skipped.set_index('record_id')
    assert skipped.loc["BAD", 'reason'] == "classification_error"
    assert "MalformedTextError" in skipped.loc["BAD", 'error_message']
    assert result.metrics['skipped_by_reason'] == {"empty_text": 1, "classification_error": 1}
    assert result.metrics['eligible_cases'] == 4


def test_no_skips_gives_empty_skipped_frame(sample_dictionary, sample_records):
    result = run_text_search(sample_records[:3], sample_dictionary)
    assert result.skipped.empty
    assert list(result.skipped.columns) == SKIPPED_COLUMNS


@pytest.mark.slow
def test_parallel_run_matches_serial(sample_dictionary, sample_records):
    records = sample_records * 5
    records = [
        Record(record_id=f"{r.record_id}-{i}", date_of_death=r.date_of_death, text_fields=r.text_fields)
        for i, r in enumerate(records)
    ]

    serial = TextSearchPipeline(sample_dictionary, max_workers=1).run(records)
    parallel = TextSearchPipeline(sample_dictionary, max_workers=2, chunk_size=3).run(records)

    pd.testing.assert_frame_equal(serial.final_table, parallel.final_table)
    pd.testing.assert_frame_equal(serial.cases, parallel.cases)
    assert serial.metrics['skipped_by_reason'] == parallel.metrics['skipped_by_reason']


def test_records_from_frame():
    df = pd.DataFrame({
        'record_id': ["A", "B"],
        'date_of_death': [pd.Timestamp("2023-05-01"), pd.NaT],
        'text_field_1': ["Heroin overdose", None],
    })
    records = records_from_frame(df)

    assert records[0].date_of_death == date(2023, 5, 1)
    assert records[1].date_of_death is None
    # absent text columns become absent fields
    assert records[0].text_fields == ("Heroin overdose", None, None, None)


def test_records_from_frame_requires_record_id():
    with pytest.raises(KeyError):
        records_from_frame(pd.DataFrame({'text_field_1': ["x"]}))


def test_pipeline_accepts_frame(sample_dictionary):
    df = pd.DataFrame({
        'record_id': ["A"],
        'text_field_1': ["Cocaine toxicity"],
    })
    result = TextSearchPipeline(sample_dictionary).run(df)
    assert set(result.final_table['drug_category']) == {"All Drug", "Cocaine"}
    assert result.cases.iloc[0]['cocaine_terms'] == "cocaine"


def test_match_for_returns_category_result(sample_dictionary, sample_records):
    case = RecordClassifier(sample_dictionary).classify(sample_records[0])
    assert case.match_for(TermCategory.FENTANYL).terms == ("fentanyl",)
