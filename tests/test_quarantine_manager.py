"""Tests for the quarantine manager."""

import json

import pandas as pd
import pytest

from death_text_search.ingestion.quarantine import QuarantineManager
from death_text_search.search.pipeline import SKIPPED_COLUMNS


@pytest.fixture
def skipped_df():
    return pd.DataFrame([
        {"record_id": "R7", "date_of_death": None, "reason": "empty_text", "error_message": None},
        {"record_id": "BAD", "date_of_death": None, "reason": "classification_error",
         "error_message": "MalformedTextError: Undecodable text field"},
        {"record_id": "R9", "date_of_death": None, "reason": "empty_text", "error_message": None},
    ], columns=SKIPPED_COLUMNS)


def test_quarantine_writes_batch_and_records(tmp_path, skipped_df):
    manager = QuarantineManager(tmp_path)
    batch = manager.quarantine_records(skipped_df, "skipped", "run_001", total_records=30)

    assert batch.quarantined_records == 3
    assert batch.quarantine_rate == pytest.approx(0.1)
    assert batch.error_summary == {"empty_text": 2, "classification_error": 1}

    batch_file = tmp_path / "skipped" / "run_001_batch.json"
    records_file = tmp_path / "skipped" / "run_001_records.csv"
    assert str(batch_file) == batch.batch_file
    assert records_file.exists()

    summary = json.loads(batch_file.read_text())
    assert summary["total_records"] == 30
    assert summary["error_summary"]["empty_text"] == 2


def test_quarantined_records_round_trip(tmp_path, skipped_df):
    manager = QuarantineManager(tmp_path)
    manager.quarantine_records(skipped_df, "skipped", "run_001")

    records = manager.load_quarantined_records("skipped", "run_001")
    assert records["record_id"].tolist() == ["R7", "BAD", "R9"]
    assert records.loc[1, "error_code"] == "classification_error"
    assert "MalformedTextError" in records.loc[1, "error_message"]


def test_parser_rejects_use_their_reason_column(tmp_path):
    rejects = pd.DataFrame({
        "record_id": ["A"],
        "text_field_1": ["second copy"],
        "reject_reason": ["duplicate_record_id"],
    })
    batch = QuarantineManager(tmp_path).quarantine_records(
        rejects, "rejects", "run_001", reason_column="reject_reason"
    )

    assert batch.error_summary == {"duplicate_record_id": 1}
    assert batch.records[0].original_data == {"record_id": "A", "text_field_1": "second copy"}


def test_empty_batch_still_writes_files(tmp_path):
    manager = QuarantineManager(tmp_path)
    batch = manager.quarantine_records(pd.DataFrame(columns=SKIPPED_COLUMNS), "skipped", "run_002")

    assert batch.quarantined_records == 0
    assert batch.quarantine_rate == 0.0
    assert (tmp_path / "skipped" / "run_002_records.csv").exists()


def test_list_batches_newest_first(tmp_path, skipped_df):
    manager = QuarantineManager(tmp_path)
    manager.quarantine_records(skipped_df, "skipped", "run_001")
    manager.quarantine_records(skipped_df.head(1), "skipped", "run_002")

    batches = manager.list_quarantine_batches("skipped")
    assert [b["batch_id"] for b in batches] == ["run_002", "run_001"]
    assert manager.list_quarantine_batches("rejects") == []


def test_load_missing_batch_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        QuarantineManager(tmp_path).load_quarantined_records("skipped", "nope")
