"""Tests for publishing search results."""

from pathlib import Path

import pandas as pd
import pytest

from death_text_search.ingestion.publishers import (
    CSVPublisher,
    ParquetPublisher,
    PublisherFactory,
    ResultPublisher,
    read_published_table,
)
from death_text_search.search import run_text_search, summarize


@pytest.fixture
def search_result(sample_dictionary, sample_records):
    return run_text_search(sample_records, sample_dictionary)


@pytest.mark.parametrize("output_format", ["csv", "parquet"])
def test_publish_writes_three_tables(tmp_path, search_result, output_format):
    published = ResultPublisher(tmp_path, output_format=output_format).publish(search_result, "run_001")

    assert set(published) == {"final_table", "category_summary", "eligible_cases"}
    for name, result in published.items():
        path = Path(result.file_paths[0])
        assert path == tmp_path / "run_001" / f"{name}.{output_format}"
        assert path.exists()
        assert result.run_id == "run_001"

    assert published["final_table"].record_count == len(search_result.final_table)
    assert published["category_summary"].record_count == 6
    assert published["eligible_cases"].record_count == 4


@pytest.mark.parametrize("output_format", ["csv", "parquet"])
def test_published_final_table_reads_back(tmp_path, search_result, output_format):
    published = ResultPublisher(tmp_path, output_format=output_format).publish(search_result, "run_001")

    table = read_published_table(published["final_table"].file_paths[0])

    assert {"record_id", "number_ods", "drug_category", "run_id", "published_at"} <= set(table.columns)
    assert (table["run_id"] == "run_001").all()
    pd.testing.assert_frame_equal(summarize(table), summarize(search_result.final_table))


def test_eligible_cases_are_sorted_by_record_id(tmp_path, search_result):
    published = ResultPublisher(tmp_path, output_format="csv").publish(search_result, "run_001")
    cases = read_published_table(published["eligible_cases"].file_paths[0])
    assert cases["record_id"].tolist() == ["R1", "R2", "R3", "R8"]


def test_empty_result_publishes_empty_tables(tmp_path, sample_dictionary):
    result = run_text_search([], sample_dictionary)
    published = ResultPublisher(tmp_path, output_format="parquet").publish(result, "empty")

    assert published["final_table"].record_count == 0
    summary = read_published_table(published["category_summary"].file_paths[0])
    assert summary["number_ods"].tolist() == [0] * 6


def test_publisher_factory():
    assert isinstance(PublisherFactory.create_publisher("parquet", "out"), ParquetPublisher)
    assert isinstance(PublisherFactory.create_publisher("csv", "out"), CSVPublisher)
    with pytest.raises(ValueError):
        PublisherFactory.create_publisher("json", "out")


def test_unsupported_format_rejected():
    with pytest.raises(ValueError):
        ResultPublisher("out", output_format="xlsx")
    with pytest.raises(ValueError):
        read_published_table("final_table.json")
