"""
Test configuration and fixtures for the death certificate text search.

Provides a small but realistic term dictionary and record set shared by the
search, parser, publisher and CLI tests.
"""

from datetime import date

import pandas as pd
import pytest

from death_text_search.search.term_dictionary import TermDictionary
from death_text_search.search.types import Record


SAMPLE_TERMS = {
    "broad": ["Overdose", "Toxicity", "Intoxication", "Poisoning", "Multidrug", "Multi drug"],
    "specific": ["Fentanyl", "Heroin", "Cocaine", "Methamphetamine", "Oxycodone",
                 "Drug", "Polysubstance", "Ethanol"],
    "opioid": ["Fentanyl", "Heroin", "Oxycodone"],
    "fentanyl": ["Fentanyl", "Acetylfentanyl"],
    "cocaine": ["Cocaine"],
    "heroin": ["Heroin"],
    "psychostimulant": ["Methamphetamine", "Amphetamine"],
}


def make_records(rows):
    """Build Record objects from (record_id, text_field_1, ...) tuples."""
    return [
        Record(record_id=row[0], date_of_death=date(2023, 1, 1), text_fields=tuple(row[1:]))
        for row in rows
    ]


@pytest.fixture
def sample_dictionary():
    return TermDictionary.from_mapping(SAMPLE_TERMS)


@pytest.fixture
def sample_records():
    return make_records([
        ("R1", "Acute fentanyl toxicity", None, None, None),
        ("R2", "Combined cocaine and heroin", "intoxication", None, None),
        ("R3", "Methamphetamine overdose", None, None, None),
        ("R4", "Multidrug", "drug use", None, None),
        ("R5", "Polysubstance abuse", "overdose", None, None),
        ("R6", "Blunt force trauma", None, None, None),
        ("R7", None, None, None, None),
        ("R8", "Oxycodone poisoning", None, None, None),
    ])


@pytest.fixture
def sample_record_frame():
    return pd.DataFrame({
        "Unique ID for Counting": ["R1", "R2", "R3", "R4", "R5"],
        "Date of Death": ["2023-01-15", "2023-02-20", "2023-03-05", "2022-12-31", "2023-06-30"],
        "Decendents Resident State": ["TN", "TN", "KY", "TN", "tn"],
        "Cause of Death Text Field 1": [
            "Acute fentanyl toxicity",
            "Cocaine intoxication",
            "Methamphetamine overdose",
            "Heroin overdose",
            "Blunt force trauma",
        ],
        "Cause of Death Text Field 2": ["", "", "", "", ""],
        "Cause of Death Text Field 3": ["", "", "", "", ""],
        "Cause of Death Text Field 4": ["", "", "", "", ""],
    })


@pytest.fixture
def terms_csv(tmp_path):
    """Term spreadsheet with the historical headers, written as CSV."""
    longest = max(len(v) for v in SAMPLE_TERMS.values())
    headers = {
        "broad": "DC_terms",
        "specific": "DC_terms_detailed",
        "fentanyl": "Fentanyl_search",
        "cocaine": "Cocaine_Search",
        "heroin": "Heroin_Search",
        "opioid": "Opioid_Search",
        "psychostimulant": "Psychostimulants_search",
    }
    df = pd.DataFrame({
        headers[category]: terms + [""] * (longest - len(terms))
        for category, terms in SAMPLE_TERMS.items()
    })
    path = tmp_path / "list_of_key_terms.csv"
    df.to_csv(path, index=False)
    return path


@pytest.fixture
def records_csv(tmp_path, sample_record_frame):
    path = tmp_path / "death_records.csv"
    sample_record_frame.to_csv(path, index=False)
    return path


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "golden: mark test as golden (end-to-end expected output) test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on file paths"""
    for item in items:
        fspath = str(item.fspath)
        if 'integration' in fspath or 'test_cli' in fspath:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
