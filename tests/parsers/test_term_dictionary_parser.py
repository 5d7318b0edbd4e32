"""
Tests for the key-term spreadsheet parser.

Covers the historical headers (DC_terms, DC_terms_detailed, *_search),
canonical headers, XLSX input and the missing-category failure.
"""

from io import BytesIO

import pandas as pd
import pytest

from death_text_search.ingestion.parsers._parser_kit import MissingCategoryError, ParseError
from death_text_search.ingestion.parsers.term_dictionary_parser import (
    load_term_dictionary,
    parse_term_table,
)
from death_text_search.search.term_dictionary import REQUIRED_CATEGORIES


def _csv_bytes(df: pd.DataFrame) -> BytesIO:
    return BytesIO(df.to_csv(index=False).encode("utf-8"))


@pytest.mark.golden
def test_historical_headers_resolve(terms_csv):
    with open(terms_csv, "rb") as f:
        result = parse_term_table(f, terms_csv.name)

    assert list(result.data.columns) == list(REQUIRED_CATEGORIES)
    assert result.rejects.empty
    assert result.metrics["raw_terms_by_category"]["broad"] == 6
    assert result.metrics["raw_terms_by_category"]["cocaine"] == 1


def test_load_term_dictionary_from_csv(terms_csv):
    dictionary = load_term_dictionary(terms_csv)

    assert dictionary.terms("fentanyl") == ("fentanyl", "acetylfentanyl")
    assert dictionary.terms("psychostimulant") == ("methamphetamine", "amphetamine")
    assert "multi drug" in dictionary.terms("broad")


def test_load_term_dictionary_from_xlsx(tmp_path):
    df = pd.DataFrame({category: [category.title(), None] for category in REQUIRED_CATEGORIES})
    df.loc[1, "heroin"] = "6-MAM"
    path = tmp_path / "terms.xlsx"
    df.to_excel(path, sheet_name="Sheet1", index=False)

    dictionary = load_term_dictionary(path, sheet_name="Sheet1")

    assert dictionary.terms("heroin") == ("heroin", "6mam")
    assert dictionary.terms("broad") == ("broad",)


def test_headers_are_case_and_space_insensitive():
    df = pd.DataFrame({
        " BROAD ": ["overdose"],
        "Specific_Terms": ["fentanyl"],
        "Opioids": ["fentanyl"],
        "FENTANYL": ["fentanyl"],
        "cocaine": ["cocaine"],
        "heroin": ["heroin"],
        "Psychostimulants": ["methamphetamine"],
    })
    result = parse_term_table(_csv_bytes(df), "terms.csv")
    assert list(result.data.columns) == list(REQUIRED_CATEGORIES)


def test_extra_columns_are_ignored():
    df = pd.DataFrame({category: ["x"] for category in REQUIRED_CATEGORIES})
    df["Notes"] = ["removed 2021"]
    result = parse_term_table(_csv_bytes(df), "terms.csv")
    assert "Notes" not in result.data.columns


def test_missing_category_raises():
    df = pd.DataFrame({category: ["x"] for category in REQUIRED_CATEGORIES if category != "cocaine"})

    with pytest.raises(MissingCategoryError) as exc_info:
        parse_term_table(_csv_bytes(df), "terms.csv")

    assert exc_info.value.missing == ["cocaine"]
    assert isinstance(exc_info.value, ParseError)


def test_unsupported_format_raises():
    with pytest.raises(ParseError):
        parse_term_table(BytesIO(b"broad\noverdose\n"), "terms.txt")
