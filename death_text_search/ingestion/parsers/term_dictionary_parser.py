"""
Term Dictionary Parser

Parses the key-term spreadsheet (XLSX or CSV) into a TermDictionary.

The spreadsheet has one column per category, each a list of raw terms with
blanks where a column is shorter than the others. Headers are matched
case- and whitespace-insensitively; the surveillance team's historical
headers (DC_terms, DC_terms_detailed, Fentanyl_search, ...) are accepted
as aliases. Columns that are not categories (notes, removed terms) are
ignored.

Required categories: broad, specific, fentanyl, cocaine, heroin, opioid,
psychostimulant. A missing category raises MissingCategoryError.
"""

import time
from pathlib import Path
from typing import IO, Any, Union

import pandas as pd
import structlog

from death_text_search.ingestion.parsers._parser_kit import (
    MissingCategoryError,
    ParseResult,
    apply_alias_map,
    build_parser_metrics,
    read_tabular,
)
from death_text_search.search.term_dictionary import REQUIRED_CATEGORIES, TermDictionary

logger = structlog.get_logger(__name__)


PARSER_VERSION = "v1.0.0"

# Canonical alias map (normalized: lowercase, single-spaced, "_" → " ")
CATEGORY_ALIAS_MAP = {
    # Broad overdose indicators
    'broad': 'broad',
    'broad terms': 'broad',
    'dc terms': 'broad',

    # Specific drug terms
    'specific': 'specific',
    'specific terms': 'specific',
    'dc terms detailed': 'specific',

    'fentanyl': 'fentanyl',
    'fentanyl search': 'fentanyl',

    'cocaine': 'cocaine',
    'cocaine search': 'cocaine',

    'heroin': 'heroin',
    'heroin search': 'heroin',

    'opioid': 'opioid',
    'opioids': 'opioid',
    'opioid search': 'opioid',

    'psychostimulant': 'psychostimulant',
    'psychostimulants': 'psychostimulant',
    'psychostimulant search': 'psychostimulant',
    'psychostimulants search': 'psychostimulant',
}


def parse_term_table(
    file_obj: IO[bytes],
    filename: str,
    sheet_name: Any = 0,
) -> ParseResult:
    """
    Parse the key-term spreadsheet into a category-column table.

    Args:
        file_obj: Binary file stream
        filename: Filename for format detection (.xlsx, .csv)
        sheet_name: Worksheet for XLSX files

    Returns:
        ParseResult whose data has exactly the seven category columns
        (raw terms, blanks preserved) and no rejects

    Raises:
        MissingCategoryError: If any category column is absent
    """
    start_time = time.time()

    logger.info("parse_terms_start", filename=filename, parser_version=PARSER_VERSION)

    df, encoding = read_tabular(file_obj, filename, sheet_name=sheet_name)
    df = apply_alias_map(df, CATEGORY_ALIAS_MAP)

    missing = [category for category in REQUIRED_CATEGORIES if category not in df.columns]
    if missing:
        logger.error("term_categories_missing", filename=filename, missing=missing,
                     columns=[str(c) for c in df.columns])
        raise MissingCategoryError(missing, available=[str(c) for c in df.columns])

    ignored = [str(c) for c in df.columns if c not in REQUIRED_CATEGORIES]
    if ignored:
        logger.info("term_columns_ignored", columns=ignored)

    data = df[list(REQUIRED_CATEGORIES)].reset_index(drop=True)

    metrics = build_parser_metrics(
        total_rows=len(data),
        valid_rows=len(data),
        reject_rows=0,
        encoding_detected=encoding,
        parse_duration_sec=time.time() - start_time,
        parser_version=PARSER_VERSION,
        raw_terms_by_category={category: int(data[category].notna().sum()) for category in REQUIRED_CATEGORIES},
    )

    logger.info("parse_terms_complete", rows=len(data), encoding=encoding)

    return ParseResult(data=data, rejects=pd.DataFrame(), metrics=metrics)


def load_term_dictionary(path: Union[str, Path], sheet_name: Any = 0) -> TermDictionary:
    """
    Read a key-term spreadsheet from disk and build the TermDictionary.

    Examples:
        >>> terms = load_term_dictionary("list_of_key_terms.xlsx", sheet_name="Sheet1")
        >>> terms.terms("fentanyl")[:2]
        ('fentanyl', 'fentanil')
    """
    path = Path(path)
    with open(path, 'rb') as f:
        result = parse_term_table(f, path.name, sheet_name=sheet_name)

    dictionary = TermDictionary.from_frame(result.data)
    logger.info("term_dictionary_built", path=str(path), term_counts=dictionary.counts())
    return dictionary


__all__ = ["CATEGORY_ALIAS_MAP", "parse_term_table", "load_term_dictionary"]
