"""
Death Record Parser

Parses death certificate extracts (CSV, XLSX, Parquet) into the record
schema used by the text search:

    record_id, date_of_death, text_field_1..4 [, resident_state]

Headers are matched case- and whitespace-insensitively, so extracts keyed by
the vital records column names ("Unique ID for Counting", "Cause of Death
Text Field 1", "Date of Death", "Decendents Resident State") load without
renaming.

Filters (both optional, both inclusive):
- resident_state: counts are by residence, not place of death
- start_date / end_date: date of death window; rows without a usable date
  fall outside any window

Rows without an identifier and repeated identifiers are rejected (or raise
DuplicateKeyError under BLOCK severity).
"""

import time
from datetime import date
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Tuple, Union

import pandas as pd
import structlog

from death_text_search.ingestion.parsers._parser_kit import (
    DuplicateKeyError,
    ParseResult,
    RecordSchemaError,
    ValidationSeverity,
    apply_alias_map,
    build_parser_metrics,
    read_tabular,
)
from death_text_search.search.pipeline import TEXT_COLUMNS

logger = structlog.get_logger(__name__)


PARSER_VERSION = "v1.0.0"
NATURAL_KEYS = ["record_id"]
OUTPUT_COLUMNS = ["record_id", "date_of_death"] + TEXT_COLUMNS + ["resident_state"]

# Canonical alias map (normalized: lowercase, single-spaced, "_" → " ")
RECORD_ALIAS_MAP = {
    # Identifier
    'unique id for counting': 'record_id',
    'record id': 'record_id',
    'id': 'record_id',
    'certificate number': 'record_id',

    # Date of death
    'date of death': 'date_of_death',
    'dateofdeath': 'date_of_death',
    'dod': 'date_of_death',

    # Resident state (source systems carry the "Decendents" typo)
    'decendents resident state': 'resident_state',
    'decedents resident state': 'resident_state',
    'resident state': 'resident_state',
    'state': 'resident_state',
}
for _n in range(1, len(TEXT_COLUMNS) + 1):
    RECORD_ALIAS_MAP[f'cause of death text field {_n}'] = f'text_field_{_n}'
    RECORD_ALIAS_MAP[f'cod text field {_n}'] = f'text_field_{_n}'
    RECORD_ALIAS_MAP[f'text field {_n}'] = f'text_field_{_n}'


def filter_resident_state(df: pd.DataFrame, resident_state: Optional[str]) -> Tuple[pd.DataFrame, int]:
    """Keep rows whose resident state equals ``resident_state`` (case-insensitive)."""
    if not resident_state:
        return df, 0
    if 'resident_state' not in df.columns:
        raise RecordSchemaError(
            "Resident state filter requested but no resident state column found",
            missing_fields=['resident_state'],
        )
    wanted = resident_state.strip().upper()
    mask = df['resident_state'].fillna('').astype(str).str.strip().str.upper() == wanted
    return df.loc[mask], int((~mask).sum())


def filter_date_range(
    df: pd.DataFrame,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Tuple[pd.DataFrame, int]:
    """Keep rows with start_date <= date_of_death <= end_date (either bound optional)."""
    if start_date is None and end_date is None:
        return df, 0

    deaths = pd.to_datetime(df['date_of_death'], errors='coerce')
    mask = deaths.notna()
    if start_date is not None:
        mask &= deaths >= pd.Timestamp(start_date)
    if end_date is not None:
        mask &= deaths <= pd.Timestamp(end_date)
    return df.loc[mask], int((~mask).sum())


def _reject_rows(df: pd.DataFrame, reason: str) -> pd.DataFrame:
    rejects = df.copy()
    rejects['reject_reason'] = reason
    return rejects


def parse_death_records(
    file_obj: IO[bytes],
    filename: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    resident_state: Optional[str] = None,
    duplicate_severity: ValidationSeverity = ValidationSeverity.WARN,
    sheet_name: Any = 0,
) -> ParseResult:
    """
    Parse a death record extract.

    Args:
        file_obj: Binary file stream
        filename: Filename for format detection (.csv, .xlsx, .parquet)
        start_date: Earliest date of death to keep (inclusive)
        end_date: Latest date of death to keep (inclusive)
        resident_state: Resident state to keep (e.g. "TN")
        duplicate_severity: BLOCK raises on repeated ids, otherwise they are rejected
        sheet_name: Worksheet for XLSX files

    Returns:
        ParseResult with data in OUTPUT_COLUMNS order and rejects carrying
        a ``reject_reason`` column

    Raises:
        RecordSchemaError: No identifier column, or no text column at all
        DuplicateKeyError: Repeated identifiers under BLOCK severity
    """
    start_time = time.time()

    logger.info(
        "parse_records_start",
        filename=filename,
        parser_version=PARSER_VERSION,
        start_date=str(start_date) if start_date else None,
        end_date=str(end_date) if end_date else None,
        resident_state=resident_state,
    )

    df, encoding = read_tabular(file_obj, filename, sheet_name=sheet_name)
    total_rows = len(df)
    df = apply_alias_map(df, RECORD_ALIAS_MAP)

    # Step 1: Schema checks
    present_text = [column for column in TEXT_COLUMNS if column in df.columns]
    missing: List[str] = []
    if 'record_id' not in df.columns:
        missing.append('record_id')
    if not present_text:
        missing.extend(TEXT_COLUMNS)
    if missing:
        raise RecordSchemaError(
            f"Record file {filename} is missing required columns: {missing}",
            missing_fields=missing,
        )
    if resident_state and 'resident_state' not in df.columns:
        raise RecordSchemaError(
            f"Resident state filter requested but {filename} has no resident state column",
            missing_fields=['resident_state'],
        )

    for column in OUTPUT_COLUMNS:
        if column not in df.columns:
            df[column] = None
    df = df[OUTPUT_COLUMNS].reset_index(drop=True)
    df['date_of_death'] = pd.to_datetime(df['date_of_death'], errors='coerce').dt.date

    # Step 2: Filters (excluded rows are out of scope, not rejects)
    df, filtered_by_state = filter_resident_state(df, resident_state)
    df, filtered_by_date = filter_date_range(df, start_date, end_date)

    # Step 3: Identifier checks
    reject_frames: List[pd.DataFrame] = []
    no_id = df['record_id'].isna() | (df['record_id'].astype(str).str.strip() == '')
    if no_id.any():
        reject_frames.append(_reject_rows(df.loc[no_id], 'missing_record_id'))
        df = df.loc[~no_id]

    repeated = df.duplicated(subset=NATURAL_KEYS, keep='first')
    if repeated.any():
        duplicates: List[Dict[str, Any]] = (
            df.loc[repeated, NATURAL_KEYS].drop_duplicates().to_dict('records')
        )
        if duplicate_severity == ValidationSeverity.BLOCK:
            raise DuplicateKeyError(
                f"Duplicate record identifiers in {filename}: {len(duplicates)} id(s)",
                duplicates=duplicates,
            )
        logger.warning(
            "duplicate_record_ids_rejected",
            count=int(repeated.sum()),
            sample=duplicates[:5],
        )
        reject_frames.append(_reject_rows(df.loc[repeated], 'duplicate_record_id'))
        df = df.loc[~repeated]

    df = df.reset_index(drop=True)
    rejects = (
        pd.concat(reject_frames, ignore_index=True) if reject_frames else pd.DataFrame()
    )

    metrics = build_parser_metrics(
        total_rows=total_rows,
        valid_rows=len(df),
        reject_rows=len(rejects),
        encoding_detected=encoding,
        parse_duration_sec=time.time() - start_time,
        parser_version=PARSER_VERSION,
        filtered_by_state=filtered_by_state,
        filtered_by_date=filtered_by_date,
        text_columns_present=present_text,
    )

    logger.info(
        "parse_records_complete",
        total_rows=total_rows,
        valid_rows=len(df),
        reject_rows=len(rejects),
        filtered_by_state=filtered_by_state,
        filtered_by_date=filtered_by_date,
    )

    return ParseResult(data=df, rejects=rejects, metrics=metrics)


def load_death_records(
    path: Union[str, Path],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    resident_state: Optional[str] = None,
    duplicate_severity: ValidationSeverity = ValidationSeverity.WARN,
    sheet_name: Any = 0,
) -> ParseResult:
    """Read a death record extract from disk (see parse_death_records)."""
    path = Path(path)
    with open(path, 'rb') as f:
        return parse_death_records(
            f,
            path.name,
            start_date=start_date,
            end_date=end_date,
            resident_state=resident_state,
            duplicate_severity=duplicate_severity,
            sheet_name=sheet_name,
        )


__all__ = [
    "RECORD_ALIAS_MAP",
    "OUTPUT_COLUMNS",
    "filter_resident_state",
    "filter_date_range",
    "parse_death_records",
    "load_death_records",
]
