"""
Shared parser utilities (internal).

Centralizes common logic across the record and term dictionary parsers to
prevent drift:
- Exception hierarchy (ParseError and friends)
- ParseResult return type (data, rejects, metrics)
- Header normalization + alias resolution
- Encoding detection (UTF-8 → CP1252 → Latin-1)
- Tabular reading (CSV, XLSX, Parquet)
- Parse metrics
"""

import re
from enum import Enum
from io import BytesIO
from typing import IO, Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

import pandas as pd
import structlog

logger = structlog.get_logger(__name__)


# ============================================================================
# Custom Exceptions
# ============================================================================

class ParseError(Exception):
    """Base exception for parser errors."""
    pass


class MissingCategoryError(ParseError):
    """Raised when required term categories are absent from the dictionary table."""
    def __init__(self, missing: List[str], available: Optional[List[str]] = None):
        self.missing = list(missing)
        self.available = list(available or [])
        super().__init__(
            f"Term dictionary is missing required categories: {', '.join(self.missing)}"
        )


class RecordSchemaError(ParseError):
    """Raised when a record file lacks the identifier column or every text column."""
    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_fields = missing_fields or []


class DuplicateKeyError(ParseError):
    """Raised when duplicate record identifiers are detected."""
    def __init__(self, message: str, duplicates: Optional[List[Dict]] = None):
        super().__init__(message)
        self.duplicates = duplicates or []


class MalformedTextError(ParseError):
    """Raised when a raw text field cannot be decoded."""
    pass


# ============================================================================
# Validation Enums
# ============================================================================

class ValidationSeverity(str, Enum):
    """
    Validation severity levels.

    Severity Levels:
        BLOCK: Raise exception, stop processing (critical errors)
        WARN: Reject rows, continue processing (soft failures)
        INFO: Log only, continue

    Examples:
        >>> severity = ValidationSeverity.WARN
        >>> assert severity == "WARN"
    """
    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"


class ParseResult(NamedTuple):
    """
    Structured parser output.

    Attributes:
        data: Canonical DataFrame (valid rows)
        rejects: Rejected rows DataFrame (empty if all valid)
        metrics: Parse metrics dict (total_rows, valid_rows, reject_rows, etc.)
    """
    data: pd.DataFrame
    rejects: pd.DataFrame
    metrics: Dict[str, Any]


# ============================================================================
# Header helpers
# ============================================================================

def normalize_header(col: Any) -> str:
    """
    Normalize column header for robust aliasing.

    - Strip BOM prefix and non-breaking spaces
    - Treat underscores as spaces
    - Condense multiple spaces to single space, trim
    - Lowercase for case-insensitive matching

    Examples:
        "Cause of Death Text Field 1 " → "cause of death text field 1"
        "DC_terms_detailed" → "dc terms detailed"
    """
    cleaned = str(col or '').replace('\ufeff', '').replace('\xa0', ' ').replace('_', ' ')
    return re.sub(r'\s+', ' ', cleaned).strip().lower()


def apply_alias_map(df: pd.DataFrame, alias_map: Mapping[str, str]) -> pd.DataFrame:
    """
    Rename columns to canonical names using a normalized alias map.

    Columns with no alias are kept under their original name. When two
    source columns resolve to the same canonical name the first one wins
    and the other is left untouched.
    """
    renames: Dict[str, str] = {}
    taken = set()
    for col in df.columns:
        canonical = alias_map.get(normalize_header(col))
        if canonical and canonical not in taken:
            renames[col] = canonical
            taken.add(canonical)
    if renames:
        logger.debug("columns_aliased", renames=renames)
    return df.rename(columns=renames)


# ============================================================================
# Encoding + tabular reading
# ============================================================================

def detect_encoding(content: bytes) -> Tuple[str, bytes]:
    """
    Detect encoding and strip BOM.

    Supports:
    - UTF-8 (with BOM)
    - UTF-16 LE/BE
    - CP1252 (fallback)
    - Latin-1 (fallback)

    Args:
        content: File bytes

    Returns:
        (encoding, content_without_bom)

    Examples:
        >>> encoding, clean = detect_encoding(b'\\xef\\xbb\\xbfdata')
        >>> encoding
        'utf-8'
        >>> clean
        b'data'
    """
    if content.startswith(b'\xef\xbb\xbf'):  # UTF-8 BOM
        logger.debug("Detected UTF-8 BOM, stripping")
        return 'utf-8', content[3:]

    elif content.startswith(b'\xff\xfe'):  # UTF-16 LE BOM
        logger.debug("Detected UTF-16 LE BOM, stripping")
        return 'utf-16-le', content[2:]

    elif content.startswith(b'\xfe\xff'):  # UTF-16 BE BOM
        logger.debug("Detected UTF-16 BE BOM, stripping")
        return 'utf-16-be', content[2:]

    try:
        content.decode('utf-8')
        return 'utf-8', content
    except UnicodeDecodeError:
        pass

    # Common in Windows exports of death certificate systems
    try:
        content.decode('cp1252')
        logger.debug("Detected CP1252 encoding")
        return 'cp1252', content
    except UnicodeDecodeError:
        pass

    logger.warning("Falling back to Latin-1 encoding")
    return 'latin-1', content


def read_tabular(
    file_obj: IO[bytes],
    filename: str,
    sheet_name: Any = 0,
) -> Tuple[pd.DataFrame, str]:
    """
    Read a CSV, XLSX or Parquet file into a string-typed DataFrame.

    Args:
        file_obj: Binary file stream
        filename: Filename for format detection
        sheet_name: Worksheet to read for XLSX files

    Returns:
        (DataFrame, detected_encoding)

    Raises:
        ParseError: If the format is not supported
    """
    filename_lower = filename.lower()

    if filename_lower.endswith('.csv'):
        raw_bytes = file_obj.read()
        encoding, clean = detect_encoding(raw_bytes)
        # Only empty cells are absent; literal "NA" in a narrative stays text
        df = pd.read_csv(
            BytesIO(clean),
            dtype=str,
            encoding=encoding,
            keep_default_na=False,
            na_values=[''],
        )
        return df, encoding

    elif filename_lower.endswith(('.xlsx', '.xls')):
        df = pd.read_excel(file_obj, sheet_name=sheet_name, dtype=str, engine='openpyxl')
        return df, 'excel'

    elif filename_lower.endswith('.parquet'):
        df = pd.read_parquet(file_obj)
        return df, 'parquet'

    raise ParseError(f"Unsupported format: {filename}. Expected: .csv, .xlsx, .parquet")


def build_parser_metrics(
    total_rows: int,
    valid_rows: int,
    reject_rows: int,
    encoding_detected: str,
    parse_duration_sec: float,
    parser_version: str,
    **extra
) -> Dict[str, Any]:
    """
    Build standard parse metrics dict.

    Args:
        total_rows: Input row count
        valid_rows: Output row count
        reject_rows: Rejected row count
        encoding_detected: Detected encoding
        parse_duration_sec: Parse duration
        parser_version: Parser version
        **extra: Additional metrics

    Returns:
        Metrics dictionary
    """
    return {
        'total_rows': total_rows,
        'valid_rows': valid_rows,
        'reject_rows': reject_rows,
        'reject_rate': reject_rows / total_rows if total_rows > 0 else 0,
        'encoding_detected': encoding_detected,
        'parse_seconds': round(parse_duration_sec, 2),
        'parser_version': parser_version,
        **extra
    }


__all__ = [
    'ParseError',
    'MissingCategoryError',
    'RecordSchemaError',
    'DuplicateKeyError',
    'MalformedTextError',
    'ValidationSeverity',
    'ParseResult',
    'normalize_header',
    'apply_alias_map',
    'detect_encoding',
    'read_tabular',
    'build_parser_metrics',
]
