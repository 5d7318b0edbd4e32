"""
Cause-of-death text normalization.

Builds one canonical search string per death record from its raw text fields:

  - absent fields (None / NaN / pd.NA) contribute "" (never "nan" or "NA")
  - fields are joined with single spaces so words never merge across fields
  - lowercase, "/" and "," become spaces, all other punctuation is removed
  - whitespace is squished and trimmed

Tokens are the whitespace-delimited pieces of the canonical string.
"""

import re
from typing import Any, Iterable, Tuple

import pandas as pd

from death_text_search.ingestion.parsers._parser_kit import MalformedTextError
from death_text_search.search.types import NormalizedText

# Number of cause-of-death text fields on a certificate
TEXT_FIELD_COUNT = 4

_SEPARATOR_RE = re.compile(r"[/,]")
# Anything outside letters, digits and whitespace (underscore included)
_PUNCT_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


def _field_to_text(value: Any) -> str:
    """Coerce one raw field to text; absent values become the empty string."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedTextError(f"Undecodable text field: {exc}") from exc
    if isinstance(value, str):
        return value
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        # Array-likes are not absent markers
        pass
    return str(value)


def clean_text(text: str) -> str:
    """Lowercase, drop punctuation and squish whitespace."""
    lowered = text.lower()
    lowered = _SEPARATOR_RE.sub(" ", lowered)
    lowered = _PUNCT_RE.sub("", lowered)
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def tokenize(canonical: str) -> Tuple[str, ...]:
    return tuple(canonical.split())


def normalize_text(fields: Iterable[Any]) -> NormalizedText:
    """
    Normalize a record's raw text fields.

    Args:
        fields: Raw cause-of-death text fields (any may be absent)

    Returns:
        NormalizedText with ``canonical`` and ``tokens``

    Raises:
        MalformedTextError: If a bytes field cannot be decoded as UTF-8

    Examples:
        >>> normalize_text(["Acute Fentanyl/Heroin toxicity", None]).canonical
        'acute fentanyl heroin toxicity'
        >>> normalize_text(["abc", "def"]).tokens
        ('abc', 'def')
    """
    joined = " ".join(_field_to_text(value) for value in fields)
    canonical = clean_text(joined)
    return NormalizedText(canonical=canonical, tokens=tokenize(canonical))
