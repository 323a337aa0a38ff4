"""
Normalization utilities for upstream courier and storefront payloads.

Provides centralized, deterministic normalization for:
- Identifiers (tracking numbers, order refs: type-safe, whitespace-safe)
- Amounts (strings with thousands separators, blanks, garbage)
- Timestamps (ISO strings, "Z" suffixes, portal-formatted dates)
- City names (grouping keys and display form)

Used by:
- Courier adapters when mapping raw records to RawShipment
- Storefront sync when mapping raw orders to rows
- Alert engine city aggregation
"""
import re
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from dateutil import parser as date_parser


def normalize_identifier(value: Optional[Union[str, int]]) -> Optional[str]:
    """
    Normalize identifier for type-safe, whitespace-safe matching.
    Casts everything to string and strips whitespace.

    Examples:
        "CX-1001" -> "CX-1001"
        77054514 -> "77054514"
        " 77054514 " -> "77054514"
        None -> None
        "" -> None
    """
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized if normalized else None


def first_non_blank(*values: Any) -> Optional[str]:
    """Return the first value that is a non-blank string after stripping, else None."""
    for value in values:
        normalized = normalize_identifier(value)
        if normalized:
            return normalized
    return None


def parse_amount(value: Any) -> float:
    """
    Parse an upstream money value into a float.

    Examples:
        "1,250.50" -> 1250.5
        900 -> 900.0
        None / "" / "N/A" -> 0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace(",", "").strip()
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an upstream timestamp into a naive UTC datetime.

    Accepts datetime/date objects, ISO strings (with or without "Z") and the
    looser formats courier portals print. Returns None when nothing usable is found.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            dt = date_parser.parse(text, dayfirst=not _looks_iso(text))
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _looks_iso(text: str) -> bool:
    return bool(re.match(r"^\d{4}-\d{2}-\d{2}", text))


def city_key(value: Optional[str]) -> str:
    """Grouping key for a city: trimmed, lower-cased, "unknown" when blank."""
    normalized = (value or "").strip().lower()
    return normalized if normalized else "unknown"


def display_city(key: str) -> str:
    """Title-case a city key for display ("dera ghazi khan" -> "Dera Ghazi Khan")."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key)


def strip_auth_scheme(token: Optional[str]) -> str:
    """Drop a leading "Bearer"/"Token" scheme from a raw credential."""
    return re.sub(r"^(Bearer|Token)\s+", "", (token or "").strip(), flags=re.IGNORECASE).strip()
