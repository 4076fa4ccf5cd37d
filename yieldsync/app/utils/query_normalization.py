"""
Query normalization utilities.

Search text and stable identifiers are normalized before they reach the
engines, so the query log, local lookups and provider calls all see the same
key. Inputs that reduce to nothing usable collapse to a placeholder and are
rejected with InvalidQueryError.
"""
import re

from yieldsync.app.db.models import AssetKind
from yieldsync.app.services.errors import InvalidQueryError

# Placeholders for inputs with no usable characters
QUERY_PLACEHOLDER = "QUERY"
ID_PLACEHOLDER = "ID"

SYMBOL_QUERY_MAX_LENGTH = 6

ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")

_NON_LETTERS = re.compile(r"[^A-Za-z]")
_NON_TEXT = re.compile(r"[^A-Za-z0-9.]")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_NON_COIN_ID = re.compile(r"[^a-z0-9-]")


def sanitize_symbol_query(raw: str) -> str:
    """
    Symbol-style normalization: trim, keep letters only, uppercase, truncate to 6.

    Returns QUERY_PLACEHOLDER when nothing usable is left.

    Examples:
        >>> sanitize_symbol_query("  aapl ")
        'AAPL'
        >>> sanitize_symbol_query("brk.b")
        'BRKB'
        >>> sanitize_symbol_query("123")
        'QUERY'
    """
    cleaned = _NON_LETTERS.sub("", (raw or "").strip()).upper()[:SYMBOL_QUERY_MAX_LENGTH]
    return cleaned or QUERY_PLACEHOLDER


def sanitize_text_query(raw: str) -> str:
    """
    Free-text normalization: trim, keep letters, digits and periods. Case is preserved.

    Returns QUERY_PLACEHOLDER when nothing usable is left.
    """
    cleaned = _NON_TEXT.sub("", (raw or "").strip())
    return cleaned or QUERY_PLACEHOLDER


def normalize_query(raw: str, kind: AssetKind) -> str:
    """
    Normalize a search query for the given asset kind.

    Equities use symbol-style normalization, digital assets use free-text.

    Raises:
        InvalidQueryError: if the query reduces to the placeholder
    """
    if kind == AssetKind.EQUITY:
        normalized = sanitize_symbol_query(raw)
    else:
        normalized = sanitize_text_query(raw)
    if normalized == QUERY_PLACEHOLDER:
        raise InvalidQueryError(f"Invalid search query: {raw!r}", details={"query": raw})
    return normalized


def is_isin(value: str) -> bool:
    """Check ISIN shape (2 letters, 9 alphanumerics, 1 check digit). Check digit is not verified."""
    return bool(ISIN_PATTERN.match(value or ""))


def normalize_stable_id(raw: str) -> str:
    """
    Normalize a stable identifier.

    ISIN-shaped input is uppercased with separators removed; anything else is
    treated as a coin id (lowercase letters, digits and dashes).

    Raises:
        InvalidQueryError: if nothing usable is left
    """
    stripped = (raw or "").strip()
    candidate = _NON_ALNUM.sub("", stripped).upper()
    if is_isin(candidate):
        return candidate
    coin_id = _NON_COIN_ID.sub("", stripped.lower())
    if not coin_id:
        raise InvalidQueryError(f"Invalid identifier: {raw!r}", details={"identifier": raw or ID_PLACEHOLDER})
    return coin_id


def infer_asset_kind(stable_id: str) -> AssetKind:
    """ISIN-shaped ids are equities, everything else is a digital-asset coin id."""
    return AssetKind.EQUITY if is_isin(stable_id) else AssetKind.DIGITAL_ASSET
