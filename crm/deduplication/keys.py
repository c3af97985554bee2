"""
Identity keys for duplicate detection.

These are the only functions that decide when two contacts are "the same".
Everything downstream treats the returned keys as opaque values.

Policy:
- Phones match on their last 10 digits.
- Names match on trimmed, lower-cased, whitespace-collapsed text together
  with city and state. No accent folding, nickname tables or suffix
  stripping is applied ("José" and "Jose", "Bob" and "Robert",
  "John Smith Jr." and "John Smith" are different people).
- Zero-width, bidi and non-breaking space characters are removed first;
  they arrive through copy/paste and break equality checks.
"""

import re

PHONE_KEY_LENGTH = 10
KEY_SEPARATOR = "|"

_ZERO_WIDTH_RE = re.compile("[\u200B-\u200D\u2060\uFEFF]")
_BIDI_MARKS_RE = re.compile("[\u202A-\u202E\u2066-\u2069\u200E\u200F]")
_NON_DIGIT_RE = re.compile(r"\D")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_invisible(value: str | None) -> str:
    """Remove invisible/bidi characters and turn NBSP into a space."""
    if not value:
        return ""
    value = str(value).replace("\u00a0", " ")
    value = _ZERO_WIDTH_RE.sub("", value)
    value = _BIDI_MARKS_RE.sub("", value)
    return value.strip()


def normalize_text(value: str | None) -> str:
    """Trim, lower-case and collapse internal whitespace."""
    return _WHITESPACE_RE.sub(" ", strip_invisible(value)).strip().lower()


def normalize_phone(raw: str | None) -> str | None:
    """Return the last 10 digits of a phone number, or None if it has fewer.

    >>> normalize_phone("(555) 123-4567")
    '5551234567'
    >>> normalize_phone("+1 555 123 4567")
    '5551234567'
    >>> normalize_phone("123-4567") is None
    True
    """
    digits = _NON_DIGIT_RE.sub("", strip_invisible(raw))
    if len(digits) < PHONE_KEY_LENGTH:
        return None
    return digits[-PHONE_KEY_LENGTH:]


def normalize_full_name(first_name: str | None, last_name: str | None) -> str:
    return normalize_text(f"{first_name or ''} {last_name or ''}")


def normalize_name_location(
    first_name: str | None,
    last_name: str | None,
    city: str | None,
    state: str | None,
) -> str | None:
    """Build the name+city+state key, or None if any part is missing.

    >>> normalize_name_location(" John ", "SMITH", "Austin", "TX")
    'john smith|austin|tx'
    """
    name = normalize_full_name(first_name, last_name)
    city_key = normalize_text(city)
    state_key = normalize_text(state)
    if not name or not city_key or not state_key:
        return None
    return KEY_SEPARATOR.join((name, city_key, state_key))


def normalize_address(address: str | None) -> str:
    return normalize_text(address)


def normalize_address_key(
    address: str | None,
    city: str | None,
    state: str | None,
    zip_code: str | None,
) -> tuple[str, str, str, str] | None:
    """Comparable identity of a property; None when there is no address."""
    address_key = normalize_address(address)
    if not address_key:
        return None
    return (address_key, normalize_text(city), normalize_text(state), normalize_text(zip_code))
