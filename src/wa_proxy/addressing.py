# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Destination normalisation for phone-number addresses.

The proxy only accepts Saudi and Egyptian numbers. Raw input may use local
notation (leading 0), the country code without ``+``, or the bare national
number; it is normalised to E.164 before the message enters the queue.

Any callable with the signature ``normalize(raw) -> str`` that raises
:class:`InvalidDestinationError` may replace :func:`normalize_destination`.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from .errors import InvalidDestinationError

AddressValidator = Callable[[str], str]

# E.164 patterns per supported country (mobile and geographic ranges).
COUNTRY_PATTERNS: dict[str, re.Pattern[str]] = {
    "SA": re.compile(r"^\+966(5\d{8}|1[1-7]\d{7})$"),
    "EG": re.compile(r"^\+20(1[0125]\d{8}|[2-9]\d{7,8})$"),
}

JID_SUFFIX = "@s.whatsapp.net"

_STRIP = re.compile(r"[^\d+]")


def _candidates(cleaned: str) -> list[str]:
    """Return the E.164 spellings ``cleaned`` may stand for, most specific first."""
    formats: list[str] = []
    if cleaned.startswith("+"):
        formats.append(cleaned)
        return formats

    if cleaned.startswith("00"):
        formats.append("+" + cleaned[2:])
        return formats

    # Saudi
    if cleaned.startswith("0"):
        formats.append("+966" + cleaned[1:])
    elif cleaned.startswith("966"):
        formats.append("+" + cleaned)
    elif len(cleaned) == 9:
        formats.append("+966" + cleaned)

    # Egyptian
    if cleaned.startswith("0"):
        formats.append("+20" + cleaned[1:])
    elif cleaned.startswith("20"):
        formats.append("+" + cleaned)
    elif len(cleaned) == 10:
        formats.append("+20" + cleaned)
    return formats


def country_of(number: str) -> str | None:
    """Return ``"SA"``, ``"EG"`` or None for an E.164 number."""
    for country, pattern in COUNTRY_PATTERNS.items():
        if pattern.match(number):
            return country
    return None


def normalize_destination(raw: str | None) -> str:
    """Normalise a raw phone number to E.164.

    Raises:
        InvalidDestinationError: When the input is empty or matches no
            supported country.
    """
    if raw is None or not str(raw).strip():
        raise InvalidDestinationError(raw)
    value = str(raw).strip()
    if value.endswith(JID_SUFFIX):
        value = value[: -len(JID_SUFFIX)]
    cleaned = _STRIP.sub("", value)
    for candidate in _candidates(cleaned):
        if country_of(candidate):
            return candidate
    raise InvalidDestinationError(raw)


def to_jid(number: str) -> str:
    """Format an E.164 number as a WhatsApp user JID."""
    return number.lstrip("+") + JID_SUFFIX


__all__ = [
    "AddressValidator",
    "COUNTRY_PATTERNS",
    "JID_SUFFIX",
    "country_of",
    "normalize_destination",
    "to_jid",
]
