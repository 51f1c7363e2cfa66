"""Identifier classification and phone canonicalization.

Every identifier entering the auth flow is classified once, here, and the
resulting ``Identifier`` is passed downstream instead of the raw string.
"""
from dataclasses import dataclass
from enum import Enum
import re

DEFAULT_COUNTRY_CODE = "1"

_NON_DIGITS = re.compile(r"\D")
_NON_DIGITS_OR_PLUS = re.compile(r"[^\d+]")


class IdentifierKind(str, Enum):
    EMAIL = "email"
    PHONE = "phone"


@dataclass(frozen=True)
class Identifier:
    kind: IdentifierKind
    canonical: str
    raw: str

    @property
    def is_email(self) -> bool:
        return self.kind == IdentifierKind.EMAIL

    @property
    def is_phone(self) -> bool:
        return self.kind == IdentifierKind.PHONE


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def canonicalize_phone(raw: str) -> str:
    """Coerce a free-form phone string to a ``+``-prefixed form.

    Numbers without a detectable country code get the default one (+1).
    """
    stripped = _NON_DIGITS_OR_PLUS.sub("", raw or "")
    # Only a leading plus is meaningful
    if stripped.startswith("+"):
        return "+" + stripped[1:].replace("+", "")
    stripped = stripped.replace("+", "")
    if stripped.startswith(DEFAULT_COUNTRY_CODE):
        return f"+{stripped}"
    return f"+{DEFAULT_COUNTRY_CODE}{stripped}"


def classify(raw: str) -> Identifier:
    """Classify ``raw`` as an email or a phone number and canonicalize it."""
    value = (raw or "").strip()
    if "@" in value:
        return Identifier(kind=IdentifierKind.EMAIL, canonical=value, raw=raw)
    return Identifier(kind=IdentifierKind.PHONE, canonical=canonicalize_phone(value), raw=raw)


def legacy_phone_variants(raw: str) -> list[str]:
    """Alternate stored forms tried when the canonical phone lookup misses.

    Ordered by priority: ``+<digits>``, ``+1<digits>``, ``<digits>`` and, for
    an 11-digit number carrying the default country code, the bare national
    number.
    """
    digits = digits_only(raw)
    if not digits:
        return []
    variants = [f"+{digits}", f"+{DEFAULT_COUNTRY_CODE}{digits}", digits]
    if len(digits) == 11 and digits.startswith(DEFAULT_COUNTRY_CODE):
        variants.append(digits[1:])
    # dict keeps first-seen order
    return list(dict.fromkeys(variants))
