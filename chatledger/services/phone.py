from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D+")
_BRAZIL_COUNTRY_CODE = "55"


def canonical_phone(raw: str | None) -> str:
    """Reduce a sender identifier to the digits-only key used for all per-user state.

    ``5511987654321`` (country code + area + 9-digit mobile) becomes ``11987654321``.
    ``551187654321`` (country code + area + legacy 8-digit mobile) gets the
    mobile ``9`` inserted after the area code and the country code dropped, so
    both shapes of the same number map to one key. Anything else is returned
    as its digits.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if len(digits) == 13 and digits.startswith(_BRAZIL_COUNTRY_CODE):
        return digits[2:]
    if len(digits) == 12 and digits.startswith(_BRAZIL_COUNTRY_CODE):
        area, number = digits[2:4], digits[4:]
        return f"{area}9{number}"
    return digits


def phone_variants(key: str) -> list[str]:
    """Stored forms a canonical key may appear under in the user directory."""
    variants = [key]
    if len(key) == 11:
        variants.append(f"{_BRAZIL_COUNTRY_CODE}{key}")
        # legacy 8-digit mobile without the leading 9
        if key[2] == "9":
            variants.append(f"{_BRAZIL_COUNTRY_CODE}{key[:2]}{key[3:]}")
    return variants
