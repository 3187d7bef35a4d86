"""Phone number canonicalization for WhatsApp identities.

Gateways hand us numbers as chat ids ("5511999999999@c.us",
"5511999999999:12@s.whatsapp.net"), bare digits with or without a country
code, and legacy rows stored in every one of those shapes. Everything here is
pure; lookups against storage live in the lead repository.
"""

import logging
import re
from dataclasses import dataclass

from app.settings import settings

logger = logging.getLogger(__name__)

# Brazilian area codes (DDD) in service
VALID_AREA_CODES = frozenset((
    11, 12, 13, 14, 15, 16, 17, 18, 19,
    21, 22, 24, 27, 28,
    31, 32, 33, 34, 35, 37, 38,
    41, 42, 43, 44, 45, 46, 47, 48, 49,
    51, 53, 54, 55,
    61, 62, 63, 64, 65, 66, 67, 68, 69,
    71, 73, 74, 75, 77, 79,
    81, 82, 83, 84, 85, 86, 87, 88, 89,
    91, 92, 93, 94, 95, 96, 97, 98, 99,
))

# Longest codes first so "1" never shadows "351" and "55" never shadows "595"
COUNTRY_CODES = (
    "595",  # Paraguay
    "598",  # Uruguay
    "593",  # Ecuador
    "591",  # Bolivia
    "353",  # Ireland
    "351",  # Portugal
    "81",   # Japan
    "61",   # Australia
    "55",   # Brazil
    "54",   # Argentina
    "56",   # Chile
    "57",   # Colombia
    "58",   # Venezuela
    "52",   # Mexico
    "51",   # Peru
    "34",   # Spain
    "39",   # Italy
    "49",   # Germany
    "33",   # France
    "44",   # United Kingdom
    "1",    # US / Canada
)

# A country code only counts if it leaves a plausible subscriber number behind
MIN_LOCAL_DIGITS = 8

CHAT_ID_SUFFIXES = ("@c.us", "@s.whatsapp.net", "@lid")


@dataclass(frozen=True)
class CanonicalPhone:
    """A phone number split into country code and local number."""

    country_code: str
    local_number: str
    full_number: str
    is_valid: bool = True

    @property
    def is_domestic(self) -> bool:
        return self.country_code == settings.default_country_code


def strip_chat_id(raw: str | None) -> str:
    """Reduce a chat id or formatted number to its digits.

    "5511999999999:12@s.whatsapp.net" -> "5511999999999"
    "+55 (11) 99999-9999"            -> "5511999999999"
    """
    if not raw:
        return ""
    value = raw.strip()
    for suffix in CHAT_ID_SUFFIXES:
        value = value.replace(suffix, "")
    # Multi-device ids append ":<device>" before the suffix
    value = value.split(":", 1)[0]
    return re.sub(r"\D", "", value)


def validate_domestic_number(local_number: str) -> bool:
    """Validate a domestic (Brazilian) number given without country code.

    Rules:
        - 2-digit area code from the whitelist
        - 8 or 9 digit subscriber number
        - 9-digit (mobile) subscriber numbers start with 9
        - subscriber number is not one repeated digit
    """
    if len(local_number) not in (10, 11) or not local_number.isdigit():
        return False
    if int(local_number[:2]) not in VALID_AREA_CODES:
        return False
    subscriber = local_number[2:]
    if len(subscriber) == 9 and not subscriber.startswith("9"):
        return False
    if len(set(subscriber)) == 1:
        return False
    return True


def _looks_domestic(digits: str) -> bool:
    """Shape check for a domestic number sent without its country code."""
    if len(digits) not in (10, 11):
        return False
    if int(digits[:2]) not in VALID_AREA_CODES:
        return False
    return len(digits) == 10 or digits[2] == "9"


def canonicalize_phone(raw: str | None) -> CanonicalPhone:
    """Split a raw number into country code and local number.

    Order of attempts:
        1. 10-11 digits shaped like a domestic number: domestic, no country code
        2. longest-prefix match against COUNTRY_CODES
        3. 12+ digits with an unknown code: last 10 digits are local
        4. anything shorter: assume domestic
    """
    digits = strip_chat_id(raw)
    domestic = settings.default_country_code

    if _looks_domestic(digits):
        return CanonicalPhone(
            country_code=domestic,
            local_number=digits,
            full_number=f"{domestic}{digits}",
            is_valid=validate_domestic_number(digits),
        )

    for code in COUNTRY_CODES:
        if digits.startswith(code) and len(digits) - len(code) >= MIN_LOCAL_DIGITS:
            local = digits[len(code):]
            is_valid = validate_domestic_number(local) if code == domestic else True
            return CanonicalPhone(
                country_code=code,
                local_number=local,
                full_number=digits,
                is_valid=is_valid,
            )

    if len(digits) >= 12:
        return CanonicalPhone(
            country_code=digits[:-10],
            local_number=digits[-10:],
            full_number=digits,
        )

    if digits:
        logger.debug("Phone number too short for country detection", extra={"digits_length": len(digits)})
    return CanonicalPhone(
        country_code=domestic,
        local_number=digits,
        full_number=f"{domestic}{digits}",
        is_valid=validate_domestic_number(digits),
    )


def format_phone_for_display(phone: CanonicalPhone) -> str:
    """Human-readable form used in placeholder lead names.

    Domestic: (11) 99999-9999 / (11) 9999-9999
    Other:    +54 9111234567
    """
    local = phone.local_number
    if phone.is_domestic:
        if len(local) == 11:
            return f"({local[:2]}) {local[2:7]}-{local[7:]}"
        if len(local) == 10:
            return f"({local[:2]}) {local[2:6]}-{local[6:]}"
    return f"+{phone.country_code} {local}"


def phone_variants(raw: str) -> list[str]:
    """All stored forms a number may have been saved under.

    Covers the digits as received, the local and full international forms,
    and for domestic numbers both the 10 and 11 digit mobile forms.
    """
    digits = strip_chat_id(raw)
    phone = canonicalize_phone(digits)
    variants = [digits, phone.local_number, phone.full_number]

    if phone.is_domestic:
        local = phone.local_number
        area, rest = local[:2], local[2:]
        if len(local) == 11 and rest.startswith("9"):
            without_nine = f"{area}{rest[1:]}"
            variants.extend((without_nine, f"{phone.country_code}{without_nine}"))
        elif len(local) == 10:
            with_nine = f"{area}9{rest}"
            variants.extend((with_nine, f"{phone.country_code}{with_nine}"))
    elif 10 <= len(digits) <= 11:
        variants.append(f"{settings.default_country_code}{digits}")

    # Preserve order, drop empties and repeats
    return [v for v in dict.fromkeys(variants) if v]


def trailing_match_length(a: str, b: str) -> int:
    """Number of trailing digits two numbers share."""
    count = 0
    for x, y in zip(reversed(a), reversed(b)):
        if x != y:
            break
        count += 1
    return count


def same_line(a: str | None, b: str | None) -> bool:
    """Whether two numbers refer to the same line, comparing the last 10 digits."""
    a_digits, b_digits = strip_chat_id(a), strip_chat_id(b)
    if not a_digits or not b_digits:
        return False
    return a_digits[-10:] == b_digits[-10:]
