"""
Phone number helpers for the voicemail form and list.
"""

import re

_NON_DIGITS = re.compile(r"\D")

PHONE_DIGITS = 10


def unformat_phone_number(value: str) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", value)


def format_phone_number(value: str) -> str:
    """
    Format a (possibly partial) phone number as (xxx) xxx-xxxx.

    Non-digits are dropped and input beyond ten digits is ignored, so the
    function can be applied to a value as it is being typed:

        ""            -> ""
        "555"         -> "(555"
        "55512"       -> "(555) 12"
        "5551234567"  -> "(555) 123-4567"
    """
    digits = unformat_phone_number(value)[:PHONE_DIGITS]

    if not digits:
        return ""
    if len(digits) <= 3:
        return f"({digits}"
    if len(digits) <= 6:
        return f"({digits[:3]}) {digits[3:]}"
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def is_phone_number_complete(value: str) -> bool:
    """True when the value carries exactly ten digits."""
    return len(unformat_phone_number(value)) == PHONE_DIGITS
