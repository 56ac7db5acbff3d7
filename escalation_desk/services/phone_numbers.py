import re

from escalation_desk.core.errors import InvalidPhoneNumberError

LOCAL_NUMBER_RE = re.compile(r"^(\+27|0)[0-9]{9}$")
_SEPARATORS_RE = re.compile(r"[\s\-.()]")

INVALID_NUMBER_MESSAGE = (
    "Invalid phone number format. Please enter a valid South African number "
    "(e.g., +27123456789 or 0123456789)."
)


def normalize_phone_number(raw: str) -> str:
    """Validate a customer-entered number and return it in +27XXXXXXXXX form."""
    compact = _SEPARATORS_RE.sub("", raw or "")
    if not LOCAL_NUMBER_RE.match(compact):
        raise InvalidPhoneNumberError(INVALID_NUMBER_MESSAGE)
    if compact.startswith("0"):
        return f"+27{compact[1:]}"
    return compact


def mask_phone_number(number: str) -> str:
    if len(number) >= 4:
        return f"***-***-{number[-4:]}"
    return number
