import re
from app.core.errors import InvalidPhoneNumber

COUNTRY_CODE = "254"
TRUNK_PREFIX = "0"
# country code + 9 digit subscriber number
NORMALIZED_LENGTH = 12

_SEPARATORS = re.compile(r"[\s-]+")

def normalize(raw: str) -> str:
    """
    Canonicalize a user-entered Kenyan number to 254XXXXXXXXX.

    "0712 345-678", "+254712345678", "712345678" -> "254712345678".
    This is the only accepted rule: the national-only 07XX/01XX check is gone,
    anything that normalizes to 12 digits is accepted.
    """
    if not isinstance(raw, str):
        raise InvalidPhoneNumber()

    cleaned = _SEPARATORS.sub("", raw)
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]

    if not cleaned or not (cleaned.isascii() and cleaned.isdigit()):
        raise InvalidPhoneNumber()

    if cleaned.startswith(TRUNK_PREFIX):
        cleaned = COUNTRY_CODE + cleaned[len(TRUNK_PREFIX):]
    elif not cleaned.startswith(COUNTRY_CODE):
        cleaned = COUNTRY_CODE + cleaned

    if len(cleaned) != NORMALIZED_LENGTH:
        raise InvalidPhoneNumber()
    return cleaned
