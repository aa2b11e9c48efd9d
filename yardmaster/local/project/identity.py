import base64
import secrets
from datetime import datetime, timezone

ID_BYTES = 10


def gensym() -> str:
    """Returns a fresh random component id: 16 lowercase base32 characters."""
    return base64.b32encode(secrets.token_bytes(ID_BYTES)).decode("ascii").rstrip("=").lower()


def now_string() -> str:
    """The default clock: the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def is_valid_name(name: str) -> bool:
    """Component name rule. Only non-empty names are rejected for now."""
    return isinstance(name, str) and name != ""
