"""Input validation and sanitization utilities."""

import re
import unicodedata

from devicegate.core.errors import ValidationError

# Control characters to remove (except newline, tab)
CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

MAX_DEVICE_ID_LENGTH = 128


def normalize_text(text: str | None) -> str | None:
    """
    Normalize free-text input by:
    - Normalizing Unicode to NFC form
    - Removing null bytes and control characters
    - Stripping leading/trailing whitespace

    Newlines inside the text are kept; unblock requests are multi-line.
    """
    if text is None:
        return None
    text = unicodedata.normalize("NFC", text)
    text = CONTROL_CHAR_PATTERN.sub("", text)
    return text.strip()


def validate_length(text: str | None, min_len: int = 0, max_len: int = 255) -> bool:
    """
    Validate that text length is within bounds.
    """
    if text is None:
        return min_len == 0
    return min_len <= len(text) <= max_len


def clean_device_id(device_id: str | None) -> str:
    """Return a stripped device id or raise ``ValidationError``."""
    if device_id is None or not device_id.strip():
        raise ValidationError("Device ID is required")
    device_id = device_id.strip()
    if len(device_id) > MAX_DEVICE_ID_LENGTH:
        raise ValidationError(f"Device ID must be at most {MAX_DEVICE_ID_LENGTH} characters")
    if CONTROL_CHAR_PATTERN.search(device_id):
        raise ValidationError("Device ID contains invalid characters")
    return device_id
