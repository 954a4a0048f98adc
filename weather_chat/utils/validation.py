"""
User message validation for Weather Chat.

Every message is checked before it is stored or sent: it must be
non-blank, at most MAX_MESSAGE_LENGTH characters, and free of markup
that would run script in a browser rendering the history.
"""

import re
from dataclasses import dataclass, field
from typing import List

MAX_MESSAGE_LENGTH = 500

_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.I)
_TAG_RE = re.compile(r"<[^>]*>")
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.I)
_EVENT_HANDLER_RE = re.compile(r"on\w+\s*=", re.I)

_UNSAFE_PATTERNS = (
    re.compile(r"<script", re.I),
    re.compile(r"javascript:", re.I),
    re.compile(r"vbscript:", re.I),
    re.compile(r"onload=", re.I),
    re.compile(r"onerror=", re.I),
    re.compile(r"onclick=", re.I),
)


class MessageValidationError(ValueError):
    """A user message was rejected; ``errors`` lists every reason."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    sanitized: str = ""


def sanitize_input(text: str) -> str:
    """Strip script blocks, HTML tags, javascript: prefixes and inline event handlers."""
    if not isinstance(text, str):
        return ""
    text = _SCRIPT_BLOCK_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = _JS_PROTOCOL_RE.sub("", text)
    text = _EVENT_HANDLER_RE.sub("", text)
    return text.strip()


def validate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> ValidationResult:
    """
    Check a user message before it is sent.

    Args:
        text: Raw message as typed
        max_length: Longest accepted message after trimming

    Returns:
        ValidationResult with every failed check in ``errors`` and the
        cleaned text in ``sanitized``
    """
    if not isinstance(text, str) or not text:
        return ValidationResult(is_valid=False, errors=["Message is required"])

    trimmed = text.strip()
    errors = []
    if not trimmed:
        errors.append("Message cannot be empty")
    if len(trimmed) > max_length:
        errors.append(f"Message cannot exceed {max_length} characters")
    if any(pattern.search(trimmed) for pattern in _UNSAFE_PATTERNS):
        errors.append("Message contains potentially unsafe content")

    sanitized = sanitize_input(trimmed)
    if trimmed and not sanitized:
        errors.append("Message has no text once markup is removed")

    return ValidationResult(is_valid=not errors, errors=errors, sanitized=sanitized)
