"""
Reversible obfuscation for values written to local storage.

Values are serialized to compact JSON, every character code is XORed
against a repeating key, and the result is base64-encoded. This is not
encryption; it only keeps stored history from being casually readable.
The live store writes plain JSON and reads this format only to migrate
data saved by older clients.
"""

import base64
import binascii
import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_KEY = "weather-chat-app"


def _xor(text: str, key: str) -> str:
    key_len = len(key)
    return "".join(chr(ord(ch) ^ ord(key[i % key_len])) for i, ch in enumerate(text))


def encode(value: Any, key: str = DEFAULT_KEY) -> str:
    """
    Encode a JSON-serializable value.

    Args:
        value: Any value ``json.dumps`` accepts
        key: Non-empty XOR key

    Returns:
        Base64 text safe to store as a string

    Raises:
        TypeError: If ``value`` is not JSON-serializable
        ValueError: If ``key`` is empty
    """
    if not key:
        raise ValueError("key must not be empty")
    # ensure_ascii keeps every code point below 128, so the XOR output fits latin-1
    canonical = json.dumps(value, separators=(",", ":"), ensure_ascii=True)
    scrambled = _xor(canonical, key)
    return base64.b64encode(scrambled.encode("latin-1")).decode("ascii")


def decode(text: str, key: str = DEFAULT_KEY, default: Optional[Any] = None) -> Any:
    """
    Decode a value produced by :func:`encode`.

    Never raises: bad base64, a wrong key or malformed JSON all return
    ``default``. Callers treat that as "no prior data".
    """
    if not key or not isinstance(text, str):
        return default
    try:
        raw = base64.b64decode(text.encode("ascii"), validate=True)
        return json.loads(_xor(raw.decode("latin-1"), key))
    except (binascii.Error, UnicodeError, ValueError) as e:
        logger.debug(f"Could not decode stored value: {e}")
        return default
