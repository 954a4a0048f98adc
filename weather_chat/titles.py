"""Session title generation from a user's first message."""

import re

SHORT_TITLE_LIMIT = 35
KEYWORD_TITLE_LIMIT = 40

WEATHER_KEYWORDS = (
    "weather",
    "temperature",
    "temp",
    "rain",
    "snow",
    "forecast",
    "climate",
    "sunny",
    "cloudy",
    "wind",
    "humidity",
    "hot",
    "cold",
    "warm",
    "cool",
)

_LOCATION_RE = re.compile(r"\b(?:in|for|at|from)\s+([a-z\s,]+?)(?:\s|$|\?|!|\.)", re.I)


def _truncate(text: str, limit: int) -> str:
    title = text[:limit]
    return title + "..." if len(title) < len(text) else title


def extract_location(text: str) -> str | None:
    """Return the place named after in/for/at/from, up to the first comma."""
    match = _LOCATION_RE.search(text)
    if not match:
        return None
    location = match.group(1).split(",")[0].strip()
    return location or None


def has_weather_keyword(text: str) -> bool:
    lower = text.lower()
    return any(keyword in lower for keyword in WEATHER_KEYWORDS)


def derive_title(text: str) -> str:
    """
    Derive a short session title from a user message.

    "What's the weather in Paris, France?" -> "Weather in Paris". Messages
    without a recognizable place are kept verbatim when short and truncated
    with "..." otherwise.
    """
    text = text.strip()
    location = extract_location(text)
    keyword = has_weather_keyword(text)

    if location and keyword:
        return f"Weather in {location}"
    if len(text) <= SHORT_TITLE_LIMIT:
        return text
    if location:
        return f"{location} weather"
    if keyword:
        return _truncate(text, KEYWORD_TITLE_LIMIT)
    return _truncate(text, SHORT_TITLE_LIMIT)
