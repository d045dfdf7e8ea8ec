"""
Text helpers for question and answer strings returned by the trivia API.
"""
import re
from typing import Dict


# Named entities the API uses in question and answer text
HTML_ENTITIES: Dict[str, str] = {
    "&quot;": '"',
    "&#039;": "'",
    "&eacute;": "é",
    "&amp;": "&",
    "&acute;": "´",
    "&grave;": "`",
    "&ldquo;": '"',
    "&rdquo;": '"',
    "&lsquo;": "'",
    "&rsquo;": "'",
    "&ndash;": "–",
    "&mdash;": "—",
}

_ENTITY_PATTERN = re.compile("|".join(re.escape(entity) for entity in HTML_ENTITIES))


def decode_entities(text: str) -> str:
    """
    Replace the known HTML entities in a single pass.

    Unknown entities are left untouched and the output is never decoded a
    second time, so "&amp;quot;" becomes "&quot;".
    """
    if not text or "&" not in text:
        return text
    return _ENTITY_PATTERN.sub(lambda match: HTML_ENTITIES[match.group(0)], text)


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Shorten text to fit a length limit, marking the cut with a suffix."""
    if len(text) <= limit:
        return text
    return text[:max(limit - len(suffix), 0)] + suffix
