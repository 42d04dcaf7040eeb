"""
content_filter.py — Keyword Screen
==================================
Player text and generated text both pass through `sanitize_content` before
they are appended to a story. A hit on any configured keyword replaces the
whole text with a neutral sentence.
"""

from collections.abc import Iterable

from storychain.core.config import get_settings

SAFE_REPLACEMENT = "The story continues with an unexpected but appropriate turn of events."


def _keywords(keywords: Iterable[str] | None) -> list[str]:
    if keywords is None:
        keywords = get_settings().CONTENT_FILTER_KEYWORDS
    return [k.lower() for k in keywords]


def is_content_safe(content: str, keywords: Iterable[str] | None = None) -> bool:
    lowered = content.lower()
    return not any(k in lowered for k in _keywords(keywords))


def sanitize_content(content: str, keywords: Iterable[str] | None = None) -> str:
    if not is_content_safe(content, keywords):
        return SAFE_REPLACEMENT
    return content
