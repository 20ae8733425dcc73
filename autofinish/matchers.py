"""Table-driven keyword matchers.

Keyword tables map a label to a tuple of words or phrases. Matching is
case-insensitive and whole-word, with an optional plural "s", so "ui" does
not match inside "build". All functions here are pure.
"""

import re
from functools import lru_cache

KeywordTable = dict[str, tuple[str, ...]]

_WORD_RE = re.compile(r"[a-z0-9]+(?:['_-][a-z0-9]+)*")


@lru_cache(maxsize=512)
def _keyword_regex(keyword: str) -> re.Pattern[str]:
    # Phrases match across any run of whitespace
    body = r"\s+".join(re.escape(part) for part in keyword.lower().split())
    return re.compile(rf"(?<![\w-]){body}s?(?![\w-])")


def contains_keyword(text: str, keyword: str) -> bool:
    """Check whether text contains keyword as a whole word or phrase."""
    return _keyword_regex(keyword).search(text.lower()) is not None


def first_matching_key(text: str, table: KeywordTable) -> str | None:
    """Return the first label (in table order) with a keyword present in text."""
    for label, keywords in table.items():
        if any(contains_keyword(text, keyword) for keyword in keywords):
            return label
    return None


def matching_keys(text: str, table: KeywordTable) -> list[str]:
    """Return every label with a keyword present in text, in table order."""
    return [
        label
        for label, keywords in table.items()
        if any(contains_keyword(text, keyword) for keyword in keywords)
    ]


def words(text: str) -> list[str]:
    """Lowercase word tokens of text."""
    return _WORD_RE.findall(text.lower())


def contains_phrase(haystack: str, needle: str) -> bool:
    """Whole-word containment of the needle's word sequence in the haystack."""
    needle_words = words(needle)
    if not needle_words:
        return False
    return f" {' '.join(needle_words)} " in f" {' '.join(words(haystack))} "


def jaccard(a: str, b: str) -> float:
    """Jaccard similarity of the word sets of two texts."""
    set_a, set_b = set(words(a)), set(words(b))
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)
