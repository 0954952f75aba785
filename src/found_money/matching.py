"""Shared keyword matching utilities for heuristic scoring."""

import re


def _word_in_text(text: str, word: str) -> bool:
    """Word-boundary match for single word (avoids substring false positives)."""
    if not word or not text:
        return False
    pattern = rf"\b{re.escape(word.lower())}\b"
    return bool(re.search(pattern, text.lower()))


def keyword_matches(text: str, keyword: str) -> bool:
    """
    Full phrase match, or word-level match for multi-word keywords.
    Single-word: use word boundary. Multi-word: at least 2 words match.
    """
    kw_lower = keyword.lower().strip()
    if not kw_lower or not text:
        return False
    words = kw_lower.split()
    if len(words) == 1:
        return _word_in_text(text, words[0])
    if kw_lower in text.lower():
        return True
    return sum(1 for w in words if len(w) > 2 and _word_in_text(text, w)) >= min(2, len(words))


def names_match(left: str, right: str) -> bool:
    """Case- and punctuation-insensitive comparison of person names."""
    def _norm(s: str) -> list[str]:
        return re.findall(r"[a-z]+", (s or "").lower())

    return bool(_norm(left)) and _norm(left) == _norm(right)
