"""Tokenization and sentence segmentation shared by the indices and chunkers."""

import re
from typing import Iterable, Optional

_TOKEN_SPLIT = re.compile(r"[\W_]+")

# Sentence terminators, optional closing quotes/brackets, then whitespace.
# A blank line also ends a sentence.
_SENTENCE_END = re.compile(r"[.!?]+[\"')\]]*\s+|\n[ \t]*\n\s*")

ENGLISH_STOPWORDS = frozenset({
    "a", "about", "above", "after", "again", "against", "all", "am", "an",
    "and", "any", "are", "as", "at", "be", "because", "been", "before",
    "being", "below", "between", "both", "but", "by", "can", "did", "do",
    "does", "doing", "down", "during", "each", "few", "for", "from",
    "further", "had", "has", "have", "having", "he", "her", "here", "hers",
    "herself", "him", "himself", "his", "how", "i", "if", "in", "into", "is",
    "it", "its", "itself", "just", "me", "more", "most", "my", "myself", "no",
    "nor", "not", "now", "of", "off", "on", "once", "only", "or", "other",
    "our", "ours", "ourselves", "out", "over", "own", "same", "she", "should",
    "so", "some", "such", "than", "that", "the", "their", "theirs", "them",
    "themselves", "then", "there", "these", "they", "this", "those",
    "through", "to", "too", "under", "until", "up", "very", "was", "we",
    "were", "what", "when", "where", "which", "while", "who", "whom", "why",
    "will", "with", "you", "your", "yours", "yourself", "yourselves",
})


def tokenize(text: str, stopwords: Optional[Iterable[str]] = None) -> list[str]:
    """Lowercase ``text`` and split it on non-alphanumeric boundaries.

    Args:
        text: Text to tokenize
        stopwords: Optional terms to drop from the output

    Returns:
        Tokens in document order (duplicates kept)
    """
    tokens = [token for token in _TOKEN_SPLIT.split(text.lower()) if token]

    if stopwords:
        stop = stopwords if isinstance(stopwords, (set, frozenset)) else set(stopwords)
        tokens = [token for token in tokens if token not in stop]

    return tokens


def sentence_spans(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of the sentences in ``text``.

    Trailing whitespace stays with the sentence it follows, so the spans
    tile the text exactly: the first starts at 0, each starts where the
    previous ended, and the last ends at ``len(text)``.
    """
    if not text:
        return []

    spans = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        end = match.end()
        if end > start:
            spans.append((start, end))
            start = end

    if start < len(text):
        spans.append((start, len(text)))

    return spans
