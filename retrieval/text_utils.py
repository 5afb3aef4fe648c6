"""Text helpers for retrieval and prompt assembly."""

import re
from typing import List, Tuple

from schemas.knowledge import Note


TAG_PATTERN = re.compile(r"#(\w+)")

# Topics that map onto tags even when the user does not write a hashtag
TOPIC_TAGS = {
    "mcp": re.compile(r"\b(MCP|Model[-\s]Context[-\s]Protocol)\b", re.IGNORECASE),
    "ai-architecture": re.compile(r"\bAI\s+architecture\b", re.IGNORECASE),
    "ecosystem-architecture": re.compile(r"\becosystem\s+architecture\b", re.IGNORECASE),
}

_PUNCTUATION = re.compile(r"[.,?!;:()\[\]{}'\"]")
_MARKDOWN = re.compile(r"[#*_`>\\+=\[\](){}|]")
_COMMON_WORDS = {"the", "and", "that", "have", "for", "not", "with", "you", "this", "but"}


def extract_query_tags(query: str) -> Tuple[str, List[str]]:
    """
    Split a query into its text and tags.

    Hashtags are removed from the text; topic keywords add a tag but stay
    in the text.

    Returns:
        (clean_query, tags)
    """
    tags = [match.lower() for match in TAG_PATTERN.findall(query)]
    clean_query = " ".join(TAG_PATTERN.sub("", query).split())

    for tag, pattern in TOPIC_TAGS.items():
        if pattern.search(query) and tag not in tags:
            tags.append(tag)

    return clean_query, tags


def query_terms(query: str) -> set[str]:
    """Lowercased query words longer than three characters."""
    return {word for word in _PUNCTUATION.sub("", query.lower()).split() if len(word) > 3}


def calculate_coverage(query: str, note: Note) -> float:
    """
    Fraction of query terms that appear in the note content.

    Returns:
        Coverage score between 0 and 1 (0 when the query has no terms)
    """
    terms = query_terms(query)
    if not terms:
        return 0.0
    content = note.content.lower()
    matched = sum(1 for term in terms if term in content)
    return matched / len(terms)


def get_excerpt(content: str, max_length: int = 150) -> str:
    """First paragraph of content, trimmed to max_length on a word boundary."""
    text = " ".join(content.strip().split("\n\n")[0].split())
    if len(text) <= max_length:
        return text
    cut = text[:max_length].rsplit(" ", 1)[0]
    return cut.rstrip(".,;:") + "..."


def extract_keywords(text: str, max_keywords: int = 10) -> List[str]:
    """Distinct words longer than four characters, in order of appearance."""
    words = _MARKDOWN.sub(" ", text).lower().split()
    keywords: List[str] = []
    for word in words:
        if len(word) > 4 and word not in _COMMON_WORDS and word not in keywords:
            keywords.append(word)
    return keywords[:max_keywords]
