"""
Text analysis helpers.

This module provides the small deterministic text measurements shared by the
section scorers and the variant generator:
- Key term and top word extraction
- Keyword occurrence and density
- Sentence statistics
- Slug generation
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional

# Common English stopwords
STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "must", "shall", "can", "this",
    "that", "these", "those", "it", "its", "you", "your", "we", "our",
    "they", "their", "he", "she", "him", "her", "his", "my", "i", "me",
    "as", "if", "when", "where", "why", "how", "what", "which", "who",
    "all", "each", "every", "both", "few", "more", "most", "other",
    "some", "such", "no", "not", "only", "own", "same", "so", "than",
    "too", "very", "just", "also", "now", "here", "there", "then",
    "about", "into", "through", "over", "after", "before", "under",
    "again", "further", "once", "while", "because", "until", "against",
    "between", "during", "above", "below", "them",
})

# Optimal keyword density band, as a percentage of words
OPTIMAL_DENSITY_MIN = 1.0
OPTIMAL_DENSITY_MAX = 3.0

SLUG_MAX_LENGTH = 100


@dataclass(frozen=True)
class KeywordUsage:
    """Occurrence statistics for one keyword in a text."""
    keyword: str
    occurrences: int
    density: float

    @property
    def is_optimal(self) -> bool:
        return OPTIMAL_DENSITY_MIN <= self.density <= OPTIMAL_DENSITY_MAX


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens (letters, digits, apostrophes)."""
    return re.findall(r"[a-z0-9']+", (text or "").lower())


def extract_key_terms(text: str, top_n: int = 20) -> list[tuple[str, int]]:
    """
    Extract key terms from text based on frequency.

    Simple approach: count word frequencies, filter stopwords.

    Args:
        text: Text to analyze.
        top_n: Number of top terms to return.

    Returns:
        List of (term, count) tuples sorted by frequency, then first
        appearance.
    """
    words = re.findall(r"\b[a-z]{3,}\b", (text or "").lower())
    filtered = [w for w in words if w not in STOPWORDS]

    return Counter(filtered).most_common(top_n)


def extract_top_words(text: str, count: int = 5) -> list[str]:
    """
    Most frequent content words longer than four characters.

    Used as the keyword-suggestion fallback when no provider is reachable.
    """
    words = [
        w for w in re.findall(r"\b[a-z]+\b", (text or "").lower())
        if len(w) > 4 and w not in STOPWORDS
    ]
    return [word for word, _ in Counter(words).most_common(count)]


def count_keyword(phrase: str, text: str) -> int:
    """Case-insensitive occurrences of a phrase on word boundaries."""
    phrase = (phrase or "").strip()
    if not phrase or not text:
        return 0
    pattern = re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", re.IGNORECASE)
    return len(pattern.findall(text))


def calculate_keyword_density(phrase: str, text: str) -> float:
    """
    Calculate keyword density as percentage.

    Args:
        phrase: Keyword phrase.
        text: Text to analyze.

    Returns:
        Keyword density as percentage (0-100).
    """
    total_words = len((text or "").split())
    if total_words == 0:
        return 0.0

    phrase_words = len(phrase.split())
    occurrences = count_keyword(phrase, text)

    # Density = (occurrences * phrase_word_count / total_words) * 100
    density = (occurrences * phrase_words / total_words) * 100

    return round(min(density, 100.0), 2)


def analyze_keyword_usage(text: str, keywords: list[str]) -> list[KeywordUsage]:
    """Occurrences and density for each keyword, in keyword order."""
    return [
        KeywordUsage(
            keyword=keyword,
            occurrences=count_keyword(keyword, text),
            density=calculate_keyword_density(keyword, text),
        )
        for keyword in keywords
        if keyword.strip()
    ]


def first_keyword_position(text: str, keywords: list[str]) -> Optional[int]:
    """Character offset of the earliest keyword match, or None."""
    positions = []
    for keyword in keywords:
        match = re.search(
            r"(?<!\w)" + re.escape(keyword.strip()) + r"(?!\w)", text or "", re.IGNORECASE
        )
        if keyword.strip() and match:
            positions.append(match.start())
    return min(positions) if positions else None


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in re.split(r"[.!?]+", text or "") if s.strip()]


def average_sentence_length(text: str) -> Optional[float]:
    """Average words per sentence, or None for text without sentences."""
    sentences = split_sentences(text)
    if not sentences:
        return None
    return sum(len(s.split()) for s in sentences) / len(sentences)


def shares_key_term(left: str, right: str) -> bool:
    """Check if two texts have at least one non-stopword term in common."""
    left_terms = {t for t in tokenize(left) if len(t) > 2 and t not in STOPWORDS}
    right_terms = {t for t in tokenize(right) if len(t) > 2 and t not in STOPWORDS}
    return bool(left_terms & right_terms)


def generate_slug(title: str) -> str:
    """
    Generate an SEO-friendly URL slug.

    Args:
        title: Page or article title.

    Returns:
        Lowercase, hyphen-separated slug of at most 100 characters.

    Raises:
        ValueError: If the title is empty.
    """
    if not title or not title.strip():
        raise ValueError("Title is required for slug generation")

    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)[:SLUG_MAX_LENGTH]

    return slug.strip("-")


def is_optimal_slug(slug: str) -> bool:
    return 3 <= len(slug) <= 75
