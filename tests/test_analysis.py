"""Tests for text analysis helpers."""

import pytest

from seo_intelligence.analysis import (
    analyze_keyword_usage,
    average_sentence_length,
    calculate_keyword_density,
    count_keyword,
    extract_key_terms,
    extract_top_words,
    first_keyword_position,
    generate_slug,
    is_optimal_slug,
    shares_key_term,
)


class TestExtractKeyTerms:
    """Tests for extract_key_terms."""

    def test_filters_stopwords_and_counts(self):
        """Test that stopwords are dropped and terms counted."""
        text = "The coffee is great. Coffee beans and coffee grinders."
        terms = dict(extract_key_terms(text))

        assert terms["coffee"] == 3
        assert "the" not in terms
        assert "and" not in terms

    def test_respects_top_n(self):
        """Test that at most top_n terms are returned."""
        text = "alpha beta gamma delta epsilon zeta"
        assert len(extract_key_terms(text, top_n=3)) == 3


class TestExtractTopWords:
    """Tests for extract_top_words."""

    def test_only_words_longer_than_four(self):
        """Test that short words are ignored."""
        text = "Brewing coffee: brewing tips, brewing gear, coffee beans and milk."
        words = extract_top_words(text, 3)

        assert words[0] == "brewing"
        assert "coffee" in words
        assert "milk" not in words
        assert "tips" not in words

    def test_empty_text(self):
        """Test that empty text yields no words."""
        assert extract_top_words("") == []


class TestKeywordCounting:
    """Tests for count_keyword and calculate_keyword_density."""

    def test_counts_case_insensitive_whole_phrase(self):
        """Test phrase matching ignores case and respects word boundaries."""
        text = "Cold brew is easy. COLD BREW at home. Coldbrew is different."
        assert count_keyword("cold brew", text) == 2

    def test_density_percentage(self):
        """Test density = occurrences * phrase words / total words * 100."""
        text = " ".join(["word"] * 98 + ["cold", "brew"])
        assert calculate_keyword_density("cold brew", text) == 2.0

    def test_density_of_empty_text(self):
        """Test density of empty text is zero."""
        assert calculate_keyword_density("coffee", "") == 0.0

    def test_analyze_keyword_usage(self):
        """Test per-keyword usage stats."""
        text = "coffee " * 2 + "filler " * 98
        usage = analyze_keyword_usage(text, ["coffee", "tea", "  "])

        assert [u.keyword for u in usage] == ["coffee", "tea"]
        assert usage[0].occurrences == 2
        assert usage[0].is_optimal
        assert not usage[1].is_optimal

    def test_first_keyword_position(self):
        """Test earliest keyword offset."""
        assert first_keyword_position("Best cold brew guide", ["cold brew"]) == 5
        assert first_keyword_position("Nothing here", ["cold brew"]) is None


class TestSentencesAndTerms:
    """Tests for sentence statistics and term overlap."""

    def test_average_sentence_length(self):
        """Test words per sentence."""
        assert average_sentence_length("One two three. Four five six seven eight!") == 4.0
        assert average_sentence_length("") is None

    def test_shares_key_term(self):
        """Test stopwords do not count as shared terms."""
        assert shares_key_term("Coffee Brewing Guide", "The art of brewing")
        assert not shares_key_term("The Guide", "the end")


class TestGenerateSlug:
    """Tests for generate_slug."""

    def test_basic_slug(self):
        """Test lowercase hyphenated slug without special characters."""
        assert generate_slug("  10 Best Cold-Brew Tips (2026)!  ") == "10-best-cold-brew-tips-2026"

    def test_collapses_separators(self):
        """Test repeated spaces and hyphens collapse."""
        assert generate_slug("Coffee -- and   Tea") == "coffee-and-tea"

    def test_limits_length(self):
        """Test slugs are capped at 100 characters."""
        slug = generate_slug("word " * 50)
        assert len(slug) <= 100
        assert not slug.endswith("-")

    def test_requires_title(self):
        """Test that an empty title raises ValueError."""
        with pytest.raises(ValueError):
            generate_slug("   ")

    def test_optimal_length(self):
        """Test optimal slug length bounds."""
        assert is_optimal_slug("cold-brew")
        assert not is_optimal_slug("ab")
