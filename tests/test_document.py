"""Tests for document parsing."""

from dataclasses import replace

import pytest

from seo_intelligence import config
from seo_intelligence.document import (
    DEFAULT_MAX_BYTES,
    ParseError,
    is_internal_link,
    json_ld_is_valid,
    parse_document,
)


class TestParseDocumentErrors:
    """Tests for inputs that cannot be parsed."""

    def test_rejects_empty_input(self):
        """Test that whitespace-only input raises ParseError."""
        with pytest.raises(ParseError):
            parse_document("   \n  ")

    def test_rejects_non_text_input(self):
        """Test that non-string input raises ParseError."""
        with pytest.raises(ParseError):
            parse_document(12345)

    def test_rejects_invalid_utf8_bytes(self):
        """Test that undecodable bytes raise ParseError."""
        with pytest.raises(ParseError):
            parse_document(b"\xff\xfe<html>\xc3\x28</html>")

    def test_rejects_oversize_input(self):
        """Test that inputs above the size limit raise ParseError."""
        with pytest.raises(ParseError):
            parse_document("<p>" + "a" * 200 + "</p>", max_bytes=100)

    def test_rejects_non_http_url(self):
        """Test that a non-HTTP URL raises ParseError."""
        with pytest.raises(ParseError):
            parse_document("<p>Hello</p>", url="ftp://example.com/file")


class TestParseHtml:
    """Tests for HTML field extraction."""

    def test_extracts_metadata(self, good_html):
        """Test title, description, Open Graph and canonical extraction."""
        doc = parse_document(good_html)

        assert doc.is_html
        assert doc.title == "SEO Best Practices - Comprehensive Optimization Example"
        assert doc.description.startswith("This is a comprehensive SEO test page")
        assert doc.meta_properties["og:title"] == "SEO Test Page"
        assert doc.meta["twitter:card"] == "summary_large_image"
        assert doc.canonical == "https://example.com/test-page"
        assert doc.lang == "en"
        assert doc.charset == "UTF-8"
        assert doc.viewport.startswith("width=device-width")

    def test_extracts_headings_in_order(self, good_html):
        """Test that headings keep document order and level."""
        doc = parse_document(good_html)

        assert doc.headings[0].level == 1
        assert doc.headings[0].text == "Main Heading - SEO Best Practices"
        assert len(doc.headings_at(2)) == 5

    def test_extracts_images(self, good_html):
        """Test image descriptor extraction."""
        doc = parse_document(good_html)

        assert len(doc.images) == 2
        assert doc.images[0].alt == "Hero image showing SEO best practices"
        assert doc.images[0].loading is None
        assert doc.images[1].loading == "lazy"
        assert all(img.is_responsive for img in doc.images)

    def test_missing_alt_is_none(self, poor_html):
        """Test that a missing alt attribute is distinguished from an empty one."""
        doc = parse_document(poor_html)
        assert doc.images[0].alt is None

        decorative = parse_document('<img src="line.png" alt="">')
        assert decorative.images[0].alt == ""

    def test_classifies_links(self, good_html):
        """Test internal/external link classification."""
        doc = parse_document(good_html, url="https://example.com/test-page")

        internal = {link.href for link in doc.internal_links}
        assert "/" in internal
        assert "/guides/mobile-seo" in internal
        assert "https://example.com/external-resource" in internal

        external = [link for link in doc.links if link.target == "_blank"][0]
        assert "noopener" in external.rel

    def test_extracts_scripts(self, good_html, poor_html):
        """Test script classification."""
        good = parse_document(good_html)
        json_ld = [s for s in good.scripts if s.type == "application/ld+json"][0]
        assert not json_ld.is_executable
        assert json_ld.in_head
        app = [s for s in good.scripts if s.src == "app.min.js"][0]
        assert app.is_defer
        assert not app.in_head

        poor = parse_document(poor_html)
        assert poor.scripts[0].in_head
        assert poor.scripts[0].src == "http://example.com/script.js"

    def test_extracts_structured_data_and_styles(self, good_html):
        """Test JSON-LD and inline style extraction."""
        doc = parse_document(good_html)

        assert len(doc.json_ld) == 1
        assert json_ld_is_valid(doc.json_ld[0])
        assert "@media" in doc.inline_styles
        assert doc.stylesheets == ("styles.min.css",)
        assert doc.resource_hints == ("//cdn.example.com",)

    def test_form_controls_and_landmarks(self, good_html, poor_html):
        """Test label association and landmark detection."""
        good = parse_document(good_html)
        assert len(good.form_controls) == 1
        assert good.form_controls[0].labelled
        assert "main" in good.landmarks
        assert good.form_actions == ("https://example.com/submit",)

        poor = parse_document(poor_html)
        assert not poor.form_controls[0].labelled
        assert poor.landmarks == ()

    def test_body_text_excludes_scripts(self, good_html):
        """Test that script and style content is not counted as text."""
        doc = parse_document(good_html)

        assert "@context" not in doc.text
        assert "font-size" not in doc.text
        assert doc.word_count >= 300

    def test_accepts_utf8_bytes(self):
        """Test that UTF-8 bytes are decoded."""
        doc = parse_document("<title>Café guide</title><p>Hi</p>".encode("utf-8"))
        assert doc.title == "Café guide"


class TestParsePlainText:
    """Tests for raw text input."""

    def test_plain_text_paragraphs(self):
        """Test that text without markup is split into paragraphs."""
        doc = parse_document("First paragraph here.\n\nSecond paragraph here.")

        assert not doc.is_html
        assert doc.paragraphs == ("First paragraph here.", "Second paragraph here.")
        assert doc.word_count == 6
        assert doc.title is None


class TestIsInternalLink:
    """Tests for is_internal_link."""

    def test_relative_links_are_internal(self):
        """Test relative paths count as internal."""
        assert is_internal_link("/about", None)
        assert is_internal_link("contact.html", "https://example.com/")

    def test_same_host_is_internal(self):
        """Test absolute links on the same host (ignoring www)."""
        assert is_internal_link("https://www.example.com/a", "https://example.com/b")

    def test_other_links_are_not_internal(self):
        """Test external, fragment and mailto links."""
        assert not is_internal_link("https://other.com/", "https://example.com/")
        assert not is_internal_link("#section", "https://example.com/")
        assert not is_internal_link("mailto:hi@example.com", "https://example.com/")
        assert not is_internal_link("https://example.com/", None)


class TestDocumentImmutability:
    """Tests for the read-only Document."""

    def test_meta_mappings_are_read_only(self, good_html):
        """Test meta tags cannot be changed after parsing."""
        doc = parse_document(good_html)

        with pytest.raises(TypeError):
            doc.meta["description"] = "changed"
        with pytest.raises(TypeError):
            doc.meta_properties["og:title"] = "changed"

    def test_document_is_hashable(self, good_html):
        """Test parsed documents can be hashed and compared."""
        first = parse_document(good_html)
        second = parse_document(good_html)

        assert first == second
        assert hash(first) == hash(second)

    def test_replace_keeps_meta(self, good_html):
        """Test copying a document with a new URL keeps its meta tags."""
        doc = replace(parse_document(good_html), url="https://example.com/")

        assert doc.meta["twitter:card"] == "summary_large_image"
        assert doc.url == "https://example.com/"

    def test_default_size_limit_comes_from_config(self):
        """Test parsing and settings share one size limit."""
        assert DEFAULT_MAX_BYTES == config.DEFAULT_MAX_BYTES
        assert config.Settings().max_document_bytes == DEFAULT_MAX_BYTES
