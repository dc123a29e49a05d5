"""
Section scorers for the seven audit components.

Each scorer is a pure function ``score_<component>(document) -> SectionScore``
built from fixed point checks. A passing check adds its points; a failing
check adds an issue whose severity comes from the check definition. Checks
whose input is absent (no URL, no title) are skipped: no points, no issue.
Checks that assert the absence of a problem pass when there is nothing to
inspect.

Point values are policy and sum to 100 per component.
"""

import re
from typing import Callable, Optional

from .analysis import average_sentence_length, shares_key_term
from .document import Document, json_ld_is_valid
from .models import Component, Issue, SectionScore, Severity

# Content word count bands
MIN_WORDS_FULL = 300
MIN_WORDS_PARTIAL = 150

TITLE_LENGTH = (30, 60)
DESCRIPTION_LENGTH = (120, 160)
SENTENCE_LENGTH = (10, 25)

# Images before this index are treated as above the fold
ABOVE_FOLD_IMAGES = 1
MAX_INLINE_SCRIPT_BYTES = 10 * 1024
MAX_EXTERNAL_SCRIPTS = 10
RESPONSIVE_IMAGE_RATIO = 0.5
ALT_PARTIAL_RATIO = 0.8

_HASHED_ASSET_RE = re.compile(r"[.\-_][0-9a-f]{8,}\.(js|css)$", re.IGNORECASE)


class _Checklist:
    """Accumulates points, passed check names and issues for one component."""

    def __init__(self, component: Component):
        self.component = component
        self.points = 0
        self.passed: list[str] = []
        self.issues: list[Issue] = []

    def ok(self, check: str, points: int) -> None:
        self.points += points
        self.passed.append(check)

    def fail(self, check: str, message: str, severity: Severity) -> None:
        self.issues.append(Issue(message=message, severity=severity, check=check))

    def partial(self, check: str, points: int, message: str, severity: Severity) -> None:
        self.points += points
        self.issues.append(Issue(message=message, severity=severity, check=check))

    def require(self, check: str, condition: bool, points: int, message: str, severity: Severity) -> None:
        if condition:
            self.ok(check, points)
        else:
            self.fail(check, message, severity)

    def result(self) -> SectionScore:
        return SectionScore(
            component=self.component,
            score=max(0, min(100, self.points)),
            passed=tuple(self.passed),
            issues=tuple(self.issues),
        )


def score_metadata(document: Document) -> SectionScore:
    """Title, description, social preview tags and canonical link."""
    checks = _Checklist(Component.METADATA)
    title = document.title
    description = document.description

    checks.require(
        "title_present", bool(title), 25,
        "Missing page title (<title> tag)", Severity.CRITICAL,
    )
    if title:
        low, high = TITLE_LENGTH
        checks.require(
            "title_length", low <= len(title) <= high, 15,
            f"Title is {len(title)} characters (recommended {low}-{high})",
            Severity.MEDIUM,
        )

    checks.require(
        "description_present", bool(description), 20,
        "Missing meta description", Severity.HIGH,
    )
    if description:
        low, high = DESCRIPTION_LENGTH
        checks.require(
            "description_length", low <= len(description) <= high, 10,
            f"Meta description is {len(description)} characters (recommended {low}-{high})",
            Severity.MEDIUM,
        )

    for prop in ("og:title", "og:description", "og:image"):
        checks.require(
            prop.replace(":", "_"), bool(document.meta_properties.get(prop)), 5,
            f"Missing Open Graph tag {prop}", Severity.LOW,
        )

    twitter_card = document.meta.get("twitter:card") or document.meta_properties.get("twitter:card")
    checks.require(
        "twitter_card", bool(twitter_card), 5,
        "Missing Twitter card tag (twitter:card)", Severity.LOW,
    )
    checks.require(
        "canonical", bool(document.canonical), 10,
        "Missing canonical link", Severity.MEDIUM,
    )

    return checks.result()


def score_content(document: Document) -> SectionScore:
    """Word count, heading hierarchy, internal links and title context."""
    checks = _Checklist(Component.CONTENT)
    words = document.word_count

    if words >= MIN_WORDS_FULL:
        checks.ok("word_count", 30)
    elif words >= MIN_WORDS_PARTIAL:
        checks.partial(
            "word_count", 15,
            f"Thin content: {words} words (recommended {MIN_WORDS_FULL}+)",
            Severity.MEDIUM,
        )
    else:
        checks.fail(
            "word_count",
            f"Very thin content: {words} words (recommended {MIN_WORDS_FULL}+)",
            Severity.HIGH,
        )

    h1_count = len(document.headings_at(1))
    if h1_count == 1:
        checks.ok("single_h1", 20)
    elif h1_count == 0:
        checks.fail("single_h1", "Missing H1 heading", Severity.HIGH)
    else:
        checks.fail("single_h1", f"Multiple H1 headings ({h1_count})", Severity.MEDIUM)

    skipped = _skipped_heading_levels(document)
    checks.require(
        "heading_hierarchy", not skipped, 10,
        f"Heading levels skipped: {', '.join(skipped)}", Severity.LOW,
    )
    checks.require(
        "subheadings", bool(document.headings_at(2)), 10,
        "No H2 subheadings to structure the content", Severity.LOW,
    )
    checks.require(
        "internal_links", bool(document.internal_links), 15,
        "No internal links to related pages", Severity.MEDIUM,
    )

    if not document.title:
        checks.fail(
            "title_context",
            "Content has no title context: page title is missing",
            Severity.MEDIUM,
        )
    else:
        h1_text = " ".join(h.text for h in document.headings_at(1))
        opening = " ".join(document.text.split()[:100])
        checks.require(
            "title_context",
            shares_key_term(document.title, h1_text) or shares_key_term(document.title, opening),
            10,
            "Title terms do not appear in the H1 or opening content",
            Severity.MEDIUM,
        )

    body = " ".join(document.paragraphs) or document.text
    avg = average_sentence_length(body)
    if avg is not None:
        low, high = SENTENCE_LENGTH
        checks.require(
            "sentence_length", low <= avg <= high, 5,
            f"Average sentence length is {avg:.1f} words (recommended {low}-{high})",
            Severity.INFO,
        )

    return checks.result()


def score_technical(document: Document) -> SectionScore:
    """Structured data, asset hygiene, resource hints and indexability."""
    checks = _Checklist(Component.TECHNICAL)

    checks.require(
        "structured_data", bool(document.json_ld) or document.has_microdata, 25,
        "No structured data (JSON-LD or microdata)", Severity.MEDIUM,
    )

    invalid = [block for block in document.json_ld if not json_ld_is_valid(block)]
    checks.require(
        "json_ld_valid", not invalid, 10,
        f"{len(invalid)} JSON-LD block(s) cannot be parsed", Severity.MEDIUM,
    )

    assets = [s.src for s in document.scripts if s.src] + list(document.stylesheets)
    unminified = [a for a in assets if not _is_minified(a)]
    checks.require(
        "minified_assets", not unminified, 15,
        f"{len(unminified)} script/stylesheet reference(s) are not minified",
        Severity.LOW,
    )

    checks.require(
        "resource_hints", bool(document.resource_hints), 15,
        "No resource hints (preconnect, dns-prefetch, preload)", Severity.LOW,
    )
    checks.require(
        "html_lang", bool(document.lang), 10,
        "Missing lang attribute on <html>", Severity.MEDIUM,
    )
    checks.require(
        "charset", bool(document.charset), 10,
        "Missing character encoding declaration", Severity.LOW,
    )

    robots = (document.robots or "").lower()
    checks.require(
        "indexable", "noindex" not in robots and "none" not in robots.split(","), 15,
        "Page is blocked from indexing by a robots meta tag", Severity.HIGH,
    )

    return checks.result()


def score_mobile(document: Document) -> SectionScore:
    """Viewport configuration, responsive images and media queries."""
    checks = _Checklist(Component.MOBILE)
    viewport = document.viewport

    checks.require(
        "viewport", bool(viewport), 40,
        "Missing viewport meta tag", Severity.CRITICAL,
    )
    if viewport:
        settings = _viewport_settings(viewport)
        checks.require(
            "device_width", settings.get("width") == "device-width", 15,
            "Viewport does not use width=device-width", Severity.MEDIUM,
        )
        checks.require(
            "zoom_enabled", not _zoom_disabled(settings), 10,
            "Viewport disables zooming", Severity.MEDIUM,
        )

    images = [img for img in document.images if img.src]
    responsive = sum(1 for img in images if img.is_responsive)
    checks.require(
        "responsive_images",
        not images or responsive / len(images) >= RESPONSIVE_IMAGE_RATIO,
        20,
        f"Only {responsive} of {len(images)} images use srcset, sizes or <picture>",
        Severity.LOW,
    )

    if "@media" in document.inline_styles:
        checks.ok("media_queries", 15)
    elif not document.stylesheets:
        checks.fail("media_queries", "No responsive CSS media queries found", Severity.LOW)

    return checks.result()


def score_performance(document: Document) -> SectionScore:
    """Static performance proxies: lazy loading, script weight and blocking."""
    checks = _Checklist(Component.PERFORMANCE)

    below_fold = [img for img in document.images[ABOVE_FOLD_IMAGES:] if img.src]
    eager = [img for img in below_fold if img.loading != "lazy"]
    checks.require(
        "lazy_loading", not eager, 30,
        f"{len(eager)} of {len(below_fold)} below-fold images lack loading=\"lazy\"",
        Severity.MEDIUM,
    )

    inline_bytes = sum(
        s.inline_size for s in document.scripts if not s.src and s.is_executable
    )
    checks.require(
        "inline_script_size", inline_bytes <= MAX_INLINE_SCRIPT_BYTES, 20,
        f"Inline scripts total {inline_bytes / 1024:.1f} KB (recommended 10 KB or less)",
        Severity.MEDIUM,
    )

    blocking = [
        s for s in document.scripts
        if s.src and s.in_head and s.is_executable
        and not (s.is_async or s.is_defer or s.is_module)
    ]
    checks.require(
        "render_blocking_scripts", not blocking, 20,
        f"{len(blocking)} render-blocking script(s) in <head>", Severity.MEDIUM,
    )

    unsized = [img for img in document.images if img.src and not (img.width and img.height)]
    checks.require(
        "image_dimensions", not unsized, 15,
        f"{len(unsized)} image(s) missing width/height attributes", Severity.LOW,
    )

    external = [s for s in document.scripts if s.src]
    checks.require(
        "external_scripts", len(external) <= MAX_EXTERNAL_SCRIPTS, 15,
        f"{len(external)} external scripts (recommended {MAX_EXTERNAL_SCRIPTS} or fewer)",
        Severity.LOW,
    )

    return checks.result()


def score_security(document: Document) -> SectionScore:
    """Transport security, mixed content and unsafe link targets."""
    checks = _Checklist(Component.SECURITY)

    if document.scheme is not None:
        checks.require(
            "https", document.scheme == "https", 40,
            "Page is not served over HTTPS", Severity.CRITICAL,
        )

    insecure = [u for u in document.subresource_urls if u.lower().startswith("http://")]
    checks.require(
        "mixed_content", not insecure, 30,
        f"{len(insecure)} resource(s) loaded over insecure HTTP", Severity.HIGH,
    )

    unsafe = [
        link for link in document.links
        if (link.target or "").lower() == "_blank"
        and not {"noopener", "noreferrer"} & set(link.rel)
    ]
    checks.require(
        "noopener", not unsafe, 15,
        f"{len(unsafe)} link(s) open a new tab without rel=\"noopener\"",
        Severity.LOW,
    )

    insecure_forms = [a for a in document.form_actions if a.lower().startswith("http://")]
    checks.require(
        "secure_forms", not insecure_forms, 15,
        f"{len(insecure_forms)} form(s) submit over insecure HTTP", Severity.HIGH,
    )

    return checks.result()


def score_accessibility(document: Document) -> SectionScore:
    """Alt text, form labels, accessible names, language and landmarks."""
    checks = _Checklist(Component.ACCESSIBILITY)

    images = document.images
    with_alt = sum(1 for img in images if img.alt is not None)
    coverage = with_alt / len(images) if images else 1.0
    missing = len(images) - with_alt
    if coverage == 1.0:
        checks.ok("alt_text", 30)
    elif coverage >= ALT_PARTIAL_RATIO:
        checks.partial(
            "alt_text", 15,
            f"{missing} of {len(images)} images missing alt text", Severity.MEDIUM,
        )
    else:
        checks.fail(
            "alt_text",
            f"{missing} of {len(images)} images missing alt text", Severity.HIGH,
        )

    unlabelled = [c for c in document.form_controls if not c.labelled]
    checks.require(
        "form_labels", not unlabelled, 25,
        f"{len(unlabelled)} form control(s) without an associated label",
        Severity.HIGH,
    )

    unnamed = [el for el in document.interactive if not el.accessible_name]
    checks.require(
        "accessible_names", not unnamed, 20,
        f"{len(unnamed)} button(s)/link(s) without text or aria-label",
        Severity.MEDIUM,
    )
    checks.require(
        "html_lang", bool(document.lang), 15,
        "Missing lang attribute on <html> for screen readers", Severity.MEDIUM,
    )
    checks.require(
        "landmarks", "main" in document.landmarks, 10,
        "No <main> landmark region", Severity.LOW,
    )

    return checks.result()


SCORERS: dict[Component, Callable[[Document], SectionScore]] = {
    Component.METADATA: score_metadata,
    Component.CONTENT: score_content,
    Component.TECHNICAL: score_technical,
    Component.MOBILE: score_mobile,
    Component.PERFORMANCE: score_performance,
    Component.SECURITY: score_security,
    Component.ACCESSIBILITY: score_accessibility,
}


def _skipped_heading_levels(document: Document) -> list[str]:
    skipped = []
    previous: Optional[int] = None
    for heading in document.headings:
        if previous is not None and heading.level > previous + 1:
            skipped.append(f"H{previous} to H{heading.level}")
        previous = heading.level
    return skipped


def _is_minified(url: str) -> bool:
    path = url.split("?", 1)[0].split("#", 1)[0]
    return ".min." in path.lower() or bool(_HASHED_ASSET_RE.search(path))


def _viewport_settings(viewport: str) -> dict[str, str]:
    settings = {}
    for part in re.split(r"[,;]", viewport):
        if "=" in part:
            key, value = part.split("=", 1)
            settings[key.strip().lower()] = value.strip().lower()
    return settings


def _zoom_disabled(settings: dict[str, str]) -> bool:
    if settings.get("user-scalable") in ("no", "0"):
        return True
    try:
        return float(settings.get("maximum-scale", "5")) <= 1.0
    except ValueError:
        return False
