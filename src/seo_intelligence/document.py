"""
Document parsing for audits.

This module turns pre-fetched page markup (or raw text) into an immutable
Document with every field the section scorers inspect. Parsing happens once
per audit; the scorers never touch markup themselves.

Fetching remote pages is out of scope: callers hand in the markup.
"""

import json
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from .config import DEFAULT_MAX_BYTES


class ParseError(Exception):
    """Raised when an input document cannot be parsed."""
    pass


RESOURCE_HINT_RELS = {"preconnect", "dns-prefetch", "preload", "prefetch", "modulepreload", "prerender"}
LANDMARK_TAGS = {"main", "nav", "header", "footer", "aside"}
LANDMARK_ROLES = {"main", "navigation", "banner", "contentinfo", "complementary", "search"}
LABELLABLE_INPUT_TYPES_EXCLUDED = {"hidden", "submit", "button", "reset", "image"}

_TAG_RE = re.compile(r"<\s*/?\s*[a-zA-Z!][^>]*>")


@dataclass(frozen=True)
class Heading:
    """A heading element."""
    level: int
    text: str


@dataclass(frozen=True)
class ImageRef:
    """An <img> element. ``alt`` is None when the attribute is missing."""
    src: str
    alt: Optional[str] = None
    loading: Optional[str] = None
    srcset: Optional[str] = None
    sizes: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    in_picture: bool = False

    @property
    def is_responsive(self) -> bool:
        return bool(self.srcset or self.sizes or self.in_picture)


@dataclass(frozen=True)
class LinkRef:
    """An <a href> element."""
    href: str
    text: str = ""
    rel: tuple[str, ...] = ()
    target: Optional[str] = None
    internal: bool = False
    aria_label: Optional[str] = None


@dataclass(frozen=True)
class ScriptRef:
    """A <script> element (external or inline)."""
    src: Optional[str] = None
    inline_size: int = 0
    is_async: bool = False
    is_defer: bool = False
    in_head: bool = False
    type: Optional[str] = None

    @property
    def is_module(self) -> bool:
        return self.type == "module"

    @property
    def is_executable(self) -> bool:
        """JSON-LD and other data blocks are not executed."""
        return self.type in (None, "", "text/javascript", "application/javascript", "module")


@dataclass(frozen=True)
class FormControl:
    """An input/select/textarea that needs an accessible label."""
    tag: str
    control_type: str = ""
    labelled: bool = False


@dataclass(frozen=True)
class InteractiveElement:
    """A button or link and its accessible name."""
    tag: str
    accessible_name: str = ""


@dataclass(frozen=True)
class Document:
    """
    Parsed, immutable view of one page.

    Attributes mirror what the section scorers check. Optional scalars are
    None when the page does not declare them.
    """
    raw: str
    url: Optional[str] = None
    is_html: bool = True
    title: Optional[str] = None
    lang: Optional[str] = None
    charset: Optional[str] = None
    meta: Mapping[str, str] = field(default_factory=dict, hash=False)
    meta_properties: Mapping[str, str] = field(default_factory=dict, hash=False)
    canonical: Optional[str] = None
    headings: tuple[Heading, ...] = ()
    paragraphs: tuple[str, ...] = ()
    text: str = ""
    images: tuple[ImageRef, ...] = ()
    links: tuple[LinkRef, ...] = ()
    scripts: tuple[ScriptRef, ...] = ()
    stylesheets: tuple[str, ...] = ()
    resource_hints: tuple[str, ...] = ()
    json_ld: tuple[str, ...] = ()
    has_microdata: bool = False
    inline_styles: str = ""
    form_controls: tuple[FormControl, ...] = ()
    form_actions: tuple[str, ...] = ()
    interactive: tuple[InteractiveElement, ...] = ()
    iframes: tuple[str, ...] = ()
    landmarks: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))
        object.__setattr__(self, "meta_properties", MappingProxyType(dict(self.meta_properties)))

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def description(self) -> Optional[str]:
        return self.meta.get("description")

    @property
    def viewport(self) -> Optional[str]:
        return self.meta.get("viewport")

    @property
    def robots(self) -> Optional[str]:
        return self.meta.get("robots")

    @property
    def scheme(self) -> Optional[str]:
        return urlparse(self.url).scheme.lower() if self.url else None

    def headings_at(self, level: int) -> list[Heading]:
        return [h for h in self.headings if h.level == level]

    @property
    def internal_links(self) -> list[LinkRef]:
        return [link for link in self.links if link.internal]

    @property
    def subresource_urls(self) -> list[str]:
        """URLs the browser loads to render the page."""
        urls = [img.src for img in self.images if img.src]
        urls += [s.src for s in self.scripts if s.src]
        urls += list(self.stylesheets)
        urls += list(self.iframes)
        return urls


def parse_document(
    raw: Union[str, bytes],
    url: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> Document:
    """
    Parse page markup or raw text into a Document.

    Args:
        raw: HTML markup or plain text (str, or UTF-8 bytes).
        url: Source URL of the page, if known.
        max_bytes: Inputs larger than this are rejected.

    Returns:
        Parsed Document.

    Raises:
        ParseError: If the input is not text, is empty, is too large, or the
            URL is not an http(s) URL.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Document is not valid UTF-8: {e}") from e
    if not isinstance(raw, str):
        raise ParseError(f"Document must be str or bytes, got {type(raw).__name__}")
    if not raw.strip():
        raise ParseError("Document is empty")
    if len(raw.encode("utf-8")) > max_bytes:
        raise ParseError(f"Document exceeds {max_bytes} bytes")

    if url is not None:
        url = url.strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ParseError("URL must be a valid HTTP or HTTPS URL")

    if not _TAG_RE.search(raw):
        return _parse_plain_text(raw, url)

    try:
        soup = BeautifulSoup(raw, "html.parser")
    except Exception as e:
        raise ParseError(f"Markup could not be parsed: {e}") from e

    return _parse_html(raw, soup, url)


def _parse_plain_text(raw: str, url: Optional[str]) -> Document:
    paragraphs = tuple(
        _normalize(block) for block in re.split(r"\n\s*\n", raw) if block.strip()
    )
    return Document(
        raw=raw,
        url=url,
        is_html=False,
        paragraphs=paragraphs,
        text=" ".join(paragraphs),
    )


def _parse_html(raw: str, soup: BeautifulSoup, url: Optional[str]) -> Document:
    html_tag = soup.find("html")

    title = None
    if soup.title and soup.title.string:
        title = _normalize(soup.title.string) or None

    meta: dict[str, str] = {}
    meta_properties: dict[str, str] = {}
    charset = None
    for tag in soup.find_all("meta"):
        if tag.get("charset"):
            charset = tag["charset"].strip()
        content = _normalize(tag.get("content") or "")
        name = (tag.get("name") or "").strip().lower()
        prop = (tag.get("property") or "").strip().lower()
        http_equiv = (tag.get("http-equiv") or "").strip().lower()
        if name and name not in meta:
            meta[name] = content
        if prop and prop not in meta_properties:
            meta_properties[prop] = content
        if http_equiv == "content-type" and "charset=" in content.lower() and not charset:
            charset = content.lower().split("charset=")[-1].strip()

    canonical = None
    stylesheets: list[str] = []
    hints: list[str] = []
    for link in soup.find_all("link"):
        rels = {r.lower() for r in _as_list(link.get("rel"))}
        href = (link.get("href") or "").strip()
        if "canonical" in rels and href and canonical is None:
            canonical = href
        if "stylesheet" in rels and href:
            stylesheets.append(href)
        if rels & RESOURCE_HINT_RELS:
            hints.append(href)

    headings = tuple(
        Heading(level=int(tag.name[1]), text=_normalize(tag.get_text(" ")))
        for tag in soup.find_all(re.compile(r"^h[1-6]$"))
    )

    scripts: list[ScriptRef] = []
    json_ld: list[str] = []
    for tag in soup.find_all("script"):
        script_type = (tag.get("type") or "").strip().lower() or None
        body = tag.string or tag.get_text() or ""
        if script_type == "application/ld+json":
            json_ld.append(body.strip())
        scripts.append(ScriptRef(
            src=(tag.get("src") or "").strip() or None,
            inline_size=0 if tag.get("src") else len(body.encode("utf-8")),
            is_async=tag.has_attr("async"),
            is_defer=tag.has_attr("defer"),
            in_head=tag.find_parent("head") is not None,
            type=script_type,
        ))

    inline_styles = "\n".join(tag.get_text() for tag in soup.find_all("style"))

    images = tuple(
        ImageRef(
            src=(img.get("src") or "").strip(),
            alt=img.get("alt"),
            loading=(img.get("loading") or "").strip().lower() or None,
            srcset=img.get("srcset"),
            sizes=img.get("sizes"),
            width=img.get("width"),
            height=img.get("height"),
            in_picture=img.find_parent("picture") is not None,
        )
        for img in soup.find_all("img")
    )

    links = tuple(_link_ref(a, url) for a in soup.find_all("a", href=True))

    form_controls = tuple(_form_controls(soup))
    form_actions = tuple(
        (form.get("action") or "").strip() for form in soup.find_all("form")
    )
    interactive = tuple(_interactive(soup))
    iframes = tuple((f.get("src") or "").strip() for f in soup.find_all("iframe") if f.get("src"))

    landmarks = sorted(
        {tag.name for tag in soup.find_all(sorted(LANDMARK_TAGS))}
        | {
            tag["role"].strip().lower()
            for tag in soup.find_all(attrs={"role": True})
            if tag["role"].strip().lower() in LANDMARK_ROLES
        }
    )

    for tag in soup.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()

    body = soup.body or soup
    paragraphs = tuple(
        text for text in (_normalize(p.get_text(" ")) for p in body.find_all(["p", "li"]))
        if text
    )
    text = _normalize(body.get_text(" "))

    return Document(
        raw=raw,
        url=url,
        is_html=True,
        title=title,
        lang=((html_tag.get("lang") or "").strip() or None) if isinstance(html_tag, Tag) else None,
        charset=charset,
        meta=meta,
        meta_properties=meta_properties,
        canonical=canonical,
        headings=headings,
        paragraphs=paragraphs,
        text=text,
        images=images,
        links=links,
        scripts=tuple(scripts),
        stylesheets=tuple(stylesheets),
        resource_hints=tuple(hints),
        json_ld=tuple(json_ld),
        has_microdata=soup.find(attrs={"itemscope": True}) is not None,
        inline_styles=inline_styles,
        form_controls=form_controls,
        form_actions=form_actions,
        interactive=interactive,
        iframes=iframes,
        landmarks=tuple(landmarks),
    )


def _link_ref(anchor: Tag, page_url: Optional[str]) -> LinkRef:
    href = anchor["href"].strip()
    return LinkRef(
        href=href,
        text=_normalize(anchor.get_text(" ")),
        rel=tuple(r.lower() for r in _as_list(anchor.get("rel"))),
        target=anchor.get("target"),
        internal=is_internal_link(href, page_url),
        aria_label=anchor.get("aria-label"),
    )


def is_internal_link(href: str, page_url: Optional[str]) -> bool:
    """
    Check if a link points within the same site.

    Relative links are internal; absolute links are internal when their host
    matches the page's host. Fragment-only, mailto:, tel: and javascript:
    links are never internal references.
    """
    if not href or href.startswith("#"):
        return False
    parsed = urlparse(href)
    if parsed.scheme and parsed.scheme not in ("http", "https"):
        return False
    if not parsed.netloc:
        return True
    if not page_url:
        return False
    page_host = urlparse(page_url).netloc.lower()
    target_host = urlparse(urljoin(page_url, href)).netloc.lower()
    return _strip_www(page_host) == _strip_www(target_host)


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def _form_controls(soup: BeautifulSoup) -> list[FormControl]:
    label_targets = {
        (label.get("for") or "").strip()
        for label in soup.find_all("label")
        if label.get("for")
    }
    controls = []
    for tag in soup.find_all(["input", "select", "textarea"]):
        control_type = (tag.get("type") or "").strip().lower()
        if tag.name == "input" and control_type in LABELLABLE_INPUT_TYPES_EXCLUDED:
            continue
        control_id = (tag.get("id") or "").strip() or None
        labelled = bool(
            (control_id and control_id in label_targets)
            or tag.find_parent("label") is not None
            or (tag.get("aria-label") or "").strip()
            or (tag.get("aria-labelledby") or "").strip()
            or (tag.get("title") or "").strip()
        )
        controls.append(FormControl(
            tag=tag.name,
            control_type=control_type,
            labelled=labelled,
        ))
    return controls


def _interactive(soup: BeautifulSoup) -> list[InteractiveElement]:
    elements = []
    for tag in soup.find_all(["button", "a"]):
        if tag.name == "a" and not tag.get("href"):
            continue
        name = (
            _normalize(tag.get_text(" "))
            or (tag.get("aria-label") or "").strip()
            or (tag.get("title") or "").strip()
            or " ".join(
                (img.get("alt") or "").strip() for img in tag.find_all("img")
            ).strip()
        )
        if not name and tag.get("aria-labelledby"):
            name = tag["aria-labelledby"].strip()
        elements.append(InteractiveElement(tag=tag.name, accessible_name=name))
    return elements


def _as_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def json_ld_is_valid(block: str) -> bool:
    """Check if a JSON-LD block parses as JSON."""
    try:
        json.loads(block)
    except ValueError:
        return False
    return True
