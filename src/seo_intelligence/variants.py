"""
Variant generation for titles, meta descriptions and keywords.

The generator asks the orchestrator for all candidates in one call, then
re-validates each one locally: oversized candidates are truncated at a word
boundary (never dropped), every candidate gets a deterministic quality score,
and the list is ranked best first. When no provider can answer, a
deterministic template set is returned instead so callers never get an empty
result.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .analysis import (
    STOPWORDS,
    calculate_keyword_density,
    count_keyword,
    extract_top_words,
    first_keyword_position,
    split_sentences,
    tokenize,
)
from .config import VariantSettings
from .models import (
    CompletionRequest,
    CompletionResult,
    ScoredVariant,
    TaskType,
    parse_task,
)
from .orchestrator import AllProvidersUnavailable, CompletionOrchestrator

logger = logging.getLogger(__name__)

TEMPLATE_PROVIDER = "template"

POWER_WORDS_RE = re.compile(
    r"\b(best|top|guide|ultimate|essential|proven|complete|easy|expert|free|new|tips)\b",
    re.IGNORECASE,
)
ACTION_PHRASES_RE = re.compile(
    r"\b(learn more|learn how|discover|get started|find out|read more|explore|shop|"
    r"try|download|sign up|contact|book|see how|start|join|compare|get)\b",
    re.IGNORECASE,
)

# Keyword density band for descriptions, in percent of words
DESCRIPTION_DENSITY = (2.0, 10.0)

DEFAULT_FREE_TEXT_FALLBACK_CHARS = 500


@dataclass(frozen=True)
class VariantOptions:
    """
    Caller options for variant generation.

    Attributes:
        count: Number of candidates (1-10); defaults to the policy count.
        max_length: Hard length cap overriding the policy maximum.
        temperature: Sampling temperature passed to providers.
        user_id: Caller identity, passed through to the usage ledger.
    """
    count: Optional[int] = None
    max_length: Optional[int] = None
    temperature: float = 0.7
    user_id: Optional[str] = None


def truncate_at_word(text: str, limit: int) -> str:
    """
    Shorten text to at most ``limit`` characters, cutting at a word boundary.

    Falls back to a hard cut when the first word alone exceeds the limit.
    """
    text = text.strip()
    if len(text) <= limit:
        return text

    cut = text[:limit]
    if not text[limit].isspace():
        boundary = cut.rfind(" ")
        if boundary > 0:
            cut = cut[:boundary]
    return cut.rstrip(" ,;:-|").rstrip()


class VariantGenerator:
    """
    Produces ranked title/description variants and keyword suggestions.

    Args:
        orchestrator: Completion router used for the single provider call.
        settings: Variant policy (counts and length bounds).
    """

    def __init__(
        self,
        orchestrator: CompletionOrchestrator,
        settings: Optional[VariantSettings] = None,
    ):
        self.orchestrator = orchestrator
        self.settings = settings or VariantSettings()

    def generate_variants(
        self,
        task: Union[TaskType, str],
        payload: Mapping[str, Any],
        options: Optional[VariantOptions] = None,
    ) -> CompletionResult:
        """
        Generate candidates for a task.

        Args:
            task: Task type or its string value.
            payload: Text fields and optional ``keywords`` list.
            options: Count, length cap, temperature and caller identity.

        Returns:
            CompletionResult; for title/description tasks ``variants`` holds
            the scored candidates, best first.

        Raises:
            ValidationError: If the task or payload is malformed.
        """
        options = options or VariantOptions()
        task = parse_task(task)
        count = options.count or self.settings.default_count

        request = CompletionRequest(
            task=task,
            payload=payload,
            max_length=options.max_length,
            variant_count=count if task.is_variant_task else None,
            temperature=options.temperature,
        )

        try:
            result = self.orchestrator.complete(request, user_id=options.user_id)
        except AllProvidersUnavailable as e:
            logger.warning(f"Using template fallback for {task.value}: {e}")
            return self._fallback(request, count)

        if task in (TaskType.TITLE_VARIANTS, TaskType.DESCRIPTION_VARIANTS):
            variants = self.rank(request, result.candidates, count)
            if not variants:
                logger.warning(f"No usable {task.value} from {result.provider}, using templates")
                return self._fallback(request, count)
            return CompletionResult(
                candidates=tuple(v.text for v in variants),
                provider=result.provider,
                served_from_cache=result.served_from_cache,
                duration_seconds=result.duration_seconds,
                usage=result.usage,
                variants=tuple(variants),
            )

        if task is TaskType.FREE_TEXT and options.max_length:
            text = truncate_at_word(result.text, options.max_length)
            return CompletionResult(
                candidates=(text,),
                provider=result.provider,
                served_from_cache=result.served_from_cache,
                duration_seconds=result.duration_seconds,
                usage=result.usage,
            )

        if task is TaskType.KEYWORD_SUGGESTIONS:
            return CompletionResult(
                candidates=tuple(result.candidates[:count]),
                provider=result.provider,
                served_from_cache=result.served_from_cache,
                duration_seconds=result.duration_seconds,
                usage=result.usage,
            )

        return result

    def rank(
        self,
        request: CompletionRequest,
        candidates: tuple[str, ...],
        count: Optional[int] = None,
    ) -> list[ScoredVariant]:
        """
        Validate, truncate, score and sort candidates (best first, stable).

        Duplicates are judged on the final text: two oversized candidates that
        truncate to the same text collapse into the first one.
        """
        is_title = request.task is TaskType.TITLE_VARIANTS
        low, high = self.settings.bounds_for(is_title)
        if request.max_length:
            high = request.max_length
            low = min(low, high)

        seen = set()
        variants = []
        for candidate in candidates:
            text = " ".join((candidate or "").split())
            if not text:
                continue
            variant = self.score_variant(text, request.keywords, is_title, low, high)
            if variant.text.lower() in seen:
                logger.debug(f"Dropping duplicate candidate: {variant.text!r}")
                continue
            seen.add(variant.text.lower())
            variants.append(variant)

        variants.sort(key=lambda v: -v.score)
        return variants[:count] if count else variants

    def score_variant(
        self,
        text: str,
        keywords: list[str],
        is_title: bool,
        min_length: int,
        max_length: int,
    ) -> ScoredVariant:
        """
        Truncate a candidate to the hard maximum and score it 0-100.

        Titles: length fit 40, keyword presence 30, keyword position 15,
        number or power word 15. Descriptions: length fit 40, keyword
        presence 25, keyword density 15, action phrase 20.
        """
        original_length = len(text)
        truncated = original_length > max_length
        if truncated:
            text = truncate_at_word(text, max_length)
        length = len(text)

        primary = keywords[0] if keywords else None
        keyword_count = sum(count_keyword(k, text) for k in keywords)
        density = calculate_keyword_density(primary, text) if primary else 0.0

        score = _length_fit(length, min_length, max_length)
        if is_title:
            score += _keyword_presence(text, keywords, 30)
            score += _keyword_position(text, keywords)
            if re.search(r"\d", text) or POWER_WORDS_RE.search(text):
                score += 15
        else:
            score += _keyword_presence(text, keywords, 25)
            low, high = DESCRIPTION_DENSITY
            if low <= density <= high:
                score += 15
            if ACTION_PHRASES_RE.search(text):
                score += 20

        valid = min_length <= length <= max_length
        if truncated:
            warning = f"Truncated from {original_length} to {length} characters"
        elif length < min_length:
            warning = f"Shorter than the recommended {min_length} characters"
        else:
            warning = None

        return ScoredVariant(
            text=text,
            score=max(0, min(100, score)),
            length=length,
            keyword_count=keyword_count,
            keyword_density=density,
            truncated=truncated,
            original_length=original_length,
            valid=valid,
            warning=warning,
        )

    def _fallback(self, request: CompletionRequest, count: int) -> CompletionResult:
        task = request.task

        if task in (TaskType.TITLE_VARIANTS, TaskType.DESCRIPTION_VARIANTS):
            templates = (
                title_templates(request) if task is TaskType.TITLE_VARIANTS
                else description_templates(request)
            )
            variants = self.rank(request, tuple(templates), count)
            return CompletionResult(
                candidates=tuple(v.text for v in variants),
                provider=TEMPLATE_PROVIDER,
                variants=tuple(variants),
            )

        if task is TaskType.KEYWORD_SUGGESTIONS:
            return CompletionResult(
                candidates=tuple(keyword_fallback(request, count)),
                provider=TEMPLATE_PROVIDER,
            )

        limit = request.max_length or DEFAULT_FREE_TEXT_FALLBACK_CHARS
        source = _source_text(request)
        return CompletionResult(
            candidates=(truncate_at_word(source, limit),),
            provider=TEMPLATE_PROVIDER,
        )


def title_templates(request: CompletionRequest) -> list[str]:
    """Deterministic title candidates built from the payload."""
    base = request.text_field("title") or request.text_field("topic")
    keyword = _display_keyword(request) or base or _lead_words(request, 6)
    base = base or keyword
    brand = request.text_field("brand")

    templates = [
        base,
        f"{keyword}: The Complete Guide",
        f"{base} | {brand}" if brand else f"{base}: Everything You Need to Know",
        f"Top Tips for {keyword}",
        f"{keyword} Explained: Key Facts and Best Practices",
        f"The Essential Guide to {keyword}",
        f"{keyword}: Expert Advice and Practical Examples",
        f"How to Get Started with {keyword}",
        f"{keyword} Made Simple: A Step-by-Step Guide",
        f"Everything You Should Know About {keyword}",
    ]
    return [t for t in templates if t.strip()]


def description_templates(request: CompletionRequest) -> list[str]:
    """Deterministic meta description candidates built from the payload."""
    keyword = _display_keyword(request) or request.text_field("title") or _lead_words(request, 6)
    sentences = split_sentences(request.text_field("content") or request.text_field("text"))
    lead = f"{sentences[0]}." if sentences else ""
    excerpt = request.text_field("excerpt")

    templates = [
        excerpt,
        f"Learn everything about {keyword}. {lead} Discover practical tips and expert advice.",
        f"Discover {keyword} with our in-depth guide. {lead} Read more to get started today.",
        f"Looking for {keyword}? {lead} Find out what matters most and get started today.",
        f"Explore {keyword}: key insights, best practices and actionable tips you can use right away. Learn more now.",
        f"Get the facts on {keyword}, from the basics to advanced strategies, in one clear and practical guide. Read more.",
    ]
    return [" ".join(t.split()) for t in templates if t.strip()]


def keyword_fallback(request: CompletionRequest, count: int) -> list[str]:
    """Keyword suggestions from term frequency when no provider answers."""
    source = _source_text(request)
    suggestions = extract_top_words(source, count)
    if not suggestions:
        suggestions = [t for t in tokenize(source) if t not in STOPWORDS][:count]

    seen = {s.lower() for s in suggestions}
    for keyword in request.keywords:
        if len(suggestions) >= count:
            break
        if keyword.lower() not in seen:
            seen.add(keyword.lower())
            suggestions.append(keyword)

    return suggestions or request.keywords[:count] or tokenize(source)[:1] or [source.strip()]


def _source_text(request: CompletionRequest) -> str:
    parts = [
        request.text_field(name)
        for name in ("title", "excerpt", "content", "text", "topic", "category", "brand")
    ]
    return " ".join(p for p in parts if p) or " ".join(request.keywords)


def _display_keyword(request: CompletionRequest) -> str:
    keywords = request.keywords
    if not keywords:
        return ""
    return " ".join(w[:1].upper() + w[1:] for w in keywords[0].split())


def _lead_words(request: CompletionRequest, count: int) -> str:
    words = _source_text(request).split()[:count]
    return " ".join(words)


def _length_fit(length: int, min_length: int, max_length: int) -> int:
    if min_length <= length <= max_length:
        return 40
    distance = min_length - length if length < min_length else length - max_length
    return max(0, 40 - 2 * distance)


def _keyword_presence(text: str, keywords: list[str], points: int) -> int:
    if not keywords:
        return 0
    if count_keyword(keywords[0], text):
        return points
    if any(count_keyword(k, text) for k in keywords[1:]):
        return points // 2
    return 0


def _keyword_position(text: str, keywords: list[str]) -> int:
    position = first_keyword_position(text, keywords[:1])
    if position is None:
        return 0
    if position <= 20:
        return 15
    if position <= len(text) // 2:
        return 8
    return 0
