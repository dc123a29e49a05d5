"""
Audit composition.

Runs the seven section scorers over one parsed document, combines their
sub-scores with a fixed weight table into a 0-100 overall score and letter
grade, and merges every component issue into one prioritized recommendation
list.
"""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Union

from .document import DEFAULT_MAX_BYTES, Document, parse_document
from .models import (
    CompletionResult,
    Component,
    Recommendation,
    SectionScore,
    TaskType,
    ValidationError,
)
from .scorers import SCORERS
from .variants import VariantOptions

logger = logging.getLogger(__name__)

COMPONENT_WEIGHTS: Mapping[Component, Decimal] = MappingProxyType({
    Component.METADATA: Decimal("0.20"),
    Component.CONTENT: Decimal("0.20"),
    Component.TECHNICAL: Decimal("0.15"),
    Component.MOBILE: Decimal("0.15"),
    Component.PERFORMANCE: Decimal("0.10"),
    Component.SECURITY: Decimal("0.10"),
    Component.ACCESSIBILITY: Decimal("0.10"),
})

# Minimum overall score for each grade, best first
GRADE_TABLE = (
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (50, "D"),
)
LOWEST_GRADE = "F"

# Metadata checks that make title/description suggestions worthwhile
TITLE_CHECKS = {"title_present", "title_length"}
DESCRIPTION_CHECKS = {"description_present", "description_length"}


class InternalError(Exception):
    """Raised when a scorer fails or an audit result violates its invariants."""
    pass


def validate_weights(weights: Mapping[Component, Decimal]) -> None:
    """
    Check a weight table covers every component and sums to exactly 1.

    Raises:
        ValueError: If the table is incomplete, negative or does not sum to 1.
    """
    missing = [c.value for c in Component if c not in weights]
    if missing:
        raise ValueError(f"Weight table missing components: {', '.join(missing)}")
    if any(_decimal(w) < 0 for w in weights.values()):
        raise ValueError("Weights must be non-negative")
    total = sum((_decimal(weights[c]) for c in Component), Decimal("0"))
    if total != Decimal("1"):
        raise ValueError(f"Weights must sum to 1.0, got {total}")


def _decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


validate_weights(COMPONENT_WEIGHTS)


def weighted_overall(
    scores: Mapping[Component, SectionScore],
    weights: Mapping[Component, Decimal] = COMPONENT_WEIGHTS,
) -> int:
    """round(sum(weight_i * score_i)) with exact decimal arithmetic, halves up."""
    total = sum(
        (_decimal(weights[c]) * Decimal(scores[c].score) for c in Component),
        Decimal("0"),
    )
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def grade_for(score: int) -> str:
    """Map an overall score to its letter grade."""
    for threshold, grade in GRADE_TABLE:
        if score >= threshold:
            return grade
    return LOWEST_GRADE


def prioritize(scores: Mapping[Component, SectionScore]) -> tuple[Recommendation, ...]:
    """
    Every component issue exactly once, ordered by severity, then component
    declaration order, then the order the scorer reported them.
    """
    recommendations = [
        Recommendation.from_issue(component, issue)
        for component in Component
        for issue in scores[component].issues
    ]
    recommendations.sort(key=lambda r: (r.severity.rank, r.component.order))
    return tuple(recommendations)


@dataclass(frozen=True)
class AuditResult:
    """
    Outcome of one audit.

    Construction enforces the composition invariants: one score per
    component, ``overall`` equal to the rounded weighted sum, ``grade`` from
    the grade table, and recommendations that are exactly the union of the
    component issues.
    """
    overall: int
    grade: str
    scores: Mapping[Component, SectionScore]
    recommendations: tuple[Recommendation, ...]
    timestamp: datetime
    url: Optional[str] = None
    suggestions: Mapping[str, CompletionResult] = field(default_factory=dict)
    weights: Mapping[Component, Decimal] = field(default_factory=lambda: COMPONENT_WEIGHTS, repr=False)

    def __post_init__(self) -> None:
        if set(self.scores) != set(Component):
            raise InternalError("Audit result must hold exactly one score per component")
        ordered = {c: self.scores[c] for c in Component}
        object.__setattr__(self, "scores", MappingProxyType(ordered))
        object.__setattr__(self, "suggestions", MappingProxyType(dict(self.suggestions)))
        object.__setattr__(self, "recommendations", tuple(self.recommendations))

        expected = weighted_overall(self.scores, self.weights)
        if self.overall != expected:
            raise InternalError(f"Overall score {self.overall} != weighted sum {expected}")
        if not 0 <= self.overall <= 100:
            raise InternalError(f"Overall score out of range: {self.overall}")
        if self.grade != grade_for(self.overall):
            raise InternalError(f"Grade {self.grade} does not match score {self.overall}")

        issues = Counter(
            (c, i.message, i.severity, i.check)
            for c, s in self.scores.items()
            for i in s.issues
        )
        listed = Counter((r.component, r.message, r.severity, r.check) for r in self.recommendations)
        if issues != listed:
            raise InternalError("Recommendations must be exactly the union of component issues")

    @property
    def issue_count(self) -> int:
        return len(self.recommendations)

    def to_dict(self, include_timestamp: bool = True) -> dict:
        data = {
            "overall": self.overall,
            "grade": self.grade,
            "url": self.url,
            "scores": {c.value: s.to_dict() for c, s in self.scores.items()},
            "recommendations": [r.to_dict() for r in self.recommendations],
            "suggestions": {k: v.to_dict() for k, v in sorted(self.suggestions.items())},
        }
        if include_timestamp:
            data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class AuditOptions:
    """
    Per-call audit options.

    Attributes:
        url: Source URL; used when the document is raw markup.
        timestamp: Fixed result timestamp (defaults to the composer's clock).
        concurrent: Run the scorers on a thread pool.
        suggest_variants: Attach title/description variants when the
            metadata scorer reports title or description issues.
        keywords: Target keywords for suggestions.
        user_id: Caller identity, passed through to the usage ledger.
    """
    url: Optional[str] = None
    timestamp: Optional[datetime] = None
    concurrent: bool = True
    suggest_variants: bool = False
    keywords: tuple[str, ...] = ()
    user_id: Optional[str] = None


class AuditComposer:
    """
    Runs the section scorers and composes an AuditResult.

    Args:
        weights: Component weight table; must sum to 1.
        clock: Timestamp source for results.
        max_workers: Thread pool size for the scorers.
        variant_generator: Optional generator for metadata suggestions.
        max_document_bytes: Size limit applied when parsing raw input.
    """

    def __init__(
        self,
        weights: Optional[Mapping[Component, Decimal]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_workers: int = len(Component),
        variant_generator=None,
        max_document_bytes: int = DEFAULT_MAX_BYTES,
    ):
        if weights is not None:
            validate_weights(weights)
            weights = MappingProxyType({c: _decimal(weights[c]) for c in Component})
        self.weights = weights or COMPONENT_WEIGHTS
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_workers = max_workers
        self.variant_generator = variant_generator
        self.max_document_bytes = max_document_bytes

    def run(
        self,
        document: Union[Document, str, bytes],
        options: Optional[AuditOptions] = None,
    ) -> AuditResult:
        """
        Audit one document.

        Args:
            document: A parsed Document, or raw markup/text to parse.
            options: Per-call options.

        Returns:
            AuditResult.

        Raises:
            ParseError: If raw input cannot be parsed.
            InternalError: If a scorer fails.
        """
        options = options or AuditOptions()
        if isinstance(document, Document):
            if options.url and not document.url:
                document = replace(document, url=options.url)
        else:
            document = parse_document(document, url=options.url, max_bytes=self.max_document_bytes)

        scores = self.score(document, concurrent=options.concurrent)
        overall = weighted_overall(scores, self.weights)
        suggestions = {}
        if options.suggest_variants and self.variant_generator is not None:
            suggestions = self._suggest(document, scores, options)

        result = AuditResult(
            overall=overall,
            grade=grade_for(overall),
            scores=scores,
            recommendations=prioritize(scores),
            timestamp=options.timestamp or self._clock(),
            url=document.url,
            suggestions=suggestions,
            weights=self.weights,
        )
        logger.info(
            f"Audit complete: {overall}/100 ({result.grade}), "
            f"{result.issue_count} recommendations"
        )
        return result

    def score(self, document: Document, concurrent: bool = True) -> dict[Component, SectionScore]:
        """Run every scorer; results are keyed in declaration order."""
        if not concurrent:
            return {c: self._run_scorer(c, document) for c in Component}

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {c: pool.submit(self._run_scorer, c, document) for c in Component}
            return {c: futures[c].result() for c in Component}

    def _run_scorer(self, component: Component, document: Document) -> SectionScore:
        try:
            result = SCORERS[component](document)
        except Exception as e:
            logger.error(f"{component.value} scorer failed: {e}")
            raise InternalError(f"{component.value} scorer failed: {e}") from e
        if result.component is not component:
            raise InternalError(f"{component.value} scorer returned {result.component.value}")
        return result

    def _suggest(
        self,
        document: Document,
        scores: Mapping[Component, SectionScore],
        options: AuditOptions,
    ) -> dict[str, CompletionResult]:
        failed = {issue.check for issue in scores[Component.METADATA].issues}
        payload = {
            "title": document.title or "",
            "content": document.text[:2000],
            "keywords": list(options.keywords),
        }
        if document.description:
            payload["excerpt"] = document.description

        wanted = []
        if failed & TITLE_CHECKS:
            wanted.append(("title", TaskType.TITLE_VARIANTS))
        if failed & DESCRIPTION_CHECKS:
            wanted.append(("description", TaskType.DESCRIPTION_VARIANTS))

        suggestions = {}
        for name, task in wanted:
            try:
                suggestions[name] = self.variant_generator.generate_variants(
                    task, payload, VariantOptions(user_id=options.user_id)
                )
            except ValidationError as e:
                logger.warning(f"Skipping {name} suggestions: {e}")
        return suggestions


def run_audit(
    document: Union[Document, str, bytes],
    options: Optional[AuditOptions] = None,
    composer: Optional[AuditComposer] = None,
) -> AuditResult:
    """
    Audit a pre-fetched document.

    Fails only with ParseError (unparseable input) or InternalError.
    """
    return (composer or AuditComposer()).run(document, options)
