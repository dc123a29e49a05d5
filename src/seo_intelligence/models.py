"""
Data models for the SEO intelligence core.

This module defines the value objects shared by the audit scorers, the
completion orchestrator and the variant generator. Request-scoped values are
frozen dataclasses holding tuples so that nothing can be mutated after it is
produced.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class ValidationError(Exception):
    """Raised when a completion request is malformed."""
    pass


class Severity(Enum):
    """Issue severity, most urgent first."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort rank (0 = most urgent)."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
    Severity.INFO,
]


class Component(Enum):
    """Audit components in declaration order."""
    METADATA = "metadata"
    CONTENT = "content"
    TECHNICAL = "technical"
    MOBILE = "mobile"
    PERFORMANCE = "performance"
    SECURITY = "security"
    ACCESSIBILITY = "accessibility"

    @property
    def order(self) -> int:
        """Position in the fixed declaration order."""
        return list(Component).index(self)


@dataclass(frozen=True)
class Issue:
    """A single failed check."""
    message: str
    severity: Severity
    check: str = ""

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "severity": self.severity.value,
            "check": self.check,
        }


@dataclass(frozen=True)
class SectionScore:
    """Result of one section scorer."""
    component: Component
    score: int
    passed: tuple[str, ...] = ()
    issues: tuple[Issue, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 100:
            raise ValueError(
                f"{self.component.value} score must be within 0-100, got {self.score}"
            )

    def to_dict(self) -> dict:
        return {
            "component": self.component.value,
            "score": self.score,
            "passed": list(self.passed),
            "issues": [issue.to_dict() for issue in self.issues],
        }


@dataclass(frozen=True)
class Recommendation:
    """An issue lifted into the audit-wide prioritized list."""
    component: Component
    message: str
    severity: Severity
    check: str = ""

    @classmethod
    def from_issue(cls, component: Component, issue: Issue) -> "Recommendation":
        return cls(
            component=component,
            message=issue.message,
            severity=issue.severity,
            check=issue.check,
        )

    def to_dict(self) -> dict:
        return {
            "component": self.component.value,
            "message": self.message,
            "severity": self.severity.value,
            "check": self.check,
        }


class TaskType(Enum):
    """Completion task kinds."""
    TITLE_VARIANTS = "title-variants"
    DESCRIPTION_VARIANTS = "description-variants"
    KEYWORD_SUGGESTIONS = "keyword-suggestions"
    FREE_TEXT = "free-text"

    @property
    def cache_category(self) -> str:
        """Cache category whose TTL applies to this task."""
        return _TASK_CATEGORIES[self]

    @property
    def is_variant_task(self) -> bool:
        """Check if the task produces multiple candidate strings."""
        return self in (
            TaskType.TITLE_VARIANTS,
            TaskType.DESCRIPTION_VARIANTS,
            TaskType.KEYWORD_SUGGESTIONS,
        )


_TASK_CATEGORIES = {
    TaskType.TITLE_VARIANTS: "meta",
    TaskType.DESCRIPTION_VARIANTS: "meta",
    TaskType.KEYWORD_SUGGESTIONS: "keywords",
    TaskType.FREE_TEXT: "content",
}

# Payload fields a completion request may carry
PAYLOAD_TEXT_FIELDS = ("title", "content", "excerpt", "text", "topic", "category", "brand")

MAX_VARIANT_COUNT = 10


def parse_task(task: Any) -> TaskType:
    """Coerce a task identifier into a TaskType."""
    if isinstance(task, TaskType):
        return task
    try:
        return TaskType(str(task).strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in TaskType)
        raise ValidationError(f"Unknown task type {task!r}; expected one of: {valid}")


@dataclass(frozen=True)
class CompletionRequest:
    """
    A request for AI completions.

    Attributes:
        task: Kind of completion.
        payload: Text fields relevant to the task (title, content, excerpt,
            text, topic, category, brand) plus an optional ``keywords`` list.
        max_length: Optional hard length bound for each candidate.
        variant_count: Number of candidates for variant tasks.
        temperature: Sampling temperature passed to providers.
    """
    task: TaskType
    payload: Mapping[str, Any]
    max_length: Optional[int] = None
    variant_count: Optional[int] = None
    temperature: float = 0.7

    def __post_init__(self) -> None:
        object.__setattr__(self, "task", parse_task(self.task))

        if not isinstance(self.payload, Mapping):
            raise ValidationError("Payload must be a mapping of text fields")

        bad_keys = [k for k in self.payload if not isinstance(k, str)]
        if bad_keys:
            raise ValidationError(f"Payload keys must be strings, got {bad_keys[0]!r}")
        try:
            json.dumps(dict(self.payload), sort_keys=True, default=str)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Payload must be JSON-serializable: {e}")

        for key in PAYLOAD_TEXT_FIELDS:
            value = self.payload.get(key)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"Payload field '{key}' must be a string")

        keywords = self.payload.get("keywords", [])
        if not isinstance(keywords, (list, tuple)) or not all(
            isinstance(k, str) for k in keywords
        ):
            raise ValidationError("Payload field 'keywords' must be a list of strings")

        if not any((self.payload.get(key) or "").strip() for key in PAYLOAD_TEXT_FIELDS) \
                and not any(k.strip() for k in keywords):
            raise ValidationError("Payload has no text to work from")

        if self.max_length is not None and (
            not isinstance(self.max_length, int) or self.max_length <= 0
        ):
            raise ValidationError("max_length must be a positive integer")

        if self.variant_count is not None and (
            not isinstance(self.variant_count, int)
            or not 1 <= self.variant_count <= MAX_VARIANT_COUNT
        ):
            raise ValidationError(
                f"variant_count must be between 1 and {MAX_VARIANT_COUNT}"
            )

        try:
            temperature = float(self.temperature)
        except (TypeError, ValueError):
            raise ValidationError(f"temperature must be a number, got {self.temperature!r}")
        if not 0.0 <= temperature <= 2.0:
            raise ValidationError("temperature must be between 0 and 2")
        object.__setattr__(self, "temperature", temperature)

    @property
    def keywords(self) -> list[str]:
        """Non-empty keywords in request order."""
        return [k.strip() for k in self.payload.get("keywords", []) if k.strip()]

    def text_field(self, name: str) -> str:
        return (self.payload.get(name) or "").strip()

    def cache_material(self) -> dict:
        """Canonical-key source: everything that changes the provider's answer."""
        return {
            "task": self.task.value,
            "payload": dict(self.payload),
            "params": {
                "max_length": self.max_length,
                "variant_count": self.variant_count,
                "temperature": self.temperature,
            },
        }


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported (or estimated) for one provider call."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ScoredVariant:
    """A validated and scored candidate."""
    text: str
    score: int
    length: int
    keyword_count: int = 0
    keyword_density: float = 0.0
    truncated: bool = False
    original_length: int = 0
    valid: bool = True
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "score": self.score,
            "length": self.length,
            "keyword_count": self.keyword_count,
            "keyword_density": self.keyword_density,
            "truncated": self.truncated,
            "original_length": self.original_length,
            "valid": self.valid,
            "warning": self.warning,
        }


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of one completion call."""
    candidates: tuple[str, ...]
    provider: str
    served_from_cache: bool = False
    duration_seconds: float = 0.0
    usage: Optional[TokenUsage] = None
    variants: tuple[ScoredVariant, ...] = ()

    @property
    def text(self) -> str:
        """Single-string form for non-variant tasks."""
        return self.candidates[0] if self.candidates else ""

    def to_dict(self) -> dict:
        return {
            "candidates": list(self.candidates),
            "provider": self.provider,
            "served_from_cache": self.served_from_cache,
            "duration_seconds": self.duration_seconds,
            "variants": [v.to_dict() for v in self.variants],
        }


@dataclass(frozen=True)
class UsageRecord:
    """One uncached provider call as seen by the ledger."""
    provider: str
    input_tokens: int
    output_tokens: int
    cost: float
    timestamp: datetime
    user_id: Optional[str] = None

    @property
    def day(self) -> str:
        return self.timestamp.strftime("%Y-%m-%d")

    @property
    def month(self) -> str:
        return self.timestamp.strftime("%Y-%m")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class ProviderUsage:
    """Aggregated counters for one provider (or the total)."""
    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, record: UsageRecord) -> None:
        self.requests += 1
        self.input_tokens += record.input_tokens
        self.output_tokens += record.output_tokens
        self.cost += record.cost


@dataclass
class UsageTotals:
    """Per-provider and overall usage for a day or month."""
    period: str
    per_provider: dict[str, ProviderUsage] = field(default_factory=dict)
    total: ProviderUsage = field(default_factory=ProviderUsage)


@dataclass(frozen=True)
class BudgetAlert:
    """A daily budget threshold breach."""
    level: str
    date: str
    daily_cost: float
    threshold: float
    message: str
    timestamp: datetime
