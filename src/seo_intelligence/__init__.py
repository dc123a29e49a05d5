"""
SEO Intelligence Core

Content intelligence for SEO tooling:
- Deterministic 7-component page audits with a weighted score, letter grade
  and prioritized recommendations
- Fallback-aware multi-provider AI completions with response caching and
  estimated cost metering
- Ranked title and meta description variants with template fallback
"""

__version__ = "1.0.0"
__author__ = "SEO Intelligence Team"

from .config import BudgetSettings, ProviderSettings, Settings, VariantSettings

from .models import (
    BudgetAlert,
    CompletionRequest,
    CompletionResult,
    Component,
    Issue,
    Recommendation,
    ScoredVariant,
    SectionScore,
    Severity,
    TaskType,
    TokenUsage,
    UsageRecord,
    ValidationError,
)

from .document import Document, ParseError, parse_document

from .scorers import SCORERS

from .audit import (
    COMPONENT_WEIGHTS,
    AuditComposer,
    AuditOptions,
    AuditResult,
    InternalError,
    grade_for,
    run_audit,
)

from .cache import CacheStore, CacheUnavailable, MemoryCacheBackend, canonical_key

from .ledger import LedgerWriteFailure, UsageLedger, estimate_cost

from .llm_client import (
    AnthropicAdapter,
    GeminiAdapter,
    OpenAIAdapter,
    ProviderAdapter,
    ProviderError,
    build_adapters,
)

from .orchestrator import AllProvidersUnavailable, CompletionOrchestrator

from .variants import VariantGenerator, VariantOptions

from .service import ContentIntelligence, create_service

__all__ = [
    # Version
    "__version__",
    # Config
    "Settings",
    "ProviderSettings",
    "BudgetSettings",
    "VariantSettings",
    # Models
    "Severity",
    "Component",
    "Issue",
    "SectionScore",
    "Recommendation",
    "TaskType",
    "CompletionRequest",
    "CompletionResult",
    "ScoredVariant",
    "TokenUsage",
    "UsageRecord",
    "BudgetAlert",
    "ValidationError",
    # Audit
    "Document",
    "ParseError",
    "parse_document",
    "SCORERS",
    "COMPONENT_WEIGHTS",
    "AuditComposer",
    "AuditOptions",
    "AuditResult",
    "InternalError",
    "grade_for",
    "run_audit",
    # Completions
    "CacheStore",
    "CacheUnavailable",
    "MemoryCacheBackend",
    "canonical_key",
    "UsageLedger",
    "LedgerWriteFailure",
    "estimate_cost",
    "ProviderAdapter",
    "ProviderError",
    "GeminiAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "build_adapters",
    "CompletionOrchestrator",
    "AllProvidersUnavailable",
    "VariantGenerator",
    "VariantOptions",
    # Service
    "ContentIntelligence",
    "create_service",
]
