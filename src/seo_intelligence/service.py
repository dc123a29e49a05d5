"""
Service facade.

ContentIntelligence wires one cache store, one usage ledger, the ordered
adapter list, the orchestrator, the variant generator and the audit composer
into a single explicitly constructed object. The surrounding application
creates it once and passes it to whatever needs it.
"""

import logging
from typing import Any, Mapping, Optional, Union

from .audit import AuditComposer, AuditOptions, AuditResult
from .cache import CacheStore
from .config import Settings
from .document import Document
from .ledger import AlertListener, UsageLedger
from .llm_client import ProviderAdapter, build_adapters, provider_info
from .models import CompletionResult, TaskType
from .orchestrator import CompletionOrchestrator
from .variants import VariantGenerator, VariantOptions

logger = logging.getLogger(__name__)


class ContentIntelligence:
    """
    The two public operations plus usage reporting.

    Args:
        settings: Configuration; defaults to ``Settings.from_env()``.
        cache: Cache store to share; one is created if omitted.
        ledger: Usage ledger to share; one is created if omitted.
        adapters: Adapters in priority order; built from settings if omitted.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        cache: Optional[CacheStore] = None,
        ledger: Optional[UsageLedger] = None,
        adapters: Optional[list[ProviderAdapter]] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.cache = cache or CacheStore(ttls=self.settings.cache_ttls)
        self.ledger = ledger or UsageLedger(budget=self.settings.budget)
        self.adapters = build_adapters(self.settings) if adapters is None else list(adapters)
        self.orchestrator = CompletionOrchestrator(self.adapters, self.cache, self.ledger)
        self.generator = VariantGenerator(self.orchestrator, self.settings.variants)
        self.composer = AuditComposer(
            max_workers=self.settings.audit_workers,
            variant_generator=self.generator,
            max_document_bytes=self.settings.max_document_bytes,
        )

        if not self.adapters:
            logger.warning("No AI providers configured; variant generation will use templates")
        else:
            logger.info(f"AI providers: {', '.join(a.name for a in self.adapters)}")

    def run_audit(
        self,
        document: Union[Document, str, bytes],
        options: Optional[AuditOptions] = None,
    ) -> AuditResult:
        """Audit a pre-fetched document. Fails with ParseError or InternalError."""
        return self.composer.run(document, options)

    def generate_variants(
        self,
        task: Union[TaskType, str],
        payload: Mapping[str, Any],
        options: Optional[VariantOptions] = None,
    ) -> CompletionResult:
        """Generate ranked candidates. Fails only with ValidationError."""
        return self.generator.generate_variants(task, payload, options)

    def subscribe_alerts(self, listener: AlertListener) -> None:
        """Register a callback for daily budget threshold breaches."""
        self.ledger.subscribe(listener)

    def usage_dashboard(self, day=None) -> dict:
        """Cost overview for a day, with recent alerts."""
        dashboard = self.ledger.dashboard(day)
        dashboard["recent_alerts"] = [
            {
                "level": alert.level,
                "date": alert.date,
                "message": alert.message,
                "daily_cost": round(alert.daily_cost, 6),
            }
            for alert in self.ledger.recent_alerts()
        ]
        return dashboard

    def stats(self) -> dict:
        stats = self.orchestrator.stats()
        stats["providers"] = provider_info(self.adapters)
        return stats


def create_service(settings: Optional[Settings] = None) -> ContentIntelligence:
    """
    Factory function to create a configured service.

    Args:
        settings: Configuration; read from the environment when omitted.

    Returns:
        ContentIntelligence instance.
    """
    return ContentIntelligence(settings=settings)
