"""
Fallback-aware completion router.

The orchestrator checks the cache, then walks the configured adapters in
fixed priority order, one at a time, until one succeeds. Successful calls are
metered in the usage ledger and written back to the cache. Trying the next
adapter is the only resilience mechanism: there are no retries inside an
adapter and no parallel speculative calls.
"""

import json
import logging
import threading
import time
from typing import Optional

from .cache import CacheStore
from .ledger import LedgerWriteFailure, UsageLedger, estimate_cost
from .llm_client import ProviderAdapter, ProviderError
from .models import CompletionRequest, CompletionResult, TokenUsage

logger = logging.getLogger(__name__)


class AllProvidersUnavailable(Exception):
    """Raised when no adapter could serve a request."""

    def __init__(self, failures: list[tuple[str, str]], permanent: bool = False):
        self.failures = list(failures)
        self.permanent = permanent
        if failures:
            detail = "; ".join(f"{name}: {reason}" for name, reason in failures)
        else:
            detail = "no adapters configured"
        super().__init__(f"All AI providers failed: {detail}")


class CompletionOrchestrator:
    """
    Routes completion requests across provider adapters.

    Args:
        adapters: Adapters in priority order (primary free tier first).
        cache: Shared cache store.
        ledger: Shared usage ledger.
    """

    def __init__(
        self,
        adapters: list[ProviderAdapter],
        cache: Optional[CacheStore] = None,
        ledger: Optional[UsageLedger] = None,
    ):
        self.adapters = list(adapters)
        self.cache = cache or CacheStore()
        self.ledger = ledger or UsageLedger()
        self.preferred = self.adapters[0].name if self.adapters else None
        self._stats = {
            "total_requests": 0,
            "cache_hits": 0,
            "failed_requests": 0,
            "fallbacks_used": 0,
        }
        self._provider_usage: dict[str, int] = {}
        self._lock = threading.Lock()

    def complete(
        self,
        request: CompletionRequest,
        user_id: Optional[str] = None,
    ) -> CompletionResult:
        """
        Serve a request from cache or the first adapter that succeeds.

        Args:
            request: Validated completion request.
            user_id: Caller identity, passed through to the ledger.

        Returns:
            CompletionResult with the originating provider.

        Raises:
            AllProvidersUnavailable: If every adapter was skipped or failed, or
                one failed permanently.
        """
        start = time.perf_counter()
        category = request.task.cache_category
        key = self.cache.key_for(category, request.cache_material())

        cached = self.cache.get(category, key)
        if cached is not None:
            result = _decode_cached(cached, time.perf_counter() - start)
            if result is not None:
                self._count("cache_hits")
                return result

        failures: list[tuple[str, str]] = []
        for adapter in self.adapters:
            if not adapter.is_available():
                failures.append((adapter.name, "unavailable"))
                continue

            try:
                result = adapter.complete(request)
            except ProviderError as e:
                failures.append((adapter.name, e.reason))
                self._record_usage(adapter.name, e.usage, user_id)
                if not e.is_transient:
                    logger.error(f"{adapter.name} failed permanently: {e.reason}")
                    self._count("failed_requests")
                    raise AllProvidersUnavailable(failures, permanent=True) from e
                logger.warning(f"{adapter.name} failed, trying next provider: {e.reason}")
                continue

            self._record_usage(adapter.name, result.usage, user_id)
            self.cache.set(category, key, _encode_result(result))
            self._track_success(adapter.name)

            return CompletionResult(
                candidates=result.candidates,
                provider=result.provider,
                served_from_cache=False,
                duration_seconds=time.perf_counter() - start,
                usage=result.usage,
            )

        self._count("failed_requests")
        logger.error(
            "All AI providers failed: "
            + ("; ".join(f"{n}: {r}" for n, r in failures) or "no adapters configured")
        )
        raise AllProvidersUnavailable(failures)

    def is_available(self) -> bool:
        """Check if any adapter can currently serve requests."""
        return any(adapter.is_available() for adapter in self.adapters)

    def stats(self) -> dict:
        with self._lock:
            stats = dict(self._stats)
            stats["provider_usage"] = dict(self._provider_usage)
        stats["preferred_provider"] = self.preferred
        stats["cache"] = self.cache.stats()
        return stats

    def _record_usage(self, provider: str, usage: Optional[TokenUsage], user_id: Optional[str]) -> None:
        if usage is None:
            return
        try:
            self.ledger.record(
                provider,
                usage.input_tokens,
                usage.output_tokens,
                estimate_cost(provider, usage.input_tokens, usage.output_tokens, self.ledger.rates),
                user_id=user_id,
            )
        except LedgerWriteFailure as e:
            logger.error(f"Usage ledger write failed for {provider}: {e}")

    def _track_success(self, provider: str) -> None:
        with self._lock:
            self._stats["total_requests"] += 1
            self._provider_usage[provider] = self._provider_usage.get(provider, 0) + 1
            if provider != self.preferred:
                self._stats["fallbacks_used"] += 1

    def _count(self, counter: str) -> None:
        with self._lock:
            self._stats[counter] += 1


def _encode_result(result: CompletionResult) -> bytes:
    return json.dumps(
        {"candidates": list(result.candidates), "provider": result.provider}
    ).encode("utf-8")


def _decode_cached(raw: bytes, elapsed: float) -> Optional[CompletionResult]:
    try:
        data = json.loads(raw.decode("utf-8"))
        candidates = tuple(str(c) for c in data["candidates"])
        provider = str(data["provider"])
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring malformed cached completion: {e}")
        return None

    return CompletionResult(
        candidates=candidates,
        provider=provider,
        served_from_cache=True,
        duration_seconds=elapsed,
    )
