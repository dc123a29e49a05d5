# -*- coding: utf-8 -*-
"""
Centralized configuration for the SEO intelligence core.

This module provides dataclasses that control provider selection, cache
policy, budget thresholds and variant generation. Policy tables live here as
module-level constants; ``Settings.from_env()`` builds a configuration from
environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


# Cache TTL policy per category (seconds).
# Keyword data changes slowly; metadata and content answers go stale faster.
CACHE_TTLS = {
    "meta": 24 * 60 * 60,
    "keywords": 7 * 24 * 60 * 60,
    "recommendations": 24 * 60 * 60,
    "content": 12 * 60 * 60,
    "general": 24 * 60 * 60,
}

# USD per million tokens (input, output)
PROVIDER_RATES = {
    "gemini": (0.0, 0.0),  # free tier
    "anthropic": (3.0, 15.0),
    "openai": (2.5, 10.0),
}

DEFAULT_PROVIDER_ORDER = ("gemini", "anthropic", "openai")

# Inputs larger than this are rejected at parse time
DEFAULT_MAX_BYTES = 5_000_000


@dataclass
class ProviderSettings:
    """
    Settings for a single completion provider.

    Attributes:
        name: Provider identifier ("gemini", "anthropic", "openai").
        api_key: Credential. The adapter reports unavailable without one.
        model: Model identifier sent to the backend.
        timeout: Per-call timeout in seconds.
        max_requests_per_minute: Local rate limit (free tiers only).
        base_url: Override for the REST endpoint (tests, proxies).
    """
    name: str
    api_key: Optional[str] = None
    model: str = ""
    timeout: float = 30.0
    max_requests_per_minute: Optional[int] = None
    base_url: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        """Check if the provider has a credential."""
        return bool(self.api_key)


@dataclass
class BudgetSettings:
    """Daily budget thresholds in USD."""
    warning: float = 50.0
    critical: float = 100.0

    def __post_init__(self) -> None:
        if self.warning > self.critical:
            raise ValueError("Warning threshold must not exceed the critical threshold")


@dataclass
class VariantSettings:
    """
    Variant generation policy.

    Attributes:
        default_count: Candidates requested when the caller gives no count.
        title_min / title_max: Ideal title length band; title_max is the hard cap.
        description_min / description_max: Same for meta descriptions.
    """
    default_count: int = 5
    title_min: int = 50
    title_max: int = 60
    description_min: int = 150
    description_max: int = 160

    def bounds_for(self, is_title: bool) -> tuple[int, int]:
        if is_title:
            return self.title_min, self.title_max
        return self.description_min, self.description_max


@dataclass
class Settings:
    """
    Top-level configuration.

    Attributes:
        providers: Provider settings in fixed priority order (primary free
            tier first, paid fallbacks after).
        budget: Daily budget thresholds for the usage ledger.
        variants: Variant generation policy.
        cache_ttls: TTL per cache category.
        max_document_bytes: Inputs larger than this are rejected at parse time.
        audit_workers: Thread pool size for the section scorers.
    """
    providers: list[ProviderSettings] = field(default_factory=list)
    budget: BudgetSettings = field(default_factory=BudgetSettings)
    variants: VariantSettings = field(default_factory=VariantSettings)
    cache_ttls: dict[str, int] = field(default_factory=lambda: dict(CACHE_TTLS))
    max_document_bytes: int = DEFAULT_MAX_BYTES
    audit_workers: int = 7

    @property
    def provider_order(self) -> list[str]:
        return [p.name for p in self.providers]

    @property
    def configured_providers(self) -> list[ProviderSettings]:
        """Providers that have credentials, in priority order."""
        return [p for p in self.providers if p.is_configured]

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Settings populated from the environment with policy defaults.
        """
        env = os.environ if environ is None else environ
        timeout = float(env.get("AI_PROVIDER_TIMEOUT", 30))

        known = {
            "gemini": ProviderSettings(
                name="gemini",
                api_key=env.get("GEMINI_API_KEY"),
                model=env.get("GEMINI_MODEL", "gemini-2.5-flash-lite"),
                timeout=timeout,
                max_requests_per_minute=int(env.get("GEMINI_MAX_REQUESTS_PER_MINUTE", 15)),
            ),
            "anthropic": ProviderSettings(
                name="anthropic",
                api_key=env.get("ANTHROPIC_API_KEY"),
                model=env.get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
                timeout=timeout,
            ),
            "openai": ProviderSettings(
                name="openai",
                api_key=env.get("OPENAI_API_KEY"),
                model=env.get("OPENAI_MODEL", "gpt-4o"),
                timeout=timeout,
            ),
        }

        order = parse_provider_order(env.get("AI_PROVIDER_ORDER"))
        providers = [known[name] for name in order]

        budget = BudgetSettings(
            warning=float(env.get("AI_DAILY_BUDGET_WARNING", 50.0)),
            critical=float(env.get("AI_DAILY_BUDGET_CRITICAL", 100.0)),
        )

        return cls(providers=providers, budget=budget)


def parse_provider_order(value: Optional[str]) -> list[str]:
    """
    Parse a comma-separated provider order.

    Unknown names are ignored; duplicates keep their first position. An empty
    or missing value yields the default order.
    """
    if not value:
        return list(DEFAULT_PROVIDER_ORDER)

    order: list[str] = []
    for raw in value.split(","):
        name = raw.strip().lower()
        if name == "claude":
            name = "anthropic"
        if name in DEFAULT_PROVIDER_ORDER and name not in order:
            order.append(name)

    return order or list(DEFAULT_PROVIDER_ORDER)
