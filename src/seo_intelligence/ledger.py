"""
Usage ledger for provider calls.

Keeps append-only usage records with per-day and per-month aggregates,
estimates cost from a fixed per-provider rate table, and raises budget alerts
when the daily total crosses the warning or critical threshold.

Alerts are edge-triggered: a threshold fires once when the day's cost moves
from below it to at-or-above it, never again for the same day.
"""

import logging
import math
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Union

from .config import PROVIDER_RATES, BudgetSettings
from .models import BudgetAlert, ProviderUsage, UsageRecord, UsageTotals

logger = logging.getLogger(__name__)

DAILY_RETENTION_DAYS = 90
MONTHLY_RETENTION_DAYS = 365

AlertListener = Callable[[BudgetAlert], None]


class LedgerWriteFailure(Exception):
    """Raised when a usage record cannot be written."""
    pass


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def estimate_cost(
    provider: str,
    input_tokens: int,
    output_tokens: int,
    rates: Optional[dict[str, tuple[float, float]]] = None,
) -> float:
    """
    Estimate the USD cost of a call.

    Args:
        provider: Provider identifier.
        input_tokens: Prompt tokens.
        output_tokens: Completion tokens.
        rates: Rate table (USD per million tokens); defaults to PROVIDER_RATES.

    Returns:
        Estimated cost. Unknown providers cost 0.
    """
    table = PROVIDER_RATES if rates is None else rates
    pricing = table.get(provider)
    if pricing is None:
        logger.warning(f"Unknown provider: {provider}, cost estimate is 0")
        return 0.0

    input_rate, output_rate = pricing
    return (input_tokens / 1_000_000) * input_rate + (output_tokens / 1_000_000) * output_rate


def _day_key(value: Union[date, datetime, str, None], now: datetime) -> str:
    if value is None:
        return now.strftime("%Y-%m-%d")
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)


def _month_key(value: Union[date, datetime, str, None], now: datetime) -> str:
    if value is None:
        return now.strftime("%Y-%m")
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m")
    return str(value)[:7]


class UsageLedger:
    """
    Process-wide usage counters.

    All mutation happens under a single lock; reads aggregate lazily from the
    per-day and per-month tallies.
    """

    def __init__(
        self,
        budget: Optional[BudgetSettings] = None,
        rates: Optional[dict[str, tuple[float, float]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.budget = budget or BudgetSettings()
        self.rates = dict(PROVIDER_RATES if rates is None else rates)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._records: list[UsageRecord] = []
        self._daily: dict[str, dict[str, ProviderUsage]] = {}
        self._monthly: dict[str, dict[str, ProviderUsage]] = {}
        self._fired: set[tuple[str, str]] = set()
        self._alerts: list[BudgetAlert] = []
        self._listeners: list[AlertListener] = []

    def subscribe(self, listener: AlertListener) -> None:
        """Register a callback for threshold-breach events."""
        with self._lock:
            self._listeners.append(listener)

    def record(
        self,
        provider: str,
        input_tokens: int,
        output_tokens: int,
        cost: Optional[float] = None,
        user_id: Optional[str] = None,
    ) -> UsageRecord:
        """
        Append one usage record.

        Args:
            provider: Provider identifier.
            input_tokens: Estimated prompt tokens.
            output_tokens: Estimated completion tokens.
            cost: Estimated cost; computed from the rate table when None.
            user_id: Caller identity, for attribution only.

        Returns:
            The stored UsageRecord.

        Raises:
            LedgerWriteFailure: If the counts are invalid.
        """
        if input_tokens < 0 or output_tokens < 0:
            raise LedgerWriteFailure(
                f"Token counts must be non-negative (got {input_tokens}/{output_tokens})"
            )
        if cost is None:
            cost = estimate_cost(provider, input_tokens, output_tokens, self.rates)
        if cost < 0:
            raise LedgerWriteFailure(f"Cost must be non-negative (got {cost})")

        record = UsageRecord(
            provider=provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
            timestamp=self._clock(),
            user_id=user_id,
        )

        with self._lock:
            before = self._day_cost(record.day)
            self._records.append(record)
            self._daily.setdefault(record.day, {}).setdefault(provider, ProviderUsage()).add(record)
            self._monthly.setdefault(record.month, {}).setdefault(provider, ProviderUsage()).add(record)
            after = self._day_cost(record.day)
            alerts = self._crossed(record.day, before, after)
            self._alerts.extend(alerts)
            listeners = list(self._listeners)

        logger.debug(
            f"AI cost tracked: {provider} - {record.total_tokens} tokens - ${cost:.4f}"
        )
        for alert in alerts:
            self._emit(alert, listeners)

        return record

    def daily_total(self, day: Union[date, datetime, str, None] = None) -> UsageTotals:
        """Usage for one day (defaults to today)."""
        key = _day_key(day, self._clock())
        with self._lock:
            return _totals(key, self._daily.get(key, {}))

    def monthly_total(self, month: Union[date, datetime, str, None] = None) -> UsageTotals:
        """Usage for one month, keyed ``YYYY-MM`` (defaults to this month)."""
        key = _month_key(month, self._clock())
        with self._lock:
            return _totals(key, self._monthly.get(key, {}))

    def records(self, day: Union[date, datetime, str, None] = None) -> list[UsageRecord]:
        """All records, or those of one day."""
        with self._lock:
            if day is None:
                return list(self._records)
            key = _day_key(day, self._clock())
            return [r for r in self._records if r.day == key]

    def per_user(self, day: Union[date, datetime, str, None] = None) -> dict[str, ProviderUsage]:
        """Usage attributed to each caller identity for one day."""
        result: dict[str, ProviderUsage] = {}
        for record in self.records(day if day is not None else self._clock()):
            result.setdefault(record.user_id or "anonymous", ProviderUsage()).add(record)
        return result

    def check_thresholds(self, day: Union[date, datetime, str, None] = None) -> list[BudgetAlert]:
        """
        List thresholds currently breached by the day's total.

        Unlike the events emitted from ``record``, this is a level check and
        reports every breached threshold on each call.
        """
        key = _day_key(day, self._clock())
        with self._lock:
            daily_cost = self._day_cost(key)
        now = self._clock()
        return [
            _make_alert(level, threshold, key, daily_cost, now)
            for level, threshold in self._levels()
            if daily_cost >= threshold
        ]

    def recent_alerts(self, limit: int = 10) -> list[BudgetAlert]:
        """Most recent edge-triggered alerts, newest first."""
        with self._lock:
            return list(reversed(self._alerts))[:limit]

    def dashboard(self, day: Union[date, datetime, str, None] = None) -> dict:
        """Cost overview for a day and its month."""
        day_key = _day_key(day, self._clock())
        daily = self.daily_total(day_key)
        monthly = self.monthly_total(day_key[:7])
        budget_used = (daily.total.cost / self.budget.critical * 100) if self.budget.critical else 0.0

        return {
            "date": day_key,
            "month": day_key[:7],
            "costs": {
                "daily": round(daily.total.cost, 6),
                "monthly": round(monthly.total.cost, 6),
                "daily_budget_used_percent": round(budget_used, 1),
            },
            "providers": {
                name: {
                    "requests": usage.requests,
                    "input_tokens": usage.input_tokens,
                    "output_tokens": usage.output_tokens,
                    "total_tokens": usage.total_tokens,
                    "cost": round(usage.cost, 6),
                }
                for name, usage in sorted(daily.per_provider.items())
            },
            "budget_thresholds": {
                "warning": self.budget.warning,
                "critical": self.budget.critical,
            },
        }

    def prune(self, now: Optional[datetime] = None) -> int:
        """
        Drop data past retention: daily records after 90 days, monthly
        aggregates after a year.

        Returns:
            Number of usage records removed.
        """
        now = now or self._clock()
        daily_cutoff = (now - timedelta(days=DAILY_RETENTION_DAYS)).strftime("%Y-%m-%d")
        monthly_cutoff = (now - timedelta(days=MONTHLY_RETENTION_DAYS)).strftime("%Y-%m")

        with self._lock:
            kept = [r for r in self._records if r.day >= daily_cutoff]
            removed = len(self._records) - len(kept)
            self._records = kept
            for key in [k for k in self._daily if k < daily_cutoff]:
                del self._daily[key]
            for key in [k for k in self._monthly if k < monthly_cutoff]:
                del self._monthly[key]
            self._fired = {f for f in self._fired if f[0] >= daily_cutoff}

        if removed:
            logger.info(f"Pruned {removed} usage records older than {daily_cutoff}")
        return removed

    def _levels(self) -> list[tuple[str, float]]:
        return [("warning", self.budget.warning), ("critical", self.budget.critical)]

    def _day_cost(self, day_key: str) -> float:
        return sum(u.cost for u in self._daily.get(day_key, {}).values())

    def _crossed(self, day_key: str, before: float, after: float) -> list[BudgetAlert]:
        alerts = []
        now = self._clock()
        for level, threshold in self._levels():
            if before < threshold <= after and (day_key, level) not in self._fired:
                self._fired.add((day_key, level))
                alerts.append(_make_alert(level, threshold, day_key, after, now))
        return alerts

    def _emit(self, alert: BudgetAlert, listeners: list[AlertListener]) -> None:
        log = logger.error if alert.level == "critical" else logger.warning
        log(f"AI BUDGET ALERT [{alert.level.upper()}]: {alert.message}")
        for listener in listeners:
            try:
                listener(alert)
            except Exception as e:
                logger.error(f"Budget alert listener failed: {e}")


def _make_alert(level: str, threshold: float, day_key: str, cost: float, now: datetime) -> BudgetAlert:
    return BudgetAlert(
        level=level,
        date=day_key,
        daily_cost=cost,
        threshold=threshold,
        message=f"Daily AI cost reached ${cost:.2f} ({level.capitalize()} threshold: ${threshold:.2f})",
        timestamp=now,
    )


def _totals(period: str, providers: dict[str, ProviderUsage]) -> UsageTotals:
    totals = UsageTotals(period=period)
    for name, usage in sorted(providers.items()):
        copy = ProviderUsage(
            requests=usage.requests,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cost=usage.cost,
        )
        totals.per_provider[name] = copy
        totals.total.requests += copy.requests
        totals.total.input_tokens += copy.input_tokens
        totals.total.output_tokens += copy.output_tokens
        totals.total.cost += copy.cost
    return totals
