"""
Vesting engine instrumentation for TEVA.

Provides Prometheus metrics that track how many tokens investors withdraw,
how much the administrator reclaims, and the outstanding obligation, with
helper functions that are safe to call from the withdrawal path.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

tokens_withdrawn_counter = Counter(
    "teva_vesting_tokens_withdrawn_total",
    "Total tokens minted to investors by the vesting engine",
    ["investor_class"],
)

withdrawal_events = Counter(
    "teva_vesting_withdrawal_events_total",
    "Total number of successful investor withdrawals",
    ["investor_class"],
)

tokens_reclaimed_counter = Counter(
    "teva_vesting_tokens_reclaimed_total",
    "Total excess tokens swept back to the administrator",
)

rejected_operations = Counter(
    "teva_vesting_rejected_operations_total",
    "Vesting operations rejected, by operation and error type",
    ["operation", "error"],
)

outstanding_supply_gauge = Gauge(
    "teva_vesting_outstanding_supply",
    "Tokens still owed to investors",
    ["engine"],
)

registered_investors_gauge = Gauge(
    "teva_vesting_registered_investors",
    "Number of registered investors",
    ["engine"],
)


def record_withdrawal(investor_class: str, amount: int) -> None:
    """Increment the withdrawal counters for the investor class."""
    if amount <= 0:
        return

    tokens_withdrawn_counter.labels(investor_class=investor_class).inc(amount)
    withdrawal_events.labels(investor_class=investor_class).inc()


def record_reclaim(amount: int) -> None:
    if amount > 0:
        tokens_reclaimed_counter.inc(amount)


def record_rejection(operation: str, error: Exception) -> None:
    rejected_operations.labels(operation=operation, error=type(error).__name__).inc()


def update_engine_gauges(engine_address: str, outstanding: int, investor_count: int) -> None:
    """Refresh the per-engine gauges after a state change."""
    outstanding_supply_gauge.labels(engine=engine_address).set(outstanding)
    registered_investors_gauge.labels(engine=engine_address).set(investor_count)
