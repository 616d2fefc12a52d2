"""
tokenvest - Prometheus Metrics

Counters and gauges describing vesting activity. Each ``VestingMetrics``
instance owns a private registry so several ledgers (and tests) never collide
on metric names.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class VestingMetrics:
    """
    Metrics collector for a single vesting ledger.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.schedules_initialized = Counter(
            "tokenvest_schedules_initialized_total",
            "Number of times vesting schedules were initialized",
            registry=self.registry,
        )

        self.records_created = Gauge(
            "tokenvest_records",
            "Vesting records held by the ledger",
            registry=self.registry,
        )

        self.claims_total = Counter(
            "tokenvest_claims_total",
            "Claim invocations by outcome",
            ["outcome"],  # released, empty, rejected, failed
            registry=self.registry,
        )

        self.tokens_released = Counter(
            "tokenvest_tokens_released_base_units_total",
            "Base units transferred to beneficiaries",
            registry=self.registry,
        )

        self.records_fully_claimed = Gauge(
            "tokenvest_records_fully_claimed",
            "Vesting records whose total amount has been paid out",
            registry=self.registry,
        )

    def record_initialization(self, record_count: int) -> None:
        self.schedules_initialized.inc()
        self.records_created.set(record_count)

    def record_claim(self, outcome: str, amount: int = 0, fully_claimed: bool = False) -> None:
        self.claims_total.labels(outcome=outcome).inc()
        if amount > 0:
            self.tokens_released.inc(amount)
        if fully_claimed:
            self.records_fully_claimed.inc()

    def observe_records(self, record_count: int, fully_claimed: int) -> None:
        """Set the record gauges from persisted state."""
        self.records_created.set(record_count)
        self.records_fully_claimed.set(fully_claimed)

    def export(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)
