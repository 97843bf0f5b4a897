from typing import Dict, Any

from prometheus_client import CollectorRegistry, Counter


class MetricsManager:
    """Registry for ledger metrics, backed by a private Prometheus registry."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(MetricsManager, cls).__new__(cls)
            cls._instance.metrics: Dict[str, Counter] = {}
            cls._instance.prom_registry = CollectorRegistry()
        return cls._instance

    def counter(self, name: str, description: str = "") -> Counter:
        if name not in self.metrics:
            self.metrics[name] = Counter(
                name,
                description or f"Counter for {name}",
                registry=self.prom_registry,
            )
        return self.metrics[name]

    def event_appended(self, kind: str) -> None:
        self.counter("equiptrack_events_appended", "Events appended to the ledger").inc()
        self.counter(f"equiptrack_events_appended_{kind}", f"{kind} events appended").inc()

    def operation_rejected(self, code: str) -> None:
        self.counter("equiptrack_operations_rejected", "Rejected ledger operations").inc()
        self.counter(f"equiptrack_operations_rejected_{code}", f"Operations rejected with {code}").inc()

    def discrepancy_reported(self) -> None:
        self.counter("equiptrack_discrepancies_reported", "Reconciliation mismatches returned to callers").inc()

    def get_all(self) -> Dict[str, Any]:
        return {k: v._value.get() for k, v in self.metrics.items()}
