"""
Prometheus counters for session and delegate security events
"""

import logging
from typing import Dict, Optional, Protocol, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

logger = logging.getLogger(__name__)

DELEGATE_ACCESS_DENIED = "delegate_access_denied"
DELEGATE_INVITES = "delegate_invites"
SESSIONS_CREATED = "sessions_created"
SESSIONS_EVICTED = "sessions_evicted"
SESSION_VALIDATION_FAILURES = "session_validation_failures"

# name -> (description, label names)
COUNTERS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    DELEGATE_ACCESS_DENIED: ("Delegate access checks that were denied", ("reason",)),
    DELEGATE_INVITES: ("Delegates invited by account owners", ("role",)),
    SESSIONS_CREATED: ("Sessions created after successful authentication", ()),
    SESSIONS_EVICTED: ("Sessions evicted by the concurrent session cap", ()),
    SESSION_VALIDATION_FAILURES: ("Session validations that did not pass", ("reason",)),
}


class MetricsSink(Protocol):
    def increment(self, name: str, labels: Optional[Dict[str, str]] = None, amount: float = 1) -> None:
        ...


class PrometheusMetrics:
    """
    Fire-and-forget counter sink backed by prometheus_client.

    Each instance owns its registry so tests can inspect values in isolation.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "estate_kit"):
        self.registry = registry or CollectorRegistry()
        self.namespace = namespace
        self._counters: Dict[str, Counter] = {}
        for name, (description, label_names) in COUNTERS.items():
            self._counters[name] = Counter(
                f"{name}_total",
                description,
                labelnames=label_names,
                namespace=namespace,
                registry=self.registry,
            )

    def increment(self, name: str, labels: Optional[Dict[str, str]] = None, amount: float = 1) -> None:
        counter = self._counters.get(name)
        if counter is None:
            logger.warning(f"Unknown metric requested: {name}")
            return
        try:
            if labels:
                counter.labels(**labels).inc(amount)
            else:
                counter.inc(amount)
        except ValueError as e:
            # Wrong label set must never break the request path
            logger.warning(f"Failed to record metric {name}: {e}")

    def value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of a counter, 0.0 if never incremented"""
        sample = self.registry.get_sample_value(f"{self.namespace}_{name}_total", labels or {})
        return sample or 0.0

    def render(self) -> Tuple[bytes, str]:
        """Prometheus text exposition and its content type"""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
