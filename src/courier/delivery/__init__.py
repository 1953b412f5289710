"""Delivery core: fallback chain, circuit breaker, dedup and consent checks."""

from courier.delivery.circuit_breaker import ChannelCircuitBreaker
from courier.delivery.dedup import DeduplicationEngine
from courier.delivery.orchestrator import DeliveryOrchestrator, PersistOutcome, validate_request
from courier.delivery.preferences import PreferenceGate

__all__ = [
    "ChannelCircuitBreaker",
    "DeduplicationEngine",
    "DeliveryOrchestrator",
    "PersistOutcome",
    "PreferenceGate",
    "validate_request",
]
