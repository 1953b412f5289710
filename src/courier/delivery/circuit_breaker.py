"""Per-channel circuit breaker.

Tracks provider health for each delivery channel so the orchestrator
stops spending calls on a channel whose provider is down.  Failures
are global per channel, not per user.

States:
    **closed**: no state, or state with ``is_open`` false.  Failures
    are counted.
    **open**: after ``failure_threshold`` failures with no success in
    between.  :meth:`is_available` returns false until the recovery
    deadline.
    **half-open probe**: the first :meth:`is_available` call after the
    deadline clears ``is_open`` and returns true.  The failure count is
    kept, so a failed probe re-opens the circuit with a fresh window
    and only :meth:`record_success` resets it.

State lives in memory for the lifetime of the process and is lost on
restart.

Usage::

    from courier.delivery.circuit_breaker import ChannelCircuitBreaker

    breaker = ChannelCircuitBreaker()
    if breaker.is_available(Channel.SMS):
        ...
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)

FAILURE_THRESHOLD = 5
RECOVERY_SECONDS = 60.0


@dataclass
class _BreakerState:
    failure_count: int = 0
    last_failure_at: float = 0.0
    is_open: bool = False
    half_open_at: float = 0.0


class ChannelCircuitBreaker:
    """Thread-safe map of channel name to breaker state.

    Parameters
    ----------
    failure_threshold:
        Consecutive failures that open the circuit.
    recovery_seconds:
        Time the circuit stays open before one probe is allowed.
    clock:
        Monotonic time source, injectable for tests.

    """

    def __init__(
        self,
        failure_threshold: int = FAILURE_THRESHOLD,
        recovery_seconds: float = RECOVERY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_seconds = recovery_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, _BreakerState] = {}

    def is_available(self, channel: str) -> bool:
        """Return True if an attempt on *channel* may be made now."""
        with self._lock:
            state = self._states.get(channel)
            if state is None or not state.is_open:
                return True
            if self._clock() >= state.half_open_at:
                state.is_open = False
                log.info(
                    "Circuit breaker for %s: open -> half-open (allowing one probe)",
                    channel,
                )
                return True
            return False

    def record_success(self, channel: str) -> None:
        """Forget all failures recorded for *channel*."""
        with self._lock:
            state = self._states.pop(channel, None)
        if state is not None and state.failure_count:
            log.info(
                "Circuit breaker for %s reset after success (%d prior failure(s))",
                channel,
                state.failure_count,
            )

    def record_failure(self, channel: str) -> None:
        """Count a provider failure and open the circuit at the threshold."""
        with self._lock:
            now = self._clock()
            state = self._states.setdefault(channel, _BreakerState())
            state.failure_count += 1
            state.last_failure_at = now
            opened = False
            if state.failure_count >= self._failure_threshold:
                state.is_open = True
                state.half_open_at = now + self._recovery_seconds
                opened = True
            failures = state.failure_count

        if opened:
            log.error(
                "Circuit breaker OPEN for %s after %d failures (retry in %.0fs)",
                channel,
                failures,
                self._recovery_seconds,
            )

    def get_status(self) -> dict[str, dict[str, object]]:
        """Snapshot ``{channel: {"is_open": bool, "failures": int}}``."""
        with self._lock:
            return {
                channel: {"is_open": state.is_open, "failures": state.failure_count}
                for channel, state in self._states.items()
            }
