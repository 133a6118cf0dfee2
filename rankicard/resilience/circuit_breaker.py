"""Circuit breaker implementation for provider APIs

Implements the Circuit Breaker pattern so a Strava or Spotify outage fails
fast instead of holding every sync until the HTTP timeout.

State Machine:
    CLOSED (normal) → OPEN (failing fast) → HALF_OPEN (testing) → CLOSED/OPEN
"""

import pybreaker
import logging
from typing import Callable, Any, TypeVar
from functools import wraps

from rankicard.exceptions import StaleCredentialError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Listener to log circuit breaker state changes and emit metrics"""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        """Called when circuit breaker changes state"""
        logger.warning(
            f"[CIRCUIT_BREAKER] {cb.name}: {old_state.name if old_state else None} → {new_state.name}"
        )

        try:
            from rankicard.resilience.metrics import record_circuit_breaker_state
            record_circuit_breaker_state(cb.name, new_state.name.lower().replace("-", "_"))
        except Exception as e:
            logger.error(f"Failed to record circuit breaker state: {e}")

    def failure(self, cb: pybreaker.CircuitBreaker, exc: Exception) -> None:
        """Called when circuit breaker records a failure"""
        logger.error(
            f"[CIRCUIT_BREAKER] {cb.name} recorded failure: {type(exc).__name__}: {exc}"
        )

        try:
            from rankicard.resilience.metrics import record_api_failure
            record_api_failure(cb.name, type(exc).__name__)
        except Exception as e:
            logger.error(f"Failed to record API failure: {e}")

    def success(self, cb: pybreaker.CircuitBreaker) -> None:
        """Called when circuit breaker records a success"""
        logger.debug(f"[CIRCUIT_BREAKER] {cb.name} recorded success")


# Configuration: 5 failures triggers OPEN, 60s timeout before HALF_OPEN.
# An expired user token says nothing about provider health, so it is excluded.

STRAVA_BREAKER = pybreaker.CircuitBreaker(
    fail_max=5,
    reset_timeout=60,
    name="strava_api",
    exclude=[StaleCredentialError],
    listeners=[CircuitBreakerListener()]
)

SPOTIFY_BREAKER = pybreaker.CircuitBreaker(
    fail_max=5,
    reset_timeout=60,
    name="spotify_api",
    exclude=[StaleCredentialError],
    listeners=[CircuitBreakerListener()]
)


def with_circuit_breaker(breaker: pybreaker.CircuitBreaker) -> Callable:
    """
    Decorator to wrap async functions with circuit breaker protection.

    When the circuit is OPEN, calls fail immediately with CircuitBreakerError
    instead of reaching the provider.

    Example:
        @with_circuit_breaker(STRAVA_BREAKER)
        async def fetch_activities():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await breaker.call_async(func, *args, **kwargs)
            except pybreaker.CircuitBreakerError:
                logger.warning(
                    f"[CIRCUIT_BREAKER] {breaker.name} is OPEN - failing fast"
                )
                raise
        return wrapper
    return decorator
