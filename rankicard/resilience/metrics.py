"""Prometheus metrics for rewards and external syncs

Exposes counters for XP/gold grants, rejected grants, provider calls and
circuit breaker state.
"""

import logging
from prometheus_client import Counter, Histogram, Enum

logger = logging.getLogger(__name__)

# Circuit breaker state
# Values: closed, open, half_open
circuit_breaker_state = Enum(
    'rankicard_circuit_breaker_state',
    'Current state of circuit breaker',
    ['api'],
    states=['closed', 'open', 'half_open']
)

# Provider calls
# Labels: api (strava/spotify), status (success/failure)
api_calls_total = Counter(
    'rankicard_api_calls_total',
    'Total number of provider API calls',
    ['api', 'status']
)

api_call_duration = Histogram(
    'rankicard_api_call_duration_seconds',
    'Duration of provider API calls in seconds',
    ['api'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float('inf'))
)

api_failures_total = Counter(
    'rankicard_api_failures_total',
    'Total number of provider API failures',
    ['api', 'error_type']
)

# Sync outcomes
# Labels: provider, status (success/no_new_activity/stale_credential/network_failure/...)
sync_outcomes_total = Counter(
    'rankicard_sync_outcomes_total',
    'External sync outcomes',
    ['provider', 'status']
)

# XP granted
# Labels: source (fitness/listening/study/mission/manual)
xp_awarded_total = Counter(
    'rankicard_xp_awarded_total',
    'Total XP granted',
    ['source']
)

# Rejected grants
# Labels: reason (study_cap/insufficient_gold/conflict/...)
reward_rejections_total = Counter(
    'rankicard_reward_rejections_total',
    'Reward operations rejected without state change',
    ['reason']
)


def record_circuit_breaker_state(api: str, state: str) -> None:
    """
    Record circuit breaker state change.

    Args:
        api: API name (strava_api, spotify_api)
        state: New state (closed, open, half_open)
    """
    try:
        circuit_breaker_state.labels(api=api).state(state)
        logger.debug(f"[METRICS] Circuit breaker {api} state: {state}")
    except Exception as e:
        logger.error(f"Failed to record circuit breaker state: {e}")


def record_api_call(api: str, success: bool, duration: float) -> None:
    try:
        status = 'success' if success else 'failure'
        api_calls_total.labels(api=api, status=status).inc()
        api_call_duration.labels(api=api).observe(duration)
        logger.debug(f"[METRICS] API call {api}: {status}, duration: {duration:.2f}s")
    except Exception as e:
        logger.error(f"Failed to record API call metrics: {e}")


def record_api_failure(api: str, error_type: str) -> None:
    try:
        api_failures_total.labels(api=api, error_type=error_type).inc()
        logger.debug(f"[METRICS] API failure {api}: {error_type}")
    except Exception as e:
        logger.error(f"Failed to record API failure: {e}")


def record_sync_outcome(provider: str, status: str) -> None:
    try:
        sync_outcomes_total.labels(provider=provider, status=status).inc()
    except Exception as e:
        logger.error(f"Failed to record sync outcome: {e}")


def record_xp_awarded(source: str, amount: int) -> None:
    try:
        if amount > 0:
            xp_awarded_total.labels(source=source).inc(amount)
    except Exception as e:
        logger.error(f"Failed to record XP award: {e}")


def record_reward_rejection(reason: str) -> None:
    try:
        reward_rejections_total.labels(reason=reason).inc()
    except Exception as e:
        logger.error(f"Failed to record reward rejection: {e}")
