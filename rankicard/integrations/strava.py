"""Strava client (fitness provider)"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from rankicard import config
from rankicard.exceptions import NetworkFailureError
from rankicard.integrations.base import ProviderClient
from rankicard.models.activity import RawActivity
from rankicard.resilience.circuit_breaker import STRAVA_BREAKER
from rankicard.utils.datetime_helpers import parse_iso_timestamp

logger = logging.getLogger(__name__)


class StravaClient(ProviderClient):
    name = "strava"
    service = "Strava"

    def __init__(
        self,
        page_size: int = config.FITNESS_FETCH_PAGE_SIZE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any
    ):
        kwargs.setdefault("api_url", config.STRAVA_API_URL)
        kwargs.setdefault("token_url", config.STRAVA_TOKEN_URL)
        kwargs.setdefault("client_id", config.STRAVA_CLIENT_ID)
        kwargs.setdefault("client_secret", config.STRAVA_CLIENT_SECRET)
        kwargs.setdefault("breaker", STRAVA_BREAKER)
        super().__init__(transport=transport, **kwargs)
        self.page_size = page_size

    async def fetch_activities_since(self, access_token: str, timestamp: int) -> List[RawActivity]:
        """
        Activities that started after `timestamp` (Unix seconds)

        This is the rate-limited call the sync cooldown guards.
        """
        data = await self._get(
            "/athlete/activities",
            access_token,
            params={"after": int(timestamp), "per_page": self.page_size},
            operation="fetch_activities",
        )
        if not isinstance(data, list):
            raise NetworkFailureError(
                message="Strava activities response is not a list",
                service=self.service,
                operation="fetch_activities",
            )

        try:
            activities = [parse_activity(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkFailureError(
                message=f"Malformed Strava activity: {e}",
                service=self.service,
                operation="fetch_activities",
                cause=e,
            )
        logger.info(f"Fetched {len(activities)} Strava activities after {timestamp}")
        return activities


def parse_activity(item: Dict[str, Any]) -> RawActivity:
    """Strava SummaryActivity JSON to RawActivity"""
    return RawActivity(
        kind=item.get("type") or item.get("sport_type") or "Unknown",
        distance_meters=float(item.get("distance") or 0.0),
        start_time=parse_iso_timestamp(item["start_date"]),
        manual=bool(item.get("manual", False)),
    )
