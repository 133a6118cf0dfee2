"""Spotify client (music provider)"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from rankicard import config
from rankicard.exceptions import NetworkFailureError
from rankicard.integrations.base import ProviderClient
from rankicard.models.activity import RawPlay
from rankicard.resilience.circuit_breaker import SPOTIFY_BREAKER
from rankicard.utils.datetime_helpers import parse_iso_timestamp

logger = logging.getLogger(__name__)

# Spotify caps recently-played at 50 items per request
RECENTLY_PLAYED_LIMIT = 50


class SpotifyClient(ProviderClient):
    name = "spotify"
    service = "Spotify"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs: Any):
        kwargs.setdefault("api_url", config.SPOTIFY_API_URL)
        kwargs.setdefault("token_url", config.SPOTIFY_TOKEN_URL)
        kwargs.setdefault("client_id", config.SPOTIFY_CLIENT_ID)
        kwargs.setdefault("client_secret", config.SPOTIFY_CLIENT_SECRET)
        kwargs.setdefault("breaker", SPOTIFY_BREAKER)
        super().__init__(transport=transport, **kwargs)

    async def fetch_plays_since(self, access_token: str, timestamp: int) -> List[RawPlay]:
        """Plays after `timestamp` (Unix seconds)"""
        data = await self._get(
            "/me/player/recently-played",
            access_token,
            # Spotify cursors are in milliseconds
            params={"after": int(timestamp) * 1000, "limit": RECENTLY_PLAYED_LIMIT},
            operation="fetch_plays",
        )
        items = data.get("items") if isinstance(data, dict) else None
        if items is None:
            raise NetworkFailureError(
                message="Spotify recently-played response has no items",
                service=self.service,
                operation="fetch_plays",
            )

        try:
            plays = [parse_play(item) for item in items]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkFailureError(
                message=f"Malformed Spotify play: {e}",
                service=self.service,
                operation="fetch_plays",
                cause=e,
            )
        logger.info(f"Fetched {len(plays)} Spotify plays after {timestamp}")
        return plays

    def _refresh_request(self, refresh_token: str) -> Dict[str, Any]:
        basic = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        return {
            "data": {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "headers": {"Authorization": f"Basic {basic}"},
        }


def parse_play(item: Dict[str, Any]) -> RawPlay:
    """Spotify PlayHistory JSON to RawPlay"""
    return RawPlay(
        duration_ms=int(item.get("track", {}).get("duration_ms", 0)),
        played_at=parse_iso_timestamp(item["played_at"]),
    )
