"""External provider clients (Strava, Spotify)"""

from rankicard.integrations.spotify import SpotifyClient
from rankicard.integrations.strava import StravaClient

__all__ = ["SpotifyClient", "StravaClient"]
