"""
Service Layer Package

Business logic between the caller (UI, bot, API) and the stores:
- RewardService: the only writer of XP, gold, streak and study counters
- MissionService: daily missions and completion payouts
- ExternalSyncService: Strava / Spotify sync and credentials
- ShopService: purchases, inventory, boosts
- AchievementService: achievement unlocking
- UserSession: per-user cooldown and study timer
"""

from rankicard.services.container import ServiceContainer

__all__ = ["ServiceContainer"]
