"""Postgres-backed stores"""
from rankicard.db.queries.progress import PostgresProfileStore
from rankicard.db.queries.missions import PostgresMissionStore
from rankicard.db.queries.shop import PostgresInventoryStore, PostgresAchievementStore

__all__ = [
    "PostgresProfileStore",
    "PostgresMissionStore",
    "PostgresInventoryStore",
    "PostgresAchievementStore",
]
