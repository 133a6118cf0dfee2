"""Main entry point for the rankicard progression service"""
import logging
import asyncio
from prometheus_client import start_http_server
from rankicard.config import (
    validate_config,
    LOG_LEVEL,
    DATABASE_URL,
    REDIS_URL,
    ENABLE_CACHE,
    METRICS_PORT,
    APP_TIMEZONE,
)
from rankicard.cache.redis_client import RedisCooldownStorage
from rankicard.db.connection import Database
from rankicard.db.queries import (
    PostgresAchievementStore,
    PostgresInventoryStore,
    PostgresMissionStore,
    PostgresProfileStore,
)
from rankicard.services.container import ServiceContainer
from rankicard.utils.datetime_helpers import Clock

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


def build_container(db: Database, cooldown_storage: RedisCooldownStorage) -> ServiceContainer:
    """Wire Postgres stores and Redis cooldowns into the service container"""
    return ServiceContainer(
        profile_store=PostgresProfileStore(db),
        mission_store=PostgresMissionStore(db),
        inventory_store=PostgresInventoryStore(db),
        achievement_store=PostgresAchievementStore(db),
        cooldown_storage=cooldown_storage,
        clock=Clock(APP_TIMEZONE),
    )


async def main() -> None:
    """Main application entry point"""
    db = Database(DATABASE_URL)
    cooldown_storage = RedisCooldownStorage(redis_url=REDIS_URL, enabled=ENABLE_CACHE)
    try:
        # Validate configuration
        logger.info("Validating configuration...")
        validate_config()

        # Initialize database
        logger.info("Initializing database connection pool...")
        await db.init_pool()
        await db.apply_schema()

        # Cooldown persistence
        logger.info("Connecting to Redis...")
        await cooldown_storage.connect()

        container = build_container(db, cooldown_storage)
        logger.info(f"Service container ready (reward service: {type(container.reward_service).__name__})")

        if METRICS_PORT:
            start_http_server(METRICS_PORT)
            logger.info(f"Metrics available on port {METRICS_PORT}")

        # Keep running until interrupted
        logger.info("rankicard is running. Press Ctrl+C to stop.")
        await asyncio.Event().wait()

    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        logger.info("Closing Redis connection...")
        await cooldown_storage.close()

        logger.info("Closing database connection...")
        await db.close_pool()

        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
