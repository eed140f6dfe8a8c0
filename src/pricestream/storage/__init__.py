import logging

from pricestream.config.enumerations import StoreBackend
from pricestream.config.settings import Settings
from pricestream.storage.base import AlertStore
from pricestream.storage.memory import InMemoryAlertStore
from pricestream.storage.redis_store import RedisAlertStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> AlertStore:
    """Build the alert store selected by STORE_BACKEND."""
    if settings.store_backend == StoreBackend.MEMORY:
        logger.warning("Using in-memory alert store; alerts will not survive a restart")
        return InMemoryAlertStore()

    logger.info("Using Redis alert store at %s:%s", settings.redis_host, settings.redis_port)
    return RedisAlertStore(
        host=settings.redis_host, port=settings.redis_port, db=settings.redis_db
    )


__all__ = ["AlertStore", "InMemoryAlertStore", "RedisAlertStore", "create_store"]
