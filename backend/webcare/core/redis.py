import logging
from contextlib import contextmanager

import redis
from redis.exceptions import LockError
from webcare.core.config import settings

logger = logging.getLogger(__name__)

# Global redis connection pool
redis_conn = redis.from_url(settings.REDIS_URL, decode_responses=True)

def get_redis():
    return redis_conn


class UpdateAlreadyRunning(Exception):
    """Another update run holds the lock for this website."""


@contextmanager
def website_update_lock(conn, website_id: int, timeout: int = None):
    """Hold a non-blocking per-website lock for the duration of an update run."""
    lock = conn.lock(
        f"webcare:website-update:{website_id}",
        timeout=timeout or settings.UPDATE_LOCK_TIMEOUT,
        blocking=False,
    )
    if not lock.acquire(blocking=False):
        raise UpdateAlreadyRunning(f"An update is already running for website {website_id}")
    try:
        yield lock
    finally:
        try:
            lock.release()
        except LockError as e:
            # the lock expired while the run was still going
            logger.warning(f"Update lock for website {website_id} was already released: {e}")
