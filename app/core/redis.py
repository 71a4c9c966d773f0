# app/core/redis.py
import redis

from app.core.config import settings

# Shared pool; connections are opened lazily on first command.
redis_pool = redis.ConnectionPool.from_url(settings.REDIS_URL, decode_responses=True)


def get_redis_client() -> redis.Redis:
    return redis.Redis(connection_pool=redis_pool)
