from redis import Redis

from .config import settings

# None when REDIS_URL is not configured (process-local cache only)
redis_client = (
    Redis.from_url(settings.redis_url, decode_responses=True)
    if settings.redis_url
    else None
)
