import json
import logging

from fastapi import Depends

from common.config import TEMPLATE_CACHE_TTL_SECONDS
from common.database import get_redis_connection

logger = logging.getLogger(__name__)

TEMPLATE_CACHE_KEY = "content_templates:v1"


class TemplateCache:
    """Redis-backed cache for the {key: content} template map.

    The map is rebuilt from the store on a miss and dropped whenever a
    template changes; the TTL only bounds staleness from out-of-band edits.
    """

    def __init__(self, client, key: str = TEMPLATE_CACHE_KEY, ttl: int = TEMPLATE_CACHE_TTL_SECONDS):
        self.client = client
        self.key = key
        self.ttl = ttl

    def get_or_populate(self, loader):
        cached = self.client.get(self.key)
        if cached is not None:
            logger.debug("Template cache hit")
            return json.loads(cached)

        logger.debug("Template cache miss, loading from store")
        value = loader()
        # A None result is never cached
        if value is not None:
            self.client.set(self.key, json.dumps(value, default=str), ex=self.ttl)
        return value

    def invalidate(self):
        self.client.delete(self.key)
        logger.info("Template cache invalidated")


def get_template_cache(client=Depends(get_redis_connection)) -> TemplateCache:
    return TemplateCache(client)
