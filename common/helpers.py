import logging
from functools import wraps

import psycopg2
import redis

from common.exceptions import InfrastructureFault

logger = logging.getLogger(__name__)


def db_connection_handler(action: str):
    """Turn driver errors raised inside a route into an InfrastructureFault.

    Domain errors (ApiError subclasses) propagate untouched; nothing is retried.
    The caller only ever sees "Failed to <action>".
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)

            except (psycopg2.Error, redis.RedisError) as e:
                backend = "PostgreSQL" if isinstance(e, psycopg2.Error) else "Redis"
                logger.error(f"{backend} error while trying to {action}: {e}")
                raise InfrastructureFault(f"Failed to {action}") from e

        return wrapper

    return decorator
