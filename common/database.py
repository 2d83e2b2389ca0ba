import logging
import threading
from pathlib import Path

import psycopg2
import redis
from psycopg2.extensions import STATUS_READY
from psycopg2.extras import register_uuid
from psycopg2.pool import PoolError, ThreadedConnectionPool

from common.config import (
    DATABASE_URL,
    DB_CONNECT_TIMEOUT,
    DB_POOL_MAX,
    DB_POOL_MIN,
    DB_POOL_WAIT_SECONDS,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
)
from common.exceptions import InfrastructureFault

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# UUID columns come back as uuid.UUID and uuid.UUID parameters are accepted
register_uuid()

_singleton_lock = threading.Lock()


class DatabaseConnection:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            with _singleton_lock:
                if cls._instance is None:
                    instance = super(DatabaseConnection, cls).__new__(cls)
                    try:
                        instance.pool = ThreadedConnectionPool(
                            DB_POOL_MIN,
                            DB_POOL_MAX,
                            DATABASE_URL,
                            connect_timeout=DB_CONNECT_TIMEOUT,
                        )
                        logger.info("PostgreSQL connection pool established")
                    except psycopg2.Error as e:
                        logger.error(f"Database connection failed: {e}")
                        raise
                    # ThreadedConnectionPool raises instead of waiting once maxconn are out
                    instance.slots = threading.BoundedSemaphore(DB_POOL_MAX)
                    cls._instance = instance
        return cls._instance

    def getconn(self):
        if not self.slots.acquire(timeout=DB_POOL_WAIT_SECONDS):
            raise PoolError("connection pool exhausted")
        try:
            connection = self.pool.getconn()
            connection.autocommit = False
        except Exception:
            self.slots.release()
            raise
        return connection

    def putconn(self, connection):
        try:
            # A connection left mid-transaction must not leak its state to the next borrower
            if not connection.closed and connection.status != STATUS_READY:
                connection.rollback()
            self.pool.putconn(connection, close=bool(connection.closed))
        finally:
            self.slots.release()

    def close(self):
        """Close every pooled connection and forget the singleton."""
        try:
            self.pool.closeall()
            logger.info("PostgreSQL connection pool closed")
        except psycopg2.Error as e:
            logger.error(f"Error closing database connection pool: {e}")
        finally:
            DatabaseConnection._instance = None


def get_postgresql_db():
    """Lend a pooled database connection to FastAPI routes."""
    try:
        db_conn = DatabaseConnection()
        connection = db_conn.getconn()
    except psycopg2.Error as e:
        logger.error(f"PostgreSQL error while trying to connect to database: {e}")
        raise InfrastructureFault("Failed to connect to database") from e
    try:
        yield connection
    finally:
        db_conn.putconn(connection)


def init_schema():
    """Apply schema.sql; every statement in it is idempotent."""
    db_conn = DatabaseConnection()
    connection = db_conn.getconn()
    try:
        with connection.cursor() as cursor:
            cursor.execute(SCHEMA_PATH.read_text())
        connection.commit()
        logger.info("Database schema initialized successfully")
    except psycopg2.Error:
        connection.rollback()
        raise
    finally:
        db_conn.putconn(connection)


class RedisConnection:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            with _singleton_lock:
                if cls._instance is None:
                    instance = super(RedisConnection, cls).__new__(cls)
                    instance.connection = redis.StrictRedis(
                        host=REDIS_HOST,
                        port=REDIS_PORT,
                        password=REDIS_PASSWORD,
                        decode_responses=True,
                        socket_timeout=5,
                        retry_on_timeout=True,
                    )
                    logger.info(f"Redis client created for {REDIS_HOST}:{REDIS_PORT}")
                    cls._instance = instance
        return cls._instance

    def close(self):
        try:
            self.connection.close()
            logger.info("Redis connection closed")
        except redis.ConnectionError as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            RedisConnection._instance = None


def get_redis_connection():
    """Provide the shared Redis client."""
    return RedisConnection().connection
