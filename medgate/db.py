"""
MySQL connection management for the progress store

One ``ConnectionManager`` per configured database. The pool is created lazily
on first use, retried with backoff, and if it still cannot be created the
manager falls back to direct connections rather than refusing service.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Optional

import mysql.connector
from dotenv import load_dotenv
from mysql.connector import pooling

from .config import Settings, get_settings
from .errors import ProgressStoreError

logger = logging.getLogger(__name__)

load_dotenv()

POOL_INIT_ATTEMPTS = 3
POOL_ONLY_KEYS = ("pool_name", "pool_size", "pool_reset_session")


class ConnectionManager:
    """Lazily pooled MySQL connections for one database"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._pool: Optional[pooling.MySQLConnectionPool] = None
        self._pool_attempted = False
        self._lock = threading.Lock()

    def connection_config(self, pooled: bool = True) -> dict:
        s = self.settings
        config = {
            "host": s.DB_HOST,
            "port": s.DB_PORT,
            "user": s.DB_USER,
            "password": s.DB_PASSWORD,
            "database": s.DB_NAME,
            "charset": "utf8mb4",
            "collation": "utf8mb4_unicode_ci",
            # Progress writes commit explicitly
            "autocommit": False,
            "connection_timeout": 10,
            "use_pure": True,
            "sql_mode": "STRICT_TRANS_TABLES,NO_ZERO_DATE,NO_ZERO_IN_DATE,ERROR_FOR_DIVISION_BY_ZERO",
            "pool_name": "medgate_pool",
            "pool_size": s.DB_POOL_SIZE,
            "pool_reset_session": True,
        }
        if not pooled:
            for key in POOL_ONLY_KEYS:
                config.pop(key)
        return config

    def _ensure_pool(self) -> Optional[pooling.MySQLConnectionPool]:
        if self._pool_attempted:
            return self._pool

        with self._lock:
            if self._pool_attempted:
                return self._pool

            delay = 1
            for attempt in range(1, POOL_INIT_ATTEMPTS + 1):
                try:
                    self._pool = pooling.MySQLConnectionPool(**self.connection_config())
                    logger.info(f"MySQL pool ready ({self.settings.DB_HOST}/{self.settings.DB_NAME})")
                    break
                except mysql.connector.Error as e:
                    logger.error(f"MySQL pool creation failed (attempt {attempt}/{POOL_INIT_ATTEMPTS}): {e}")
                    if attempt < POOL_INIT_ATTEMPTS:
                        time.sleep(delay)
                        delay *= 2
            else:
                logger.error("MySQL pool unavailable; using direct connections")

            self._pool_attempted = True
            return self._pool

    def get_connection(self):
        """
        A live connection, preferring the pool

        Raises:
            ProgressStoreError: no connection could be established
        """
        pool = self._ensure_pool()
        if pool is not None:
            try:
                conn = pool.get_connection()
                if conn.is_connected():
                    return conn
                logger.warning("Pooled connection is not live; opening a direct connection")
            except mysql.connector.Error as e:
                logger.warning(f"Pool exhausted or broken: {e}")

        try:
            conn = mysql.connector.connect(**self.connection_config(pooled=False))
        except mysql.connector.Error as e:
            logger.error(f"MySQL connection failed: {e}")
            raise ProgressStoreError(f"Database unavailable: {e}") from e

        if not conn.is_connected():
            raise ProgressStoreError("Database unavailable: connection not established")
        return conn

    @contextmanager
    def connection(self):
        """
        Yield a connection that is always closed (returned to the pool) on exit

        Usage:
            with manager.connection() as conn:
                cursor = conn.cursor(dictionary=True)
        """
        conn = self.get_connection()
        try:
            yield conn
        finally:
            try:
                if conn.is_connected():
                    conn.close()
            except mysql.connector.Error as e:
                logger.warning(f"Closing MySQL connection failed: {e}")

    def reset(self) -> None:
        """Forget the current pool so the next call rebuilds it"""
        with self._lock:
            self._pool = None
            self._pool_attempted = False


_default_manager: Optional[ConnectionManager] = None
_default_lock = threading.Lock()


def get_connection_manager() -> ConnectionManager:
    """Process-wide manager for the configured database"""
    global _default_manager
    with _default_lock:
        if _default_manager is None:
            _default_manager = ConnectionManager()
        return _default_manager


def db_connection():
    """Connection context from the process-wide manager"""
    return get_connection_manager().connection()
