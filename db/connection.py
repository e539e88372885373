"""
db/connection.py
----------------
Manages the PostgreSQL connection pool.
Uses psycopg2's SimpleConnectionPool for efficient connection reuse.

Connectivity failures are raised as ``StorageUnavailable`` so the scheduler
can abort a pass without guessing at driver exception types.
"""

from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2 import pool

from config import DATABASE_URL
from exceptions import StorageUnavailable
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.SimpleConnectionPool | None = None

# Errors that mean "the database is not there", as opposed to a bad query.
_CONNECTIVITY_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError, pool.PoolError)


def init_pool(min_conn: int = 1, max_conn: int = 5) -> None:
    """
    Initialize the database connection pool.

    Args:
        min_conn: Minimum number of connections to keep open.
        max_conn: Maximum number of connections allowed.

    Raises:
        StorageUnavailable: If the database is unreachable.
    """
    global _pool
    if _pool is not None:
        return
    try:
        _pool = pool.SimpleConnectionPool(min_conn, max_conn, DATABASE_URL)
        logger.info("Database connection pool initialized successfully.")
    except psycopg2.OperationalError as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise StorageUnavailable("Cannot connect to PostgreSQL", original_error=e) from e


def get_connection():
    """
    Get a connection from the pool.

    Raises:
        RuntimeError: If the pool has not been initialized.
        StorageUnavailable: If the pool is exhausted or closed.
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    try:
        return _pool.getconn()
    except pool.PoolError as e:
        raise StorageUnavailable("No database connection available", original_error=e) from e


def release_connection(conn) -> None:
    """
    Return a connection back to the pool.

    Broken connections are discarded instead of being reused.
    """
    if _pool is not None:
        _pool.putconn(conn, close=bool(getattr(conn, "closed", False)))


@contextmanager
def transaction() -> Iterator:
    """
    Borrow a connection for one unit of work.

    Commits when the block exits normally, rolls back otherwise, and always
    returns the connection to the pool.

    Usage:
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(...)

    Raises:
        StorageUnavailable: On connectivity errors inside the block.
    """
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except _CONNECTIVITY_ERRORS as e:
        _safe_rollback(conn)
        logger.error(f"Database unavailable: {e}")
        raise StorageUnavailable("Database unavailable", original_error=e) from e
    except Exception:
        _safe_rollback(conn)
        raise
    finally:
        release_connection(conn)


def _safe_rollback(conn) -> None:
    if getattr(conn, "closed", False):
        return
    try:
        conn.rollback()
    except _CONNECTIVITY_ERRORS as e:
        logger.warning(f"Rollback failed on a broken connection: {e}")


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("Database connection pool closed.")
