"""
PostgreSQL connection handling for the record store.

One `with get_db_cursor()` block is one transaction: every statement run on
the cursor commits together or rolls back together. Rollbacks triggered by a
RentDeskError (a domain rule such as the one-active-contract guard) are
expected outcomes and are logged at WARNING; anything else is logged at ERROR.
"""

import logging
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor

from rentdesk.config import config
from rentdesk.errors import RentDeskError

logger = logging.getLogger(__name__)

APPLICATION_NAME = 'rentdesk'


def _connect():
    return psycopg2.connect(
        config.DATABASE_URL,
        connect_timeout=config.DB_CONNECT_TIMEOUT_SECONDS,
        application_name=APPLICATION_NAME,
    )


def _rollback(conn, cause: BaseException) -> None:
    """Roll back after `cause`. A failing rollback is logged; the caller re-raises `cause`."""
    try:
        conn.rollback()
    except psycopg2.Error as e:
        logger.error(f"Rollback failed after {type(cause).__name__}: {e}")
        return

    if isinstance(cause, RentDeskError):
        logger.warning(f"Transaction rolled back [{cause.code}]: {cause.message}")
    else:
        logger.error(f"Transaction rolled back due to {type(cause).__name__}: {cause}")


@contextmanager
def get_db_connection():
    """
    Open a connection, commit when the block exits cleanly, roll back when it
    raises, and always close.

        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT count(*) FROM contracts")
    """
    conn = _connect()
    logger.debug("Database connection opened")
    try:
        yield conn
    except Exception as e:
        _rollback(conn, e)
        raise
    else:
        conn.commit()
        logger.debug("Transaction committed")
    finally:
        conn.close()
        logger.debug("Database connection closed")


@contextmanager
def get_db_cursor(dict_cursor=True):
    """
    Cursor inside its own transaction. Rows come back as dicts unless
    `dict_cursor` is False.

        with get_db_cursor() as cur:
            cur.execute("SELECT * FROM tenants WHERE id = %s", (tenant_id,))
            tenant = cur.fetchone()
    """
    with get_db_connection() as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor if dict_cursor else None)
        try:
            yield cur
        finally:
            cur.close()
