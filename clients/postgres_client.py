"""
PostgreSQL client with connection pooling, RLS user isolation and transactions.

Uses psycopg2 with ThreadedConnectionPool. User isolation enforced via
PostgreSQL Row Level Security - the user ID is read from the contextvar and
set as app.current_user_id on each connection.

Outside a transaction every statement commits on its own. Inside
`transaction()` every statement issued through this client (by any service
holding it) runs on one connection and commits or rolls back together.

Security: No user context = see nothing (RLS blocks all rows). Cross-tenant
scans used by scheduled jobs go through a separate client connected as the
admin role with BYPASSRLS.
"""

import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.user_context import _current_user_id

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False

# database_url -> connection currently holding an open transaction
_active_transactions: ContextVar[Dict[str, Any] | None] = ContextVar(
    "active_transactions", default=None
)


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvar.

    Usage:
        db = PostgresClient(database_url)

        with user_context(user_id):
            invoices = db.execute("SELECT * FROM invoices")  # User's rows only

            with db.transaction():
                db.execute_returning("INSERT INTO invoices ...")
                db.execute_returning("INSERT INTO invoice_line_items ...")
                # both commit together, or neither does
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=2,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    def _transaction_connection(self):
        active = _active_transactions.get()
        if not active:
            return None
        return active.get(self._database_url)

    def in_transaction(self) -> bool:
        """Whether the current context holds an open transaction on this database."""
        return self._transaction_connection() is not None

    @contextmanager
    def get_connection(self):
        """
        Get connection with RLS context from contextvar.

        Inside a transaction the transaction's connection is reused as-is.
        """
        conn = self._transaction_connection()
        if conn is not None:
            yield conn
            return

        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            user_id = _current_user_id.get()

            with conn.cursor() as cur:
                if user_id is not None:
                    cur.execute("SET app.current_user_id = %s", (str(user_id),))
                else:
                    # RLS policies cast to ::uuid, which fails on '' = no rows
                    cur.execute("SET app.current_user_id = ''")

            yield conn

        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self):
        """
        Run every statement in the block on one connection, atomically.

        Commits when the block exits normally, rolls back and re-raises on
        any exception. A nested call joins the outer transaction; only the
        outermost block commits.
        """
        if self.in_transaction():
            yield
            return

        with self.get_connection() as conn:
            active = dict(_active_transactions.get() or {})
            active[self._database_url] = conn
            token = _active_transactions.set(active)
            try:
                yield
                conn.commit()
            except Exception:
                conn.rollback()
                logger.warning("Transaction rolled back")
                raise
            finally:
                _active_transactions.reset(token)

    def _finish(self, conn) -> None:
        """Commit a standalone statement. Transactions commit at block exit."""
        if not self.in_transaction():
            conn.commit()

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            self._finish(conn)
            return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone()
            self._finish(conn)
            return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()]
            self._finish(conn)
            return rows

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
