"""
Wallet session persistence — the only durable client state.

SessionStore holds the connected wallet and its last balance snapshot in
a single-row SQLite table. It is the single owner of that state: the
send flow and the balance cache go through it, nothing else reads or
writes the cache.

Lifecycle:
    - save_session(): on successful wallet connection. Switching to a
      different address drops the previous snapshot.
    - save_snapshot(): on every balance refresh; overwrites (last write
      wins). A snapshot for an address other than the session's is
      ignored.
    - load(): on startup, to serve the cached snapshot immediately.
    - clear(): on logout.

Invariants:
    - At most one row (one active session per process).
    - Balances are stored as decimal strings, never floats.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from custody_send.models import BalanceSnapshot, WalletSession

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS wallet_session (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    address TEXT NOT NULL,
    bound_email TEXT,
    created_at TEXT NOT NULL,
    native_balance TEXT,
    token_balance TEXT,
    fetched_at TEXT
);
"""


@dataclass(frozen=True)
class CachedWallet:
    """The stored session and, if one was ever fetched, its snapshot."""

    session: WalletSession
    snapshot: BalanceSnapshot | None = None


class SessionStore:
    """Single-row SQLite store for the wallet session.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        self._is_memory = self._db_path == ":memory:"

        if self._is_memory:
            self._persistent_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._persistent_conn.row_factory = sqlite3.Row
        else:
            self._persistent_conn = None

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection with proper settings."""
        if self._persistent_conn is not None:
            return self._persistent_conn

        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a database transaction."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if self._persistent_conn is None:
                conn.close()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        with self._transaction() as conn:
            conn.executescript(_SCHEMA)

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def load(self) -> CachedWallet | None:
        """The stored session, or None if logged out."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM wallet_session WHERE id = 1").fetchone()

        if row is None:
            return None

        session = WalletSession(
            address=row["address"],
            bound_email=row["bound_email"],
            created_at=row["created_at"],
        )
        snapshot = None
        if row["native_balance"] is not None and row["token_balance"] is not None:
            try:
                snapshot = BalanceSnapshot(
                    address=row["address"],
                    native_balance=Decimal(row["native_balance"]),
                    token_balance=Decimal(row["token_balance"]),
                    fetched_at=row["fetched_at"] or "",
                )
            except (ArithmeticError, ValueError):
                logger.warning("Discarding unreadable cached snapshot | address=%s", row["address"])
        return CachedWallet(session=session, snapshot=snapshot)

    def save_session(self, session: WalletSession) -> None:
        """Store ``session`` as the active one, replacing any other."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT address FROM wallet_session WHERE id = 1"
            ).fetchone()
            if row is not None and row["address"] == session.address:
                conn.execute(
                    """
                    UPDATE wallet_session
                    SET bound_email = ?, created_at = ?
                    WHERE id = 1
                    """,
                    (session.bound_email, session.created_at),
                )
            else:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO wallet_session
                    (id, address, bound_email, created_at,
                     native_balance, token_balance, fetched_at)
                    VALUES (1, ?, ?, ?, NULL, NULL, NULL)
                    """,
                    (session.address, session.bound_email, session.created_at),
                )

    def save_snapshot(self, snapshot: BalanceSnapshot) -> bool:
        """Overwrite the cached snapshot.

        Returns:
            False if there is no session or it belongs to another address.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE wallet_session
                SET native_balance = ?, token_balance = ?, fetched_at = ?
                WHERE id = 1 AND address = ?
                """,
                (
                    str(snapshot.native_balance),
                    str(snapshot.token_balance),
                    snapshot.fetched_at,
                    snapshot.address,
                ),
            )
            stored = cursor.rowcount == 1

        if not stored:
            logger.debug("Snapshot dropped, no matching session | address=%s", snapshot.address)
        return stored

    def clear(self) -> None:
        """Forget the session and its snapshot (logout)."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM wallet_session")

    def close(self) -> None:
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None
