"""Small pool of SQLite connections shared by the flag store."""
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from queue import Empty, Full, Queue
from typing import Generator, List

logger = logging.getLogger(__name__)


class SQLiteConnectionPool:
    """Thread-safe pool that hands out at most ``max_connections`` connections."""

    def __init__(
        self,
        database: str,
        max_connections: int = 5,
        acquire_timeout: float = 30.0,
        poll_interval: float = 0.1,
    ):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        self.database = database
        self.max_connections = max_connections
        self.acquire_timeout = acquire_timeout
        self.poll_interval = poll_interval
        self._idle: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._all: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _acquire(self) -> sqlite3.Connection:
        deadline = time.monotonic() + self.acquire_timeout
        while True:
            try:
                return self._idle.get(block=False)
            except Empty:
                pass
            with self._lock:
                if len(self._all) < self.max_connections:
                    conn = self._open()
                    self._all.append(conn)
                    logger.debug("Opened SQLite connection %d/%d for %s", len(self._all), self.max_connections, self.database)
                    return conn
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"No SQLite connection available for {self.database} after {self.acquire_timeout:g}s")
            # A discarded connection frees a slot without refilling the queue.
            try:
                return self._idle.get(timeout=min(remaining, self.poll_interval))
            except Empty:
                continue

    def _release(self, conn: sqlite3.Connection) -> None:
        try:
            conn.rollback()
            self._idle.put(conn, block=False)
        except (sqlite3.Error, Full) as exc:
            logger.error("Discarding pooled connection: %s", exc)
            with self._lock:
                if conn in self._all:
                    self._all.remove(conn)
            conn.close()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        conn = self._acquire()
        try:
            yield conn
        finally:
            self._release(conn)

    def close_all(self) -> None:
        with self._lock:
            while True:
                try:
                    self._idle.get(block=False)
                except Empty:
                    break
            for conn in self._all:
                conn.close()
            self._all.clear()
