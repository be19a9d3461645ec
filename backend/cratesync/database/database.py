import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

from cratesync.core.errors import ConstraintViolation

from .repository import LibraryRepository

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"

DEFAULT_INIT_SQL_PATH = Path(__file__).parent / "init.sql"


@dataclass(frozen=True)
class DatabaseContext:
    database_path: Path
    init_sql_path: Path = field(default=DEFAULT_INIT_SQL_PATH)


class Database:
    def __init__(self, context: DatabaseContext):
        self.context = context

    def connect_to_database(self, timeout: float = 5) -> sqlite3.Connection:
        database_path = self.context.database_path
        try:
            conn = sqlite3.connect(database_path, timeout=timeout, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA synchronous=NORMAL")
            return conn
        except sqlite3.Error as e:
            logger.error(f"Error connecting to the sqlite database at {database_path}: {e}")
            raise

    def initialize(self) -> None:
        """Create the schema and the initial bookkeeping rows. Safe to call twice."""
        with open(self.context.init_sql_path, "r") as f:
            init_script = f.read()

        conn = self.connect_to_database()
        try:
            conn.executescript(init_script)
        except sqlite3.Error as e:
            logger.error(
                f"Error loading sqlite init script found at {self.context.init_sql_path}: {e}"
            )
            conn.close()
            raise

        now = datetime.now(UTC).isoformat()
        initial_metadata = [
            ("version", SCHEMA_VERSION),
            ("created_date", now),
            ("last_scan", ""),
            ("total_tracks", "0"),
        ]
        try:
            conn.execute("BEGIN")
            conn.executemany(
                'INSERT OR IGNORE INTO library_metadata ("key", "value", date_modified) '
                "VALUES (?, ?, ?)",
                [(key, value, now) for key, value in initial_metadata],
            )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            conn.execute("ROLLBACK")
            logger.error(f"Failed to insert initial library metadata: {e}")
            raise
        finally:
            conn.close()

        logger.info(f"Initialized library database at {self.context.database_path}")

    @contextmanager
    def transaction(self, timeout: float = 5) -> Iterator[LibraryRepository]:
        """
        Run a block of store operations as one unit. Everything done through the
        yielded repository is committed when the block exits normally and rolled
        back if it raises.
        """
        conn = self.connect_to_database(timeout=timeout)
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                logger.error(f"Unable to start a write transaction: {e}")
                raise

            try:
                yield LibraryRepository(conn)
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.info("Transaction rolled back")
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise ConstraintViolation(f"Commit rejected by the store: {e}") from e
            logger.debug("Transaction committed")
        finally:
            conn.close()

    @contextmanager
    def read(self, timeout: float = 5) -> Iterator[LibraryRepository]:
        conn = self.connect_to_database(timeout=timeout)
        try:
            yield LibraryRepository(conn)
        finally:
            conn.close()
