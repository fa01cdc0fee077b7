import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from flask import Flask

from infrastructure.database.ops.job_leases import JobLeaseOperations
from infrastructure.database.ops.schedule_events import ScheduleEventOperations
from infrastructure.database.ops.schedule_history import ScheduleHistoryOperations
from infrastructure.database.ops.user_profiles import UserProfileOperations

logger = logging.getLogger(__name__)


class SQLiteDatabaseHandler(
    ScheduleEventOperations,
    ScheduleHistoryOperations,
    UserProfileOperations,
    JobLeaseOperations,
):
    """Thread-safe SQLite handler decoupled from Flask globals."""

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._local = threading.local()

        # Ensure the directory for the database file exists
        if database_path != ":memory:":
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    # --- Lifecycle ------------------------------------------------------------
    def init_app(self, app: Flask | None = None) -> None:
        if app is not None:
            app.teardown_appcontext(self.close_db)
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = self._open_connection()
            except sqlite3.DatabaseError as exc:
                if self._is_corruption_error(exc):
                    logger.error("Database appears corrupt (%s). Recreating a fresh database.", exc)
                    self._quarantine_corrupt_db()
                    connection = self._open_connection()
                else:
                    raise
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        message = str(exc).lower()
        return (
            "database disk image is malformed" in message
            or "file is not a database" in message
            or "file is encrypted or is not a database" in message
        )

    def _quarantine_corrupt_db(self) -> Optional[Path]:
        db_path = Path(self._database_path)
        if not db_path.exists():
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        quarantine_dir = db_path.parent / "corrupt"
        quarantine_dir.mkdir(parents=True, exist_ok=True)

        suffix = db_path.suffix or ".db"
        quarantined = quarantine_dir / f"{db_path.stem}_corrupt_{timestamp}{suffix}"
        try:
            shutil.move(str(db_path), str(quarantined))
            for sidecar_suffix in ("-wal", "-shm"):
                sidecar = Path(f"{db_path}{sidecar_suffix}")
                if sidecar.exists():
                    shutil.move(str(sidecar), str(quarantine_dir / f"{sidecar.name}_{timestamp}"))
            logger.warning("Quarantined corrupt database to %s", quarantined)
            return quarantined
        except OSError as exc:
            logger.error("Failed to quarantine corrupt database %s: %s", db_path, exc)
            return None

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure SQLite connection.

        - WAL mode: concurrent readers while a job writes
        - NORMAL synchronous: still safe with WAL
        - busy_timeout: wait for another instance's write instead of failing
        """
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA busy_timeout=5000")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")
            self._local.tx_depth = 0
            self._local.after_commit = []

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_db()
        try:
            yield conn
        finally:
            if not getattr(self._local, "tx_depth", 0):
                conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Atomic unit of work on this thread's connection.

        Nested calls join the outer transaction; only the outermost level
        commits, and any exception rolls the whole unit back.
        """
        conn = self.get_db()
        depth = getattr(self._local, "tx_depth", 0)
        self._local.tx_depth = depth + 1
        try:
            yield conn
        except BaseException:
            self._local.tx_depth = depth
            if depth == 0:
                conn.rollback()
                self._local.after_commit = []
            raise
        self._local.tx_depth = depth
        if depth == 0:
            try:
                conn.commit()
            except BaseException:
                self._local.after_commit = []
                raise
            self._run_after_commit()

    def after_commit(self, callback: Callable[[], None]) -> None:
        """
        Run ``callback`` once the current unit of work is committed.

        Outside a transaction the write has already been committed, so the
        callback runs immediately. Inside one it is queued and dropped if
        the outermost transaction rolls back.
        """
        if getattr(self._local, "tx_depth", 0):
            pending = getattr(self._local, "after_commit", None)
            if pending is None:
                pending = self._local.after_commit = []
            pending.append(callback)
        else:
            callback()

    def _run_after_commit(self) -> None:
        pending = getattr(self._local, "after_commit", None) or []
        self._local.after_commit = []
        for callback in pending:
            try:
                callback()
            except Exception as exc:
                logger.error("Post-commit callback failed: %s", exc, exc_info=True)

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables in the database if they do not already exist."""
        try:
            with self.connection() as db:
                # =============================================================================
                # Schedule Events (one row per half of a schedule period)
                # =============================================================================
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ScheduleEvents (
                        id TEXT PRIMARY KEY,
                        group_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        site_id TEXT NOT NULL DEFAULT '',
                        name TEXT NOT NULL DEFAULT '',
                        description TEXT,
                        days_of_week TEXT NOT NULL DEFAULT '[0,1,2,3,4,5,6]',
                        timezone TEXT NOT NULL DEFAULT 'UTC',
                        scheduled_time TEXT NOT NULL,
                        trigger_expression TEXT NOT NULL,
                        event_kind TEXT NOT NULL,
                        backup_percent INTEGER NOT NULL,
                        enabled BOOLEAN NOT NULL DEFAULT 1,
                        is_temporary BOOLEAN NOT NULL DEFAULT 0,
                        expires_at TEXT,
                        reconciliation_mode TEXT NOT NULL DEFAULT 'continuous',
                        schedule_kind TEXT NOT NULL DEFAULT 'basic',
                        weather_scaling_factor INTEGER,
                        last_evaluation_note TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                db.execute("CREATE INDEX IF NOT EXISTS idx_schedule_events_group ON ScheduleEvents(group_id)")
                db.execute("CREATE INDEX IF NOT EXISTS idx_schedule_events_user ON ScheduleEvents(user_id)")
                db.execute("CREATE INDEX IF NOT EXISTS idx_schedule_events_enabled ON ScheduleEvents(enabled)")

                # =============================================================================
                # Execution History (append-only job outcomes)
                # =============================================================================
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ScheduleExecutionHistory (
                        id TEXT PRIMARY KEY,
                        schedule_id TEXT NOT NULL,
                        group_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        schedule_name TEXT,
                        execution_time TEXT NOT NULL,
                        status TEXT NOT NULL,
                        job_type TEXT NOT NULL,
                        details TEXT,
                        trigger_expression TEXT,
                        trigger_description TEXT
                    )
                    """
                )
                db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_schedule_history_user_time "
                    "ON ScheduleExecutionHistory(user_id, execution_time DESC)"
                )

                # =============================================================================
                # Audit Events (append-only configuration changes)
                # =============================================================================
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ScheduleAuditEvents (
                        id TEXT PRIMARY KEY,
                        group_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        schedule_name TEXT,
                        action TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        details TEXT
                    )
                    """
                )
                db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_schedule_audit_user_time "
                    "ON ScheduleAuditEvents(user_id, timestamp DESC)"
                )

                # User profile state read and written by the planner
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS UserProfiles (
                        user_id TEXT PRIMARY KEY,
                        zip_code TEXT,
                        forced_charging_active BOOLEAN NOT NULL DEFAULT 0
                    )
                    """
                )

                # Cross-instance job leases
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS JobLeases (
                        name TEXT PRIMARY KEY,
                        lock_until REAL NOT NULL,
                        locked_at REAL NOT NULL,
                        locked_by TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            logger.error("Error creating tables: %s", exc)
            raise
