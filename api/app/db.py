import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from .validation import validate_filename

logger = logging.getLogger(__name__)

# Must run unchanged on SQLite and PostgreSQL.
MIGRATIONS = (
    """
    CREATE TABLE IF NOT EXISTS downloads (
      filename TEXT PRIMARY KEY,
      count INTEGER NOT NULL DEFAULT 0,
      first_download TEXT NOT NULL,
      last_download TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS download_logs (
      filename TEXT NOT NULL,
      timestamp TEXT NOT NULL,
      ip_address TEXT,
      user_agent TEXT
    );
    """,
    "CREATE INDEX IF NOT EXISTS ix_download_logs_filename ON download_logs (filename);",
)

UPSERT_COUNT_SQL = text(
    """
    INSERT INTO downloads (filename, count, first_download, last_download)
    VALUES (:filename, 1, :now, :now)
    ON CONFLICT (filename)
    DO UPDATE SET
      count = downloads.count + 1,
      last_download = EXCLUDED.last_download;
    """
)

INSERT_LOG_SQL = text(
    """
    INSERT INTO download_logs (filename, timestamp, ip_address, user_agent)
    VALUES (:filename, :now, :ip_address, :user_agent);
    """
)

SEED_COUNT_SQL = text(
    """
    INSERT INTO downloads (filename, count, first_download, last_download)
    VALUES (:filename, :count, :now, :now)
    ON CONFLICT (filename)
    DO UPDATE SET
      count = CASE WHEN EXCLUDED.count > downloads.count THEN EXCLUDED.count ELSE downloads.count END;
    """
)


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # sync endpoints run in a threadpool
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def run_migrations(engine: Engine) -> None:
    with engine.begin() as conn:
        for statement in MIGRATIONS:
            conn.execute(text(statement))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DownloadStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def increment(self, filename: str, ip_address: str | None = None, user_agent: str | None = None) -> int:
        """Bump the counter and log the download in one transaction; returns the new count."""
        params = {"filename": filename, "now": _now(), "ip_address": ip_address, "user_agent": user_agent}
        with self.engine.begin() as conn:
            conn.execute(UPSERT_COUNT_SQL, params)
            conn.execute(INSERT_LOG_SQL, params)
            count = conn.execute(
                text("SELECT count FROM downloads WHERE filename = :filename"),
                {"filename": filename},
            ).scalar_one()
        return int(count)

    def counts(self) -> dict[str, int]:
        with self.engine.begin() as conn:
            rows = conn.execute(text("SELECT filename, count FROM downloads")).mappings().all()
        return {str(row["filename"]): int(row["count"]) for row in rows}

    def total(self) -> int:
        with self.engine.begin() as conn:
            value = conn.execute(text("SELECT COALESCE(SUM(count), 0) FROM downloads")).scalar_one()
        return int(value)

    def import_counts(self, counts: dict[str, int]) -> int:
        imported = 0
        with self.engine.begin() as conn:
            for filename, count in counts.items():
                if not validate_filename(filename) or isinstance(count, bool) or not isinstance(count, int) or count < 0:
                    logger.warning("Skipping legacy download count for %r", filename)
                    continue
                conn.execute(SEED_COUNT_SQL, {"filename": filename, "count": count, "now": _now()})
                imported += 1
        return imported


def import_legacy_counts(store: DownloadStore, path: Path) -> int:
    """Seed counters from an old downloads.json ({filename: count}). Missing file is not an error."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return 0
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return 0
    imported = store.import_counts(data)
    logger.info("Imported %d legacy download counts from %s", imported, path)
    return imported
