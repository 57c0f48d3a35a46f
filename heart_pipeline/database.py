import os
import shutil
import sqlite3
import logging

logger = logging.getLogger("HeartPipeline.Database")

MEMORY_DB = ":memory:"


def connect(db_file: str) -> sqlite3.Connection:
    """
    Open the SQLite database used for one pipeline run.

    The parent directory is created if needed. The returned connection is the
    only handle the layers use; callers own it and must close it.

    Args:
        db_file: Path to the SQLite database file, or ":memory:"

    Returns:
        SQLite connection object
    """
    if db_file != MEMORY_DB:
        db_dir = os.path.dirname(os.path.abspath(db_file))
        os.makedirs(db_dir, exist_ok=True)
        if not os.path.exists(db_file):
            logger.info(f"Database created at: {db_file}")
    return sqlite3.connect(db_file)


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    """Return True if a table or view called ``name`` exists."""
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type IN ('table', 'view') AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def count_rows(conn: sqlite3.Connection, table: str) -> int:
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def snapshot_database(db_file: str, output_dir: str, ts: str) -> str:
    """
    Copy the database file into output_dir with a timestamp prefix.

    Returns:
        Path of the copy
    """
    os.makedirs(output_dir, exist_ok=True)
    db_copy = os.path.join(output_dir, f"{ts}_{os.path.basename(db_file)}")
    shutil.copy2(db_file, db_copy)
    logger.info(f"Copied database {db_file} to {db_copy}")
    return db_copy
