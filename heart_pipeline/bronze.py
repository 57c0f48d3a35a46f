import csv
import os
import sqlite3
import logging
from typing import List

from heart_pipeline.exceptions import LoadError

logger = logging.getLogger("HeartPipeline.Bronze")

STAGING_TABLE = "heart_raw"

REQUIRED_COLUMNS = [
    'age', 'sex', 'cp', 'trestbps', 'chol', 'fbs', 'restecg',
    'thalach', 'exang', 'oldpeak', 'slope', 'ca', 'thal', 'target'
]


def create_staging_table(cursor):
    """
    Recreate the heart_raw staging table. Every column is untyped TEXT so the
    raw values land exactly as they appear in the CSV.
    """
    cursor.execute(f"DROP TABLE IF EXISTS {STAGING_TABLE}")
    columns = ",\n            ".join(f"{col} TEXT" for col in REQUIRED_COLUMNS)
    cursor.execute(f"""
        CREATE TABLE {STAGING_TABLE} (
            {columns}
        )
    """)


def validate_csv_structure(csv_file: str, required_columns: list) -> List[str]:
    """
    Validate the header of the CSV file.

    Args:
        csv_file: Path to the CSV file
        required_columns: List of required column names

    Returns:
        The required columns missing from the header (empty if the header is complete)
    """
    with open(csv_file, newline='', encoding='utf-8-sig') as f:
        reader = csv.DictReader(f)
        csv_columns = reader.fieldnames
        if not csv_columns:
            logger.error("CSV file is empty or has no headers.")
            return list(required_columns)
        csv_columns = [col.strip() for col in csv_columns]
        missing_columns = [col for col in required_columns if col not in csv_columns]
        if missing_columns:
            logger.error(f"CSV file is missing required columns: {missing_columns}")
        return missing_columns


def ingest_csv(conn: sqlite3.Connection, csv_file: str) -> int:
    """
    Load a raw heart-disease CSV into the heart_raw staging table.

    The staging table is replaced on every call. Values are stored verbatim:
    duplicates, whitespace and '?' markers are left for the silver layer.

    Args:
        conn: Open SQLite connection
        csv_file: Path to the CSV file

    Returns:
        Number of rows loaded

    Raises:
        LoadError: If the file does not exist or lacks a required column
    """
    if not os.path.exists(csv_file):
        raise LoadError(f"CSV file not found: {csv_file}")

    missing_columns = validate_csv_structure(csv_file, REQUIRED_COLUMNS)
    if missing_columns:
        raise LoadError(f"CSV file {csv_file} is missing required columns: {missing_columns}")

    placeholders = ", ".join("?" for _ in REQUIRED_COLUMNS)
    insert_sql = (
        f"INSERT INTO {STAGING_TABLE} ({', '.join(REQUIRED_COLUMNS)}) "
        f"VALUES ({placeholders})"
    )

    with open(csv_file, newline='', encoding='utf-8-sig') as f:
        reader = csv.DictReader(f)
        reader.fieldnames = [col.strip() for col in reader.fieldnames]
        rows = [tuple(row[col] for col in REQUIRED_COLUMNS) for row in reader]

    with conn:
        cursor = conn.cursor()
        create_staging_table(cursor)
        cursor.executemany(insert_sql, rows)

    logger.info(f"Successfully ingested {len(rows)} records into {STAGING_TABLE}.")
    return len(rows)


def discard_staging(conn: sqlite3.Connection) -> None:
    """Drop the staging table once the clean table has been built."""
    with conn:
        conn.execute(f"DROP TABLE IF EXISTS {STAGING_TABLE}")
    logger.info(f"Dropped staging table {STAGING_TABLE}.")
