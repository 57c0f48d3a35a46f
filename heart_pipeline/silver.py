import sqlite3
import logging
from typing import List

import pandas as pd

from heart_pipeline.bronze import REQUIRED_COLUMNS, STAGING_TABLE
from heart_pipeline.database import count_rows, table_exists
from heart_pipeline.exceptions import LoadError

logger = logging.getLogger("HeartPipeline.Silver")

CLEAN_TABLE = "heart"

MISSING_MARKER = "?"
SENTINEL_COLUMNS = ("ca", "thal")
INDEXED_COLUMNS = ("target", "sex", "age")

# Text that CAST converts without truncation. Integers may carry a zero fraction.
CASTABLE_PATTERNS = {
    'INTEGER': r"[+-]?\d+(?:\.0*)?",
    'REAL': r"[+-]?(?:\d+\.?\d*|\.\d+)",
}

COLUMN_TYPES = {
    'age': 'INTEGER',
    'sex': 'INTEGER',       # 0=female, 1=male
    'cp': 'INTEGER',        # chest pain type (0-3)
    'trestbps': 'INTEGER',  # resting blood pressure (mm Hg)
    'chol': 'INTEGER',      # serum cholesterol (mg/dl)
    'fbs': 'INTEGER',       # fasting blood sugar > 120 mg/dl (1/0)
    'restecg': 'INTEGER',   # resting ECG (0-2)
    'thalach': 'INTEGER',   # max heart rate achieved
    'exang': 'INTEGER',     # exercise-induced angina (1/0)
    'oldpeak': 'REAL',      # ST depression, kept at full precision
    'slope': 'INTEGER',     # slope of ST segment (0-2)
    'ca': 'INTEGER',        # major vessels colored by fluoroscopy (0-3), NULL if unknown
    'thal': 'INTEGER',      # thalassemia code, NULL if unknown
    'target': 'INTEGER',    # 1=disease, 0=no disease
}


def create_clean_table(cursor):
    """
    Create the typed heart table. Callers drop the previous one first.
    """
    columns = ",\n            ".join(f"{col} {sql_type}" for col, sql_type in COLUMN_TYPES.items())
    cursor.execute(f"""
        CREATE TABLE {CLEAN_TABLE} (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            {columns}
        )
    """)


def _cast_expression(column: str) -> str:
    if column in SENTINEL_COLUMNS:
        return f"CAST(NULLIF(TRIM({column}), '{MISSING_MARKER}') AS {COLUMN_TYPES[column]})"
    return f"CAST({column} AS {COLUMN_TYPES[column]})"


def build_insert_sql() -> str:
    """Return the INSERT ... SELECT DISTINCT statement that fills heart from heart_raw."""
    columns = ", ".join(REQUIRED_COLUMNS)
    casts = ",\n            ".join(_cast_expression(col) for col in REQUIRED_COLUMNS)
    return f"""
        INSERT INTO {CLEAN_TABLE} ({columns})
        SELECT DISTINCT
            {casts}
        FROM {STAGING_TABLE}
    """


def validate_staging(conn: sqlite3.Connection) -> int:
    """
    Check that every staging value can be cast to its declared type.

    SQLite's CAST keeps only the numeric prefix of a string, so "1e3" becomes
    1 and "inf" becomes 0. Values are matched against plain decimal notation
    here, before the clean table is touched. The '?' marker and NULL are
    only accepted in the sentinel columns.

    Args:
        conn: Open SQLite connection

    Returns:
        Number of staging rows

    Raises:
        LoadError: If heart_raw is absent, lacks a column, or holds an uncastable value
    """
    if not table_exists(conn, STAGING_TABLE):
        raise LoadError(f"Staging table {STAGING_TABLE} does not exist. Load the raw CSV first.")

    raw_df = pd.read_sql(f"SELECT * FROM {STAGING_TABLE}", conn)
    missing_columns = [col for col in REQUIRED_COLUMNS if col not in raw_df.columns]
    if missing_columns:
        raise LoadError(f"Staging table {STAGING_TABLE} is missing required columns: {missing_columns}")

    for column in REQUIRED_COLUMNS:
        text = raw_df[column].astype("string").str.strip()
        if column in SENTINEL_COLUMNS:
            text = text.mask((text == MISSING_MARKER).fillna(False))
            allowed_missing = text.isna()
        else:
            allowed_missing = pd.Series(False, index=text.index)

        pattern = CASTABLE_PATTERNS[COLUMN_TYPES[column]]
        castable = text.str.fullmatch(pattern).fillna(False).astype(bool)
        bad = ~castable & ~allowed_missing
        if bad.any():
            samples = raw_df.loc[bad, column].head(5).tolist()
            raise LoadError(
                f"Column '{column}' has {int(bad.sum())} value(s) that cannot be cast to "
                f"{COLUMN_TYPES[column]}: {samples}"
            )

    return len(raw_df)


def clean_staging(conn: sqlite3.Connection) -> int:
    """
    Rebuild the heart table from heart_raw.

    Every field is cast to its declared type, '?' markers in ca and thal become
    NULL, and fully identical rows are collapsed with SELECT DISTINCT. The drop,
    create and insert run in one transaction, so a failure leaves the previous
    heart table as it was.

    Args:
        conn: Open SQLite connection

    Returns:
        Number of rows in the rebuilt heart table

    Raises:
        LoadError: If the staging data fails validation
    """
    raw_count = validate_staging(conn)
    logger.info(f"Read {raw_count} records from {STAGING_TABLE} for cleaning.")

    conn.commit()
    try:
        conn.execute("BEGIN")
        cursor = conn.cursor()
        cursor.execute(f"DROP TABLE IF EXISTS {CLEAN_TABLE}")
        create_clean_table(cursor)
        cursor.execute(build_insert_sql())
        clean_count = count_rows(conn, CLEAN_TABLE)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error(f"Rebuilding {CLEAN_TABLE} failed; previous table kept.")
        raise

    logger.info(
        f"Successfully cleaned {clean_count} unique records into {CLEAN_TABLE} "
        f"({raw_count - clean_count} duplicates removed)."
    )
    return clean_count


def create_indexes(conn: sqlite3.Connection) -> List[str]:
    """
    Create lookup indexes on the columns KPI queries filter and group by.

    Safe to call repeatedly.

    Returns:
        Names of the indexes
    """
    names = []
    with conn:
        for column in INDEXED_COLUMNS:
            name = f"idx_{CLEAN_TABLE}_{column}"
            conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {CLEAN_TABLE}({column})")
            names.append(name)
    logger.info(f"Indexes ensured on {CLEAN_TABLE}: {names}")
    return names
