import sqlite3
import logging
import warnings
from typing import Dict

import pandas as pd

from heart_pipeline.exceptions import EmptyResultWarning, QueryError
from heart_pipeline.silver import CLEAN_TABLE

logger = logging.getLogger("HeartPipeline.Gold")

AGE_BAND_VIEW = "v_heart_ageband"
AGE_BANDS = ("<40", "40-49", "50-59", "60-69", "70+")

TREND_MIN_SUPPORT = 3
INTERACTION_MIN_SUPPORT = 5
RISK_MIN_TRESTBPS = 140
RISK_MIN_CHOL = 240

PREVALENCE_SQL = "ROUND(100.0 * AVG(target), 1)"
SEX_LABEL_SQL = "CASE sex WHEN 0 THEN 'Female' WHEN 1 THEN 'Male' END"
RISK_PREDICATE_SQL = (
    f"trestbps >= {RISK_MIN_TRESTBPS} AND chol >= {RISK_MIN_CHOL} AND exang = 1"
)


def age_band(age: int) -> str:
    """
    Map an age in years to its dashboard band.

    Boundaries match the v_heart_ageband view: 39 is "<40", 40 is "40-49",
    and anything from 70 up is "70+".
    """
    if age < 40:
        return "<40"
    if age < 50:
        return "40-49"
    if age < 60:
        return "50-59"
    if age < 70:
        return "60-69"
    return "70+"


def create_age_band_view(conn: sqlite3.Connection) -> None:
    """
    Recreate the v_heart_ageband view over the heart table.

    The band is computed on every read, so it always reflects the current
    contents of heart.
    """
    with conn:
        conn.execute(f"DROP VIEW IF EXISTS {AGE_BAND_VIEW}")
        conn.execute(f"""
            CREATE VIEW {AGE_BAND_VIEW} AS
            SELECT
                h.*,
                CASE
                    WHEN age < 40 THEN '<40'
                    WHEN age BETWEEN 40 AND 49 THEN '40-49'
                    WHEN age BETWEEN 50 AND 59 THEN '50-59'
                    WHEN age BETWEEN 60 AND 69 THEN '60-69'
                    ELSE '70+'
                END AS age_band
            FROM {CLEAN_TABLE} h
        """)
    logger.info(f"Created view {AGE_BAND_VIEW}.")


def _read(query: str, conn: sqlite3.Connection, kpi: str) -> pd.DataFrame:
    try:
        return pd.read_sql(query, conn)
    except (sqlite3.Error, pd.errors.DatabaseError) as e:
        raise QueryError(f"KPI '{kpi}' failed: {e}") from e


def _warn_empty(kpi: str, reason: str) -> None:
    message = f"KPI '{kpi}' has no supporting rows: {reason}"
    logger.warning(message)
    warnings.warn(message, EmptyResultWarning, stacklevel=3)


def overall_prevalence(conn: sqlite3.Connection) -> pd.DataFrame:
    """Percentage of patients with heart disease."""
    query = f"""
        SELECT {PREVALENCE_SQL} AS pct_with_disease
        FROM {CLEAN_TABLE}
    """
    return _read(query, conn, "overall_prevalence")


def prevalence_by_sex(conn: sqlite3.Connection) -> pd.DataFrame:
    """Patient count and prevalence per sex, highest prevalence first."""
    query = f"""
        SELECT
            {SEX_LABEL_SQL} AS sex,
            COUNT(*) AS n,
            {PREVALENCE_SQL} AS pct_with_disease
        FROM {CLEAN_TABLE}
        GROUP BY sex
        ORDER BY pct_with_disease DESC
    """
    return _read(query, conn, "prevalence_by_sex")


def prevalence_by_age_band(conn: sqlite3.Connection) -> pd.DataFrame:
    """
    Patient count and prevalence per age band.

    Rows come back in chronological band order ("<40" first), not sorted as
    text.
    """
    band_order = "\n".join(
        f"                WHEN '{band}' THEN {rank}" for rank, band in enumerate(AGE_BANDS, start=1)
    )
    query = f"""
        SELECT
            age_band,
            COUNT(*) AS n,
            {PREVALENCE_SQL} AS pct_with_disease
        FROM {AGE_BAND_VIEW}
        GROUP BY age_band
        ORDER BY
            CASE age_band
{band_order}
                ELSE {len(AGE_BANDS) + 1}
            END
    """
    return _read(query, conn, "prevalence_by_age_band")


def cholesterol_trend(conn: sqlite3.Connection) -> pd.DataFrame:
    """
    Average cholesterol per age, for the line chart.

    Ages with fewer than TREND_MIN_SUPPORT patients are left out.
    """
    query = f"""
        SELECT
            age,
            ROUND(AVG(chol), 1) AS avg_chol,
            COUNT(*) AS n
        FROM {CLEAN_TABLE}
        GROUP BY age
        HAVING COUNT(*) >= {TREND_MIN_SUPPORT}
        ORDER BY age
    """
    df = _read(query, conn, "cholesterol_trend")
    if df.empty:
        _warn_empty("cholesterol_trend", f"no age has at least {TREND_MIN_SUPPORT} patients")
    return df


def risk_slice(conn: sqlite3.Connection) -> pd.DataFrame:
    """
    Count and prevalence for the high-risk profile: resting BP >= 140,
    cholesterol >= 240 and exercise-induced angina.
    """
    query = f"""
        SELECT
            COUNT(*) AS risk_patients,
            {PREVALENCE_SQL} AS risk_prevalence_pct
        FROM {CLEAN_TABLE}
        WHERE {RISK_PREDICATE_SQL}
    """
    df = _read(query, conn, "risk_slice")
    if df["risk_patients"].iloc[0] == 0:
        _warn_empty("risk_slice", "no patient matches the risk profile")
    return df


def sex_chest_pain_interaction(conn: sqlite3.Connection) -> pd.DataFrame:
    """Prevalence per sex and chest pain type, for groups of at least INTERACTION_MIN_SUPPORT."""
    query = f"""
        SELECT
            {SEX_LABEL_SQL} AS sex,
            cp AS chest_pain_type,
            COUNT(*) AS n,
            {PREVALENCE_SQL} AS pct_with_disease
        FROM {CLEAN_TABLE}
        GROUP BY sex, cp
        HAVING COUNT(*) >= {INTERACTION_MIN_SUPPORT}
        ORDER BY pct_with_disease DESC
    """
    df = _read(query, conn, "sex_chest_pain_interaction")
    if df.empty:
        _warn_empty(
            "sex_chest_pain_interaction",
            f"no sex/chest pain group has at least {INTERACTION_MIN_SUPPORT} patients",
        )
    return df


def summary_card(conn: sqlite3.Connection) -> pd.DataFrame:
    """
    One-row summary matching the dashboard cards.

    The overall figures and the risk slice are aggregated separately and
    combined with a CROSS JOIN of the two single-row results.
    """
    query = f"""
        WITH
        overall AS (
            SELECT
                COUNT(*) AS total_patients,
                {PREVALENCE_SQL} AS pct_with_disease,
                CAST(ROUND(AVG(age), 0) AS INTEGER) AS avg_age,
                CAST(ROUND(AVG(chol), 0) AS INTEGER) AS avg_chol
            FROM {CLEAN_TABLE}
        ),
        risk AS (
            SELECT
                COUNT(*) AS risk_patients,
                {PREVALENCE_SQL} AS risk_pct
            FROM {CLEAN_TABLE}
            WHERE {RISK_PREDICATE_SQL}
        )
        SELECT
            o.total_patients,
            o.pct_with_disease,
            o.avg_age,
            o.avg_chol,
            r.risk_patients,
            r.risk_pct
        FROM overall o
        CROSS JOIN risk r
    """
    return _read(query, conn, "summary_card")


KPI_QUERIES = {
    "overall_prevalence": overall_prevalence,
    "prevalence_by_sex": prevalence_by_sex,
    "prevalence_by_age_band": prevalence_by_age_band,
    "cholesterol_trend": cholesterol_trend,
    "risk_slice": risk_slice,
    "sex_chest_pain_interaction": sex_chest_pain_interaction,
    "summary_card": summary_card,
}


def run_kpis(conn: sqlite3.Connection) -> Dict[str, pd.DataFrame]:
    """
    Run every KPI query against the heart table.

    Args:
        conn: Open SQLite connection with heart and v_heart_ageband built

    Returns:
        KPI name -> result frame, in dashboard order

    Raises:
        QueryError: If a query fails, e.g. because heart does not exist
    """
    results = {}
    for name, kpi in KPI_QUERIES.items():
        results[name] = kpi(conn)
        logger.info(f"KPI {name}: {len(results[name])} row(s)")
    return results


def profile_heart(conn: sqlite3.Connection) -> Dict[str, pd.DataFrame]:
    """
    Quick sanity checks on the freshly built heart table.

    Returns:
        Check name -> result frame
    """
    checks = {
        "total_patients": f"SELECT COUNT(*) AS total_patients FROM {CLEAN_TABLE}",
        "target_distribution": f"""
            SELECT target AS heart_disease, COUNT(*) AS n
            FROM {CLEAN_TABLE}
            GROUP BY target
            ORDER BY target
        """,
        "age_range": f"""
            SELECT MIN(age) AS min_age, ROUND(AVG(age), 1) AS avg_age, MAX(age) AS max_age
            FROM {CLEAN_TABLE}
        """,
        "cholesterol": f"""
            SELECT ROUND(AVG(chol), 1) AS avg_chol, SUM(chol IS NULL) AS missing_chol
            FROM {CLEAN_TABLE}
        """,
        "missing_markers": f"""
            SELECT SUM(ca IS NULL) AS missing_ca, SUM(thal IS NULL) AS missing_thal
            FROM {CLEAN_TABLE}
        """,
    }
    return {name: _read(query, conn, name) for name, query in checks.items()}
