import csv
import sqlite3

import pytest

from heart_pipeline.bronze import REQUIRED_COLUMNS
from heart_pipeline.run_pipeline import rebuild

# age, sex, cp, trestbps, chol, fbs, restecg, thalach, exang, oldpeak, slope, ca, thal, target
UNIQUE_ROWS = [
    ["45", "1", "0", "150", "250", "0", "1", "140", "1", "2.3", "1", "0", "2", "1"],
    ["45", "1", "0", "130", "200", "0", "1", "150", "0", "1.0", "1", "1", "3", "0"],
    ["45", "1", "0", "145", "260", "1", "0", "130", "1", "3.1", "2", " ? ", "3", "1"],
    ["62", "1", "0", "120", "220", "0", "0", "120", "0", "0.5", "1", "2", "?", "0"],
    ["62", "1", "0", "160", "300", "0", "1", "110", "1", "1.5", "0", "3", "7", "1"],
    ["38", "1", "2", "125", "180", "0", "1", "170", "0", "0.0", "2", "0", "2", "0"],
    ["71", "1", "2", "140", "240", "0", "1", "115", "1", "4.2", "1", "1", "3", "0"],
    ["45", "0", "1", "110", "210", "0", "0", "160", "0", "0.2", "2", "0", "2", "0"],
    ["52", "0", "1", "118", "230", "0", "1", "165", "0", "0.0", "2", "0", "2", "1"],
    ["52", "0", "1", "135", "280", "0", "1", "150", "0", "0.6", "1", "0", "2", "1"],
    ["52", "0", "1", "128", "205", "0", "0", "172", "0", "0.0", "2", "?", "2", "1"],
    ["62", "0", "1", "140", "260", "1", "0", "140", "0", "1.2", "1", "1", "3", "1"],
    ["39", "0", "3", "100", "195", "0", "0", "180", "0", "0.0", "2", "0", "2", "0"],
]

# Same values as a unique row once cast and trimmed.
DUPLICATE_ROWS = [
    list(UNIQUE_ROWS[0]),
    list(UNIQUE_ROWS[5]),
    UNIQUE_ROWS[7][:11] + ["0 "] + UNIQUE_ROWS[7][12:],
    UNIQUE_ROWS[10][:11] + [" ? "] + UNIQUE_ROWS[10][12:],
]

SAMPLE_ROWS = UNIQUE_ROWS + DUPLICATE_ROWS


def write_csv(path, rows, header=REQUIRED_COLUMNS):
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return str(path)


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def sample_csv(tmp_path):
    return write_csv(tmp_path / "heart.csv", SAMPLE_ROWS)


@pytest.fixture
def heart_conn(conn, sample_csv):
    """Connection with heart, its indexes and v_heart_ageband built from the sample CSV."""
    rebuild(conn, sample_csv)
    return conn
