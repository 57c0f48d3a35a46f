import os
import sqlite3

import pandas as pd
import pytest

from conftest import SAMPLE_ROWS, UNIQUE_ROWS, write_csv
from heart_pipeline import run_pipeline
from heart_pipeline.bronze import STAGING_TABLE
from heart_pipeline.config import PipelineConfig
from heart_pipeline.database import table_exists
from heart_pipeline.gold import KPI_QUERIES
from heart_pipeline.run_pipeline import export_results, main, rebuild, run, upload_file_to_s3


class FakeS3Client:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []

    def upload_file(self, local_file, bucket, key):
        if self.fail:
            raise RuntimeError("access denied")
        self.uploads.append((local_file, bucket, key))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for name in ("HEART_CSV_FILE", "HEART_DB_FILE", "HEART_EXPORT_DIR", "HEART_EXPORT_FORMAT",
                 "HEART_S3_BUCKET", "HEART_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HEART_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def fake_s3(monkeypatch):
    client = FakeS3Client()
    monkeypatch.setattr(run_pipeline.boto3, "client", lambda service, region_name=None: client)
    return client


def test_rebuild_reports_counts(conn, sample_csv):
    counts = rebuild(conn, sample_csv)

    assert counts == {"raw_rows": len(SAMPLE_ROWS), "clean_rows": len(UNIQUE_ROWS)}
    assert table_exists(conn, "v_heart_ageband")


def test_rebuild_can_reuse_staging(conn, sample_csv):
    rebuild(conn, sample_csv)
    assert rebuild(conn) == {"raw_rows": None, "clean_rows": len(UNIQUE_ROWS)}


def test_main_exports_kpis_and_snapshot(tmp_path, sample_csv):
    export_dir = tmp_path / "exports"
    db_file = tmp_path / "db" / "heart.db"

    code = main(["--csv", sample_csv, "--db", str(db_file), "--export-dir", str(export_dir), "--format", "csv"])

    assert code == 0
    files = sorted(os.listdir(export_dir))
    assert len(files) == len(KPI_QUERIES) + 1
    assert any(name.endswith("_heart.db") for name in files)

    summary_file = next(name for name in files if name.endswith("_summary_card.csv"))
    summary = pd.read_csv(export_dir / summary_file)
    assert summary["total_patients"].iloc[0] == len(UNIQUE_ROWS)
    assert (tmp_path / "logs" / "heart_pipeline.log").exists()

    with sqlite3.connect(db_file) as conn:
        assert conn.execute("SELECT COUNT(*) FROM heart").fetchone()[0] == len(UNIQUE_ROWS)
        assert table_exists(conn, STAGING_TABLE)


def test_main_discard_raw_and_no_export(tmp_path, sample_csv):
    db_file = tmp_path / "heart.db"

    code = main(["--csv", sample_csv, "--db", str(db_file), "--discard-raw", "--no-export",
                 "--export-dir", str(tmp_path / "exports")])

    assert code == 0
    assert not (tmp_path / "exports").exists()
    with sqlite3.connect(db_file) as conn:
        assert not table_exists(conn, STAGING_TABLE)


def test_main_fails_on_bad_input(tmp_path, caplog):
    bad_csv = write_csv(tmp_path / "bad.csv", [row[:13] for row in UNIQUE_ROWS], header=[
        "age", "sex", "cp", "trestbps", "chol", "fbs", "restecg",
        "thalach", "exang", "oldpeak", "slope", "ca", "thal",
    ])

    code = main(["--csv", bad_csv, "--db", str(tmp_path / "heart.db"), "--no-export"])

    assert code == 1
    assert "missing required columns" in caplog.text


def test_skip_load_without_staging_fails(tmp_path):
    code = main(["--db", str(tmp_path / "heart.db"), "--skip-load", "--no-export"])
    assert code == 1


def test_run_uploads_exports_to_s3(tmp_path, sample_csv, fake_s3):
    config = PipelineConfig(
        csv_file=sample_csv,
        db_file=str(tmp_path / "heart.db"),
        export_dir=str(tmp_path / "exports"),
        export_format="csv",
        s3_bucket="heart-dashboard",
        log_dir=None,
    )

    assert run(config) == 0
    assert len(fake_s3.uploads) == len(KPI_QUERIES) + 1
    assert {bucket for _, bucket, _ in fake_s3.uploads} == {"heart-dashboard"}
    assert all(key == os.path.basename(local) for local, _, key in fake_s3.uploads)


def test_upload_failure_is_logged(tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(run_pipeline.boto3, "client", lambda service, region_name=None: FakeS3Client(fail=True))
    local_file = tmp_path / "kpi.csv"
    local_file.write_text("a\n1\n")

    assert upload_file_to_s3(str(local_file), "bucket", "kpi.csv", "us-east-1") is False
    assert "access denied" in caplog.text


def test_export_results_skips_empty_frames(tmp_path):
    frames = {
        "filled": pd.DataFrame({"n": [1, 2]}),
        "empty": pd.DataFrame({"n": []}),
    }

    written = export_results(frames, str(tmp_path), "ts", fmt="csv")

    assert written == [os.path.join(str(tmp_path), "ts_filled.csv")]


def test_export_results_parquet(tmp_path):
    pytest.importorskip("pyarrow")
    frames = {"summary_card": pd.DataFrame({"total_patients": [13], "pct_with_disease": [53.8]})}

    [path] = export_results(frames, str(tmp_path), "ts")

    assert path.endswith("ts_summary_card.parquet")
    assert pd.read_parquet(path).equals(frames["summary_card"])


def test_export_results_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        export_results({}, str(tmp_path), "ts", fmt="xlsx")


def test_bad_export_format_in_environment_exits_cleanly(tmp_path, sample_csv, monkeypatch, caplog):
    monkeypatch.setenv("HEART_EXPORT_FORMAT", "xlsx")

    code = main(["--csv", sample_csv, "--db", str(tmp_path / "heart.db")])

    assert code == 1
    assert "Invalid configuration" in caplog.text
    assert not (tmp_path / "heart.db").exists()


def test_bad_log_level_exits_cleanly(tmp_path, sample_csv, caplog):
    code = main(["--csv", sample_csv, "--db", str(tmp_path / "heart.db"), "--log-level", "chatty"])

    assert code == 1
    assert "Invalid configuration" in caplog.text
