"""
Heart disease pipeline runner.

Loads the raw CSV into heart_raw, rebuilds the clean heart table with its
indexes and age band view, runs the KPI battery, and exports the results for
the dashboard (optionally copying them to S3).
"""
import os
import sqlite3
import logging
import argparse
import datetime
from typing import Dict, List, Optional

import boto3
import pandas as pd

from heart_pipeline.bronze import discard_staging, ingest_csv
from heart_pipeline.config import EXPORT_FORMATS, PipelineConfig, load_config
from heart_pipeline.database import MEMORY_DB, connect, snapshot_database
from heart_pipeline.exceptions import PipelineError
from heart_pipeline.gold import create_age_band_view, profile_heart, run_kpis
from heart_pipeline.silver import clean_staging, create_indexes
from utils.logger import setup_logger

logger = logging.getLogger("HeartPipeline")


def rebuild(conn: sqlite3.Connection, csv_file: Optional[str] = None) -> Dict[str, int]:
    """
    Full refresh of the analytical tables.

    Args:
        conn: Open SQLite connection
        csv_file: Raw CSV to load into heart_raw first; None reuses the existing staging table

    Returns:
        Row counts: raw_rows (None when the load was skipped) and clean_rows
    """
    raw_rows = None
    if csv_file is not None:
        raw_rows = ingest_csv(conn, csv_file)
        logger.info("Bronze layer processing completed successfully.")

    clean_rows = clean_staging(conn)
    create_indexes(conn)
    logger.info("Silver layer processing completed successfully.")

    create_age_band_view(conn)
    logger.info("Gold layer view created successfully.")
    return {"raw_rows": raw_rows, "clean_rows": clean_rows}


def export_results(
    frames: Dict[str, pd.DataFrame],
    output_dir: str,
    ts: str,
    fmt: str = "parquet"
) -> List[str]:
    """
    Write each result frame to <output_dir>/<ts>_<name>.<fmt>.

    Empty frames are skipped with a warning.

    Returns:
        Paths of the written files
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Choose one of {EXPORT_FORMATS}.")

    os.makedirs(output_dir, exist_ok=True)
    written = []
    for name, df in frames.items():
        if df.empty:
            logger.warning(f"Result '{name}' is empty. No data to export.")
            continue
        output_file = os.path.join(output_dir, f"{ts}_{name}.{fmt}")
        if fmt == "parquet":
            df.to_parquet(output_file, index=False)
        else:
            df.to_csv(output_file, index=False)
        logger.info(f"Exported {len(df)} records from '{name}' to {output_file}")
        written.append(output_file)
    return written


def upload_file_to_s3(local_file: str, bucket: str, s3_key: str, region: str) -> bool:
    """
    Upload a local file to s3://bucket/s3_key. Credentials come from the
    standard AWS environment variables or profile.

    Returns:
        True if the upload succeeded, False otherwise (the error is logged)
    """
    s3_client = boto3.client('s3', region_name=region)
    try:
        s3_client.upload_file(local_file, bucket, s3_key)
        logger.info(f"Uploaded {local_file} to s3://{bucket}/{s3_key}")
        return True
    except Exception as e:
        logger.error(f"Failed to upload {local_file} to s3://{bucket}/{s3_key}: {e}")
        return False


def run(config: PipelineConfig) -> int:
    """
    Run the pipeline described by config.

    Returns:
        Process exit code: 0 on success, 1 if loading or a query failed
    """
    logger.info("Starting heart disease pipeline...")
    conn = None
    try:
        conn = connect(config.db_file)
        counts = rebuild(conn, None if config.skip_load else config.csv_file)
        logger.info(f"Rebuild finished: {counts}")

        if config.discard_raw:
            discard_staging(conn)

        for name, df in profile_heart(conn).items():
            logger.info(f"Profile {name}: {df.to_dict(orient='records')}")
        frames = run_kpis(conn)
        summary = frames["summary_card"].to_dict(orient="records")[0]
        logger.info(f"Summary card: {summary}")

    except (PipelineError, sqlite3.Error) as e:
        logger.error(f"Pipeline failed: {e}")
        return 1

    finally:
        if conn:
            conn.close()

    if not config.export:
        logger.info("Export disabled; pipeline completed.")
        return 0

    ts = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    exported = export_results(frames, config.export_dir, ts, config.export_format)
    if config.db_file != MEMORY_DB:
        exported.append(snapshot_database(config.db_file, config.export_dir, ts))

    if config.s3_bucket:
        for local_file in exported:
            upload_file_to_s3(local_file, config.s3_bucket, os.path.basename(local_file), config.aws_region)

    logger.info(f"Pipeline completed. Exported {len(exported)} file(s) to {config.export_dir}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Rebuild the heart table and run the dashboard KPIs')
    parser.add_argument('--csv', type=str, help='Path to the raw heart-disease CSV')
    parser.add_argument('--db', type=str, help='Path to the SQLite database')
    parser.add_argument('--export-dir', type=str, help='Directory for exported KPI files')
    parser.add_argument('--format', choices=EXPORT_FORMATS, help='Export file format')
    parser.add_argument('--s3-bucket', type=str, help='Upload exports to this S3 bucket')
    parser.add_argument('--skip-load', action='store_true', help='Reuse the existing heart_raw table')
    parser.add_argument('--discard-raw', action='store_true', help='Drop heart_raw after cleaning')
    parser.add_argument('--no-export', action='store_true', help='Run the KPIs without writing files')
    parser.add_argument('--log-level', type=str, help='Logging level (DEBUG, INFO, ...)')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point for the pipeline."""
    args = build_parser().parse_args(argv)
    try:
        config = load_config()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if args.csv:
        config.csv_file = args.csv
    if args.db:
        config.db_file = args.db
    if args.export_dir:
        config.export_dir = args.export_dir
    if args.format:
        config.export_format = args.format
    if args.s3_bucket:
        config.s3_bucket = args.s3_bucket
    if args.log_level:
        config.log_level = args.log_level.upper()
    config.skip_load = config.skip_load or args.skip_load
    config.discard_raw = config.discard_raw or args.discard_raw
    config.export = config.export and not args.no_export

    try:
        setup_logger(
            "HeartPipeline", log_file="heart_pipeline.log", level=config.log_level, log_dir=config.log_dir
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    return run(config)


if __name__ == "__main__":
    raise SystemExit(main())
