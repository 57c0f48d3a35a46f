"""
Runtime configuration for the heart pipeline.

Values come from the environment (a .env file in the working directory is
loaded first). Command-line flags in run_pipeline override them.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_CSV_FILE = os.path.join("data", "heart.csv")
DEFAULT_DB_FILE = os.path.join("data", "heart.db")
DEFAULT_EXPORT_DIR = os.path.join("data", "exports")
DEFAULT_EXPORT_FORMAT = "parquet"
DEFAULT_REGION = "us-east-1"
DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_LEVEL = "INFO"

EXPORT_FORMATS = ("parquet", "csv")


@dataclass
class PipelineConfig:
    """Settings for one pipeline run."""

    csv_file: str = DEFAULT_CSV_FILE
    db_file: str = DEFAULT_DB_FILE
    export_dir: str = DEFAULT_EXPORT_DIR
    export_format: str = DEFAULT_EXPORT_FORMAT
    s3_bucket: Optional[str] = None
    aws_region: str = DEFAULT_REGION
    log_dir: Optional[str] = DEFAULT_LOG_DIR
    log_level: str = DEFAULT_LOG_LEVEL
    skip_load: bool = False
    discard_raw: bool = False
    export: bool = True

    def __post_init__(self):
        if self.export_format not in EXPORT_FORMATS:
            raise ValueError(
                f"Unsupported export format '{self.export_format}'. Choose one of {EXPORT_FORMATS}."
            )


def load_config(env_file: Optional[str] = None) -> PipelineConfig:
    """
    Build a PipelineConfig from environment variables.

    Args:
        env_file: Optional path to a .env file (default: search from the working directory)

    Returns:
        PipelineConfig with environment values applied over the defaults
    """
    load_dotenv(env_file)
    return PipelineConfig(
        csv_file=os.environ.get("HEART_CSV_FILE", DEFAULT_CSV_FILE),
        db_file=os.environ.get("HEART_DB_FILE", DEFAULT_DB_FILE),
        export_dir=os.environ.get("HEART_EXPORT_DIR", DEFAULT_EXPORT_DIR),
        export_format=os.environ.get("HEART_EXPORT_FORMAT", DEFAULT_EXPORT_FORMAT).lower(),
        s3_bucket=os.environ.get("HEART_S3_BUCKET") or None,
        aws_region=os.environ.get("AWS_REGION", DEFAULT_REGION),
        log_dir=os.environ.get("HEART_LOG_DIR", DEFAULT_LOG_DIR),
        log_level=os.environ.get("HEART_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
