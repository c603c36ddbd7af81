"""
Runtime settings for the warehouse pipeline.

Values come from a .env file (if present) and the process environment;
command-line flags in run_pipeline override them.
"""
import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv


# Define constants
DEFAULT_DB_PATH = "database/warehouse.db"
DEFAULT_SOURCE_DIR = "data/sample"
DEFAULT_EXPORT_DIR = "data/export"
DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_BUCKET_PREFIX = "sqlite-warehouse"
DEFAULT_REGION = "eu-central-1"


@dataclass(frozen=True)
class Settings:
    """Locations and switches shared by every pipeline step."""

    db_path: str = DEFAULT_DB_PATH
    source_dir: str = DEFAULT_SOURCE_DIR
    export_dir: str = DEFAULT_EXPORT_DIR
    log_dir: str = DEFAULT_LOG_DIR
    log_level: str = DEFAULT_LOG_LEVEL
    bucket_prefix: str = DEFAULT_BUCKET_PREFIX
    aws_region: str = DEFAULT_REGION
    aws_profile: Optional[str] = None

    def override(self, **changes) -> "Settings":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env_file: Optional path to a .env file (default: search from the cwd)

    Returns:
        Settings populated from DWH_* and AWS_* variables
    """
    load_dotenv(env_file)

    return Settings(
        db_path=os.environ.get("DWH_DB_PATH", DEFAULT_DB_PATH),
        source_dir=os.environ.get("DWH_SOURCE_DIR", DEFAULT_SOURCE_DIR),
        export_dir=os.environ.get("DWH_EXPORT_DIR", DEFAULT_EXPORT_DIR),
        log_dir=os.environ.get("DWH_LOG_DIR", DEFAULT_LOG_DIR),
        log_level=os.environ.get("DWH_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        bucket_prefix=os.environ.get("DWH_S3_BUCKET_PREFIX", DEFAULT_BUCKET_PREFIX),
        aws_region=os.environ.get("AWS_REGION", DEFAULT_REGION),
        aws_profile=os.environ.get("AWS_PROFILE") or None,
    )
