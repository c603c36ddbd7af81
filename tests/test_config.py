"""
Tests for settings loaded from the environment and .env files.
"""
import pytest

from sqlite_warehouse import config
from sqlite_warehouse.config import Settings, load_settings


ENV_VARS = [
    "DWH_DB_PATH", "DWH_SOURCE_DIR", "DWH_EXPORT_DIR", "DWH_LOG_DIR", "DWH_LOG_LEVEL",
    "DWH_S3_BUCKET_PREFIX", "AWS_REGION", "AWS_PROFILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        # setenv first so teardown also removes values load_dotenv adds
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # keep load_dotenv from picking up a .env in the working tree
    monkeypatch.chdir(tmp_path)


def test_defaults(tmp_path):
    settings = load_settings(str(tmp_path / "missing.env"))

    assert settings.db_path == config.DEFAULT_DB_PATH
    assert settings.log_level == "INFO"
    assert settings.aws_profile is None


def test_environment_overrides_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("DWH_DB_PATH", "/tmp/other.db")
    monkeypatch.setenv("DWH_S3_BUCKET_PREFIX", "acme-dwh")
    monkeypatch.setenv("AWS_PROFILE", "")

    settings = load_settings(str(tmp_path / "missing.env"))

    assert settings.db_path == "/tmp/other.db"
    assert settings.bucket_prefix == "acme-dwh"
    assert settings.aws_profile is None


def test_env_file(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DWH_SOURCE_DIR=/data/extracts\nDWH_LOG_LEVEL=DEBUG\n")
    monkeypatch.setenv("DWH_LOG_LEVEL", "WARNING")

    settings = load_settings(str(env_file))

    assert settings.source_dir == "/data/extracts"
    # the process environment wins over the file
    assert settings.log_level == "WARNING"


def test_override_ignores_none():
    settings = Settings().override(db_path="cli.db", source_dir=None)

    assert settings.db_path == "cli.db"
    assert settings.source_dir == config.DEFAULT_SOURCE_DIR
