"""
SQLite Medallion Warehouse Package

Modules:
    config.py       - Settings from .env and the environment.
    errors.py       - Exception types.
    schemas.py      - Column layouts of the bronze and silver extents.
    bronze.py       - Loads raw CRM and ERP CSV extracts into the bronze layer.
    rules.py        - Column-level cleansing rules.
    silver.py       - Cleanses, standardizes and deduplicates bronze into silver.
    gold.py         - Star schema views with surrogate keys over silver.
    quality.py      - Read-only quality checks over silver and gold.
    store.py        - SQLite storage with atomic, versioned extent replacement.
    export.py       - Parquet export and S3 upload of every layer.
    run_pipeline.py - Orchestrates the full refresh and provides the CLI.

Version: 1.0.0
"""

__version__ = "1.0.0"
