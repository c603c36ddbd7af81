#!/usr/bin/env python3
"""
Orchestrates the full warehouse refresh: bronze load, silver conformance,
gold views, quality gate and optional export.

Every step is a full refresh, so re-running the pipeline on unchanged input
is safe and yields the same silver and gold contents.
"""
import os
import sys
import time
import argparse
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from utils.logger import log_layer_stats, setup_logger

from . import bronze, silver
from .config import Settings, load_settings
from .errors import ExtentNotFoundError
from .export import S3Exporter, export_frames
from .gold import GoldLayer
from .quality import QualityReport, run_quality_gate
from .rules import naive_timestamp
from .schemas import SILVER_SCHEMAS
from .store import WarehouseStore


logger = logging.getLogger("sqlite_warehouse.pipeline")


@dataclass
class RunSummary:
    """What one pipeline run did."""

    bronze_loaded: Dict[str, int] = field(default_factory=dict)
    bronze_failed: Dict[str, str] = field(default_factory=dict)
    silver_loaded: Dict[str, int] = field(default_factory=dict)
    silver_skipped: Dict[str, str] = field(default_factory=dict)
    gold_rows: Dict[str, int] = field(default_factory=dict)
    quality: Optional[QualityReport] = None
    exported: Dict[str, Dict[str, str]] = field(default_factory=dict)
    uploaded: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """True when every source loaded and every silver extent was rebuilt."""
        return not self.bronze_failed and not self.silver_skipped


class MedallionPipeline:
    """Runs the bronze, silver and gold layers against one SQLite warehouse."""

    def __init__(self, settings: Optional[Settings] = None, store: Optional[WarehouseStore] = None):
        """
        Initialize the pipeline.

        Args:
            settings: Locations and switches (default: load_settings())
            store: Warehouse store (default: one on settings.db_path)
        """
        self.settings = settings or load_settings()
        self.store = store or WarehouseStore(self.settings.db_path)
        self.gold = GoldLayer(self.store)

    def process_bronze_layer(self, source_dir: Optional[str] = None) -> Dict[str, object]:
        return bronze.load_all(self.store, source_dir or self.settings.source_dir)

    def process_silver_layer(self, as_of: Optional[datetime] = None) -> Dict[str, object]:
        return silver.transform_bronze_to_silver(self.store, as_of=as_of)

    def silver_frames(self) -> Dict[str, pd.DataFrame]:
        """All silver extents that exist, keyed by entity."""
        frames = {}
        for entity in SILVER_SCHEMAS:
            try:
                frames[entity] = self.store.read("silver", entity)
            except ExtentNotFoundError:
                logger.warning(f"Silver extent {entity} is not available")
        return frames

    def gold_frames(self) -> Dict[str, pd.DataFrame]:
        """The gold views, or an empty dict when silver is incomplete."""
        try:
            return self.gold.views()
        except ExtentNotFoundError as e:
            logger.error(f"Gold views unavailable: {e}")
            return {}

    def run_quality_gate(
        self,
        as_of: Optional[datetime] = None,
        gold: Optional[Dict[str, pd.DataFrame]] = None,
    ) -> QualityReport:
        if gold is None:
            gold = self.gold_frames()
        report = run_quality_gate(self.silver_frames(), gold, as_of=as_of)
        if not report.passed:
            logger.warning(f"Quality gate reported issues:\n{report.summary().to_string(index=False)}")
        return report

    def export_data(self, layer: str, output_dir: Optional[str] = None) -> Dict[str, str]:
        """
        Export one layer to Parquet.

        Returns:
            Dictionary of extent name -> exported file path
        """
        output_dir = output_dir or self.settings.export_dir
        if layer == "gold":
            frames = self.gold_frames()
        elif layer in ("bronze", "silver"):
            frames = {extent: self.store.read(layer, extent) for extent in self.store.list_extents(layer)}
        else:
            raise ValueError(f"Invalid layer: {layer}")
        return export_frames(layer, frames, output_dir)

    def upload_exports(self, exported: Dict[str, Dict[str, str]]) -> Dict[str, Optional[str]]:
        exporter = S3Exporter(
            bucket_prefix=self.settings.bucket_prefix,
            region=self.settings.aws_region,
            profile_name=self.settings.aws_profile,
        )
        uploaded = {}
        for layer, files in exported.items():
            uploaded.update(exporter.upload_layer(layer, list(files.values())))
        return uploaded

    def get_layer_stats(self) -> Dict[str, Dict[str, int]]:
        """Row counts per stored extent, plus the gold views."""
        stats = self.store.get_layer_stats()
        stats["gold"] = {name: len(df) for name, df in self.gold_frames().items()}
        return stats

    def run_pipeline(
        self,
        source_dir: Optional[str] = None,
        as_of: Optional[datetime] = None,
        export: bool = False,
        upload: bool = False,
    ) -> RunSummary:
        """
        Run the full refresh.

        Args:
            source_dir: Directory holding the source_crm/ and source_erp/ extracts
            as_of: Processing time for date rules and checks (default: now)
            export: Export every layer to Parquet afterwards
            upload: Upload the exports to S3 (implies export)

        Returns:
            RunSummary of the run
        """
        as_of = as_of or datetime.now()
        start = time.perf_counter()
        summary = RunSummary()
        logger.info("Starting warehouse refresh...")

        result = self.process_bronze_layer(source_dir)
        summary.bronze_loaded, summary.bronze_failed = result["loaded"], result["failed"]

        result = self.process_silver_layer(as_of)
        summary.silver_loaded, summary.silver_skipped = result["loaded"], result["skipped"]

        gold = self.gold_frames()
        summary.gold_rows = {name: len(df) for name, df in gold.items()}
        logger.info(f"Gold views: {summary.gold_rows}")

        summary.quality = self.run_quality_gate(as_of=as_of, gold=gold)

        if export or upload:
            for layer in ("bronze", "silver", "gold"):
                summary.exported[layer] = self.export_data(layer)
            if upload:
                summary.uploaded = self.upload_exports(summary.exported)

        logger.info(f"Warehouse refresh finished in {time.perf_counter() - start:.2f}s")
        log_layer_stats(logger, self.store.get_layer_stats())
        return summary


def parse_as_of(text: str) -> datetime:
    """Parse --as-of; offsets are converted to a naive UTC time."""
    return naive_timestamp(datetime.fromisoformat(text)).to_pydatetime()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Refresh the SQLite medallion warehouse')
    parser.add_argument('--source-dir', type=str, help='Directory with source_crm/ and source_erp/ extracts')
    parser.add_argument('--db', type=str, help='Path to SQLite database')
    parser.add_argument('--export-dir', type=str, help='Directory for exported Parquet files')
    parser.add_argument('--export', action='store_true', help='Export every layer to Parquet')
    parser.add_argument('--upload', action='store_true', help='Upload the exports to S3')
    parser.add_argument('--check-only', action='store_true', help='Only run the quality gate on the current data')
    parser.add_argument('--report', type=str, help='Write the quality report as JSON to this path')
    parser.add_argument('--fail-on-violations', action='store_true',
                        help='Exit with status 1 when the quality gate reports issues')
    parser.add_argument('--as-of', type=str, help='Processing time (YYYY-MM-DD[ HH:MM:SS]), default now')
    parser.add_argument('--log-level', type=str, help='Logging level, e.g. DEBUG')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point for the pipeline."""
    args = parse_args(argv)
    settings = load_settings().override(
        source_dir=args.source_dir,
        db_path=args.db,
        export_dir=args.export_dir,
        log_level=args.log_level,
    )
    setup_logger("sqlite_warehouse", log_file="warehouse.log", level=settings.log_level, log_dir=settings.log_dir)

    as_of = parse_as_of(args.as_of) if args.as_of else None
    pipeline = MedallionPipeline(settings)

    if args.check_only:
        report = pipeline.run_quality_gate(as_of=as_of)
        summary = None
    else:
        summary = pipeline.run_pipeline(as_of=as_of, export=args.export, upload=args.upload)
        report = summary.quality

    print("\nQuality gate:")
    print(report.summary().to_string(index=False))

    if args.report:
        report_dir = os.path.dirname(args.report)
        if report_dir:
            os.makedirs(report_dir, exist_ok=True)
        report.write_json(args.report)
        print(f"\nQuality report written to {args.report}")

    stats = pipeline.get_layer_stats()
    print("\nLayer statistics:")
    for layer, extents in stats.items():
        for extent, count in extents.items():
            print(f"{layer}.{extent}: {count} records")

    if summary is not None and not summary.succeeded:
        for source, error in summary.bronze_failed.items():
            print(f"Load failed for {source}: {error}", file=sys.stderr)
        return 1
    if args.fail_on_violations and not report.passed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
