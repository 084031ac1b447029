#!/usr/bin/env python3
"""
Spark job computing the top pages per Wikipedia domain for each hour.

For every hour in [start_time, end_time]:
1. Skip the hour when ``output/yyyyMMdd-HH`` already exists
2. Download the hourly dump to ``temp/yyyyMMdd-HH.gz``
3. Drop blacklisted (domain_code, page_title) pairs
4. Keep the 25 most viewed pages per domain
5. Write a single space-delimited file, then delete the dump

The blacklist is read and cached once, before the loop.
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from pyspark.sql import DataFrame, SparkSession

from config_loader import ConfigError
from pageviews.config import PipelineConfig, SparkConfig, load_config
from pageviews.lib.fetch import DumpFetcher
from pageviews.lib.hours import HourRange, HourWindow
from pageviews.lib.io import output_exists, read_wiki_table, write_ranked_output
from pageviews.lib.ranking import process
from pageviews.lib.stats import RunStats

logger = logging.getLogger(__name__)

STAGE_NAME = "top_pages"

WRITTEN = "written"
SKIPPED = "skipped"


class OutputExists(Exception):
    """Signals the legacy run-level stop on an already computed hour."""


def build_spark_session(config: SparkConfig) -> SparkSession:
    spark = SparkSession.builder \
        .appName(config.app_name) \
        .master(config.master) \
        .config("spark.sql.shuffle.partitions", str(config.shuffle_partitions)) \
        .config("spark.sql.adaptive.enabled", "true") \
        .getOrCreate()
    spark.sparkContext.setLogLevel("WARN")
    return spark


def _count_lines(path: Path) -> int:
    with open(path, "rb") as handle:
        return sum(1 for _ in handle)


class TopPagesJob:
    """Runs the hourly loop for one configured date range."""

    def __init__(
        self,
        config: PipelineConfig,
        spark: SparkSession,
        fetcher: DumpFetcher,
        stats: Optional[RunStats] = None,
        reader: Callable[[SparkSession, Path], DataFrame] = read_wiki_table,
    ):
        self.config = config
        self.spark = spark
        self.fetcher = fetcher
        self.stats = stats or RunStats(STAGE_NAME)
        self.reader = reader
        self.hours = HourRange(config.start_time, config.end_time)

    def load_blacklist(self) -> DataFrame:
        """Read and cache the blacklist; counting materialises the cache."""
        path = self.config.blacklist_path
        logger.info(f"Loading blacklist from {path}")
        blacklist_df = self.reader(self.spark, path).cache()
        entries = blacklist_df.count()
        logger.info(f"Blacklist cached: {entries:,} entries")
        self.stats.set_inputs(blacklist=str(path), blacklist_entries=entries)
        return blacklist_df

    def source_window(self, window: HourWindow) -> HourWindow:
        """The hour whose dump feeds ``window``."""
        if self.config.legacy.fetch_start_hour:
            return HourWindow(self.config.start_time)
        return window

    def process_hour(self, window: HourWindow, blacklist_df: DataFrame) -> str:
        output_path = window.output_path(self.config.output_dir)

        # Check-then-write is not atomic: two runs for the same hour can race.
        if output_exists(output_path):
            logger.info(f"Output file exists for {window}: {output_path}")
            self.stats.hour_skipped(str(window), reason="output exists")
            if self.config.legacy.stop_on_existing_output:
                raise OutputExists(str(output_path))
            return SKIPPED

        gz_path = self.fetcher.fetch(self.source_window(window))
        if self.fetcher.last_error:
            self.stats.download_failed(str(window))

        pageviews_df = self.reader(self.spark, gz_path)
        results = process(
            pageviews_df,
            blacklist_df,
            top_n=self.config.job.top_n,
            tie_break_by_title=self.config.job.tie_break_by_title,
        )
        write_ranked_output(results, output_path)

        rows = _count_lines(output_path)
        logger.info(f"{window}: {rows:,} ranked rows -> {output_path}")
        self.stats.hour_written(str(window), rows=rows, output=str(output_path))

        if not self.fetcher.cleanup(gz_path):
            self.stats.cleanup_failed(str(window))
        return WRITTEN

    def run(self) -> RunStats:
        logger.info("=" * 60)
        logger.info(f"TOP PAGES JOB: {self.hours.start} .. {self.hours.end} ({len(self.hours)} hours)")
        logger.info("=" * 60)
        self.stats.set_config(**self.config.to_dict())

        blacklist_df = self.load_blacklist()
        try:
            for window in self.hours:
                try:
                    self.process_hour(window, blacklist_df)
                except OutputExists:
                    logger.info("Stopping run at first existing output (legacy mode)")
                    break
        finally:
            blacklist_df.unpersist()

        totals = self.stats.totals
        logger.info("=" * 60)
        logger.info("TOP PAGES JOB COMPLETE")
        logger.info(f"Hours written: {totals['hours_written']}")
        logger.info(f"Hours skipped: {totals['hours_skipped']}")
        logger.info(f"Download failures: {totals['download_failures']}")
        logger.info(f"Rows written: {totals['rows_written']:,}")
        logger.info("=" * 60)
        return self.stats


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Top 25 Wikipedia pages per domain for each hour of pageview dumps"
    )
    parser.add_argument(
        '--config',
        default=None,
        help='Path to a YAML config (default: $PAGEVIEWS_CONFIG, then built-in defaults)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate config and list planned hours without downloading'
    )
    return parser.parse_args(argv)


def _attach_file_logging(log_path: Path, level: int) -> None:
    """Attach a file handler to root logger if not already present."""
    root = logging.getLogger()
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path.resolve():
            return

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root.addHandler(file_handler)


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format='%(asctime)s [%(levelname)s] %(message)s'
    )
    logging.getLogger().setLevel(numeric)
    if log_file:
        _attach_file_logging(Path(log_file), numeric)


def log_plan(config: PipelineConfig) -> None:
    logger.info("Dry run - planned hours:")
    for window in HourRange(config.start_time, config.end_time):
        output_path = window.output_path(config.output_dir)
        state = "exists, skip" if output_exists(output_path) else "pending"
        logger.info(f"  {window}  {window.download_url(config.download.url_template)} -> {output_path} ({state})")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    start = time.time()
    args = parse_args(argv)
    configure_logging()

    try:
        config = load_config(args.config)
    except (ConfigError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(config.logs.level, config.logs.log_file)

    if args.dry_run:
        log_plan(config)
        return 0

    stats = RunStats(STAGE_NAME, Path(config.stats.dir) if config.stats.enabled else None)
    spark = build_spark_session(config.spark)
    fetcher = DumpFetcher(
        temp_dir=config.temp_dir,
        url_template=config.download.url_template,
        connect_timeout_sec=config.download.connect_timeout_sec,
        read_timeout_sec=config.download.read_timeout_sec,
        verify_tls=config.download.verify_tls,
        user_agent=config.download.user_agent,
    )

    status = "failed"
    try:
        TopPagesJob(config, spark, fetcher, stats=stats).run()
        status = "completed"
    except Exception as e:
        stats.add_error(str(e), context="run")
        raise
    finally:
        fetcher.close()
        spark.stop()
        stats_path = stats.finalize(status).save()
        if stats_path:
            logger.info(f"Stats saved to: {stats_path}")
        logger.info(f"Duration: {time.time() - start:.2f} seconds")

    return 0


if __name__ == "__main__":
    sys.exit(main())
