"""Read and write the space-delimited pageview tables."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Sequence

from pyspark.sql import DataFrame, SparkSession

DOMAIN_CODE = "domain_code"
PAGE_TITLE = "page_title"
COUNT_VIEWS = "count_views"
TOTAL_RESPONSE_SIZE = "total_response_size"
RANK = "rank"

# Dumps have four columns and the blacklist two; both start with the key pair.
POSITIONAL_COLUMNS = (DOMAIN_CODE, PAGE_TITLE, COUNT_VIEWS, TOTAL_RESPONSE_SIZE)
OUTPUT_COLUMNS = (DOMAIN_CODE, PAGE_TITLE, COUNT_VIEWS, TOTAL_RESPONSE_SIZE, RANK)

SEPARATOR = " "


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def read_wiki_table(spark: SparkSession, path: Path) -> DataFrame:
    """
    Load a space-delimited pageview dump or blacklist.

    Spark picks the gzip codec from the file itself, so the same call reads
    ``temp/*.gz`` dumps and the plain blacklist. Columns are renamed by
    position; names past the source's width are ignored.
    """
    df = (
        spark.read.format("csv")
        .option("sep", SEPARATOR)
        .option("header", "false")
        .option("inferSchema", "true")
        .option("quote", "")
        .option("encoding", "UTF-8")
        .load(str(path))
    )
    for idx, name in enumerate(POSITIONAL_COLUMNS):
        df = df.withColumnRenamed(f"_c{idx}", name)
    return df


def output_exists(path: Path) -> bool:
    """True when a file or directory is already at ``path``."""
    return Path(path).exists()


def _move_single_part(tmp_dir: Path, target_path: Path) -> None:
    """Rename the single part file produced by Spark into ``target_path``."""
    part_files = list(tmp_dir.glob("part-*"))
    if not part_files:
        # Empty frame: Spark may emit only _SUCCESS.
        if (tmp_dir / "_SUCCESS").exists():
            _ensure_parent(target_path)
            target_path.touch()
            shutil.rmtree(tmp_dir, ignore_errors=True)
            return
        raise FileNotFoundError(f"No part files produced under {tmp_dir}")
    if len(part_files) > 1:
        raise RuntimeError(f"Expected 1 part file under {tmp_dir}, found {len(part_files)}")
    _ensure_parent(target_path)
    part_files[0].rename(target_path)
    shutil.rmtree(tmp_dir, ignore_errors=True)


def write_ranked_output(
    df: DataFrame,
    path: Path,
    columns: Sequence[str] = OUTPUT_COLUMNS,
) -> Path:
    """
    Write ``df`` as one space-delimited file at ``path``.

    Spark writes a single partition into ``<path>.tmpdir``; its part file is
    then renamed to ``path``. An empty frame still yields an (empty) file.
    Existing output is never replaced; callers check ``output_exists`` first.

    Returns:
        ``path``
    """
    log = logging.getLogger(__name__)
    target = Path(path)
    if target.exists():
        raise FileExistsError(f"Output already exists: {target}")

    tmp_dir = Path(str(target) + ".tmpdir")
    if tmp_dir.exists():
        shutil.rmtree(tmp_dir)

    (
        df.select(*columns)
        .coalesce(1)
        .write.mode("overwrite")
        .option("sep", SEPARATOR)
        .option("header", "false")
        .option("quote", "")
        .option("escapeQuotes", "false")
        .option("encoding", "UTF-8")
        .csv(str(tmp_dir))
    )
    _move_single_part(tmp_dir, target)
    log.info(f"Wrote {target}")
    return target
