"""
Blacklist filtering and per-domain top-N ranking.

Uses pure DataFrame API. Ranking follows ``row_number`` semantics: tied view
counts get distinct ranks, and which tied page lands first depends on how
Spark materialises the partition unless ``tie_break_by_title`` is set.
"""

from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.window import Window

from .io import COUNT_VIEWS, DOMAIN_CODE, OUTPUT_COLUMNS, PAGE_TITLE, RANK

KEY_COLUMNS = [DOMAIN_CODE, PAGE_TITLE]
DEFAULT_TOP_N = 25


def filter_blacklisted(pageviews_df: DataFrame, blacklist_df: DataFrame) -> DataFrame:
    """
    Drop pageview rows whose (domain_code, page_title) is blacklisted.

    A left-anti join on the key pair only, so the two frames may have any
    number of other columns. The blacklist is small and broadcast.
    """
    keys = blacklist_df.select(*KEY_COLUMNS).distinct()
    return pageviews_df.join(F.broadcast(keys), on=KEY_COLUMNS, how="left_anti")


def rank_top_pages(df: DataFrame, top_n: int = DEFAULT_TOP_N, tie_break_by_title: bool = False) -> DataFrame:
    """Number rows per domain by views descending and keep ranks 1..top_n."""
    order = [F.desc(COUNT_VIEWS)]
    if tie_break_by_title:
        order.append(F.asc(PAGE_TITLE))
    window = Window.partitionBy(DOMAIN_CODE).orderBy(*order)

    return (
        df.withColumn(RANK, F.row_number().over(window))
        .where(F.col(RANK) <= top_n)
    )


def process(
    pageviews_df: DataFrame,
    blacklist_df: DataFrame,
    top_n: int = DEFAULT_TOP_N,
    tie_break_by_title: bool = False,
) -> DataFrame:
    """Filter then rank one hour of pageviews. Output columns are fixed."""
    filtered = filter_blacklisted(pageviews_df, blacklist_df)
    ranked = rank_top_pages(filtered, top_n=top_n, tie_break_by_title=tie_break_by_title)
    return ranked.select(*OUTPUT_COLUMNS)
