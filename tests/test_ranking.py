import unittest
from collections import defaultdict

from pageviews.lib.io import OUTPUT_COLUMNS
from pageviews.lib.ranking import filter_blacklisted, process, rank_top_pages
from spark_support import SparkTestCase, requires_spark


def rows_by_domain(df):
    grouped = defaultdict(list)
    for row in df.collect():
        grouped[row["domain_code"]].append(row)
    for rows in grouped.values():
        rows.sort(key=lambda r: r["rank"])
    return grouped


@requires_spark
class FilterBlacklistedTests(SparkTestCase):
    def test_removes_only_exact_key_matches(self) -> None:
        pageviews = self.pageviews([
            ("en", "Main_Page", 500, 900),
            ("de", "Main_Page", 70, 100),
            ("en", "Main_Page_2", 10, 20),
            ("en", "Cat", 300, 400),
        ])
        blacklist = self.blacklist([("en", "Main_Page"), ("fr", "Cat")])

        kept = {(r["domain_code"], r["page_title"]) for r in filter_blacklisted(pageviews, blacklist).collect()}

        self.assertEqual({("de", "Main_Page"), ("en", "Main_Page_2"), ("en", "Cat")}, kept)

    def test_keeps_pageview_columns(self) -> None:
        pageviews = self.pageviews([("en", "Cat", 300, 400)])
        filtered = filter_blacklisted(pageviews, self.blacklist([("en", "Dog")]))

        self.assertEqual(
            ["domain_code", "page_title", "count_views", "total_response_size"],
            filtered.columns,
        )

    def test_duplicate_blacklist_entries_do_not_matter(self) -> None:
        pageviews = self.pageviews([("en", "Cat", 300, 400), ("en", "Dog", 200, 100)])
        blacklist = self.blacklist([("en", "Dog"), ("en", "Dog")])

        self.assertEqual(1, filter_blacklisted(pageviews, blacklist).count())


@requires_spark
class RankTopPagesTests(SparkTestCase):
    def test_example_scenario(self) -> None:
        pageviews = self.pageviews([
            ("en", "Main_Page", 500, 900),
            ("en", "Cat", 300, 400),
            ("de", "Hund", 50, 80),
        ])
        blacklist = self.blacklist([("en", "Main_Page")])

        result = process(pageviews, blacklist)

        self.assertEqual(list(OUTPUT_COLUMNS), result.columns)
        self.assertEqual(
            {("en", "Cat", 300, 400, 1), ("de", "Hund", 50, 80, 1)},
            {tuple(row) for row in result.collect()},
        )

    def test_forty_rows_keep_top_twenty_five(self) -> None:
        pageviews = self.pageviews([("en", f"Page_{i}", i, i * 10) for i in range(1, 41)])

        rows = rows_by_domain(process(pageviews, self.blacklist([])))["en"]

        self.assertEqual(25, len(rows))
        self.assertEqual(list(range(1, 26)), [r["rank"] for r in rows])
        self.assertEqual(list(range(40, 15, -1)), [r["count_views"] for r in rows])

    def test_small_domains_keep_all_rows(self) -> None:
        pageviews = self.pageviews(
            [("en", f"Page_{i}", i, 1) for i in range(30)]
            + [("de", f"Seite_{i}", i, 1) for i in range(3)]
        )

        grouped = rows_by_domain(process(pageviews, self.blacklist([])))

        self.assertEqual(25, len(grouped["en"]))
        self.assertEqual(3, len(grouped["de"]))

    def test_ranks_are_contiguous_and_views_non_increasing(self) -> None:
        rows = []
        for d, domain in enumerate(["en", "de", "fr", "ja"]):
            for i in range(10 + d * 7):
                rows.append((domain, f"P{i}", (i * 37 + d) % 23, i))
        pageviews = self.pageviews(rows)
        blacklist = self.blacklist([("en", "P3"), ("de", "P0"), ("ja", "P5")])
        blocked = {("en", "P3"), ("de", "P0"), ("ja", "P5")}

        grouped = rows_by_domain(process(pageviews, blacklist))

        for domain, ranked in grouped.items():
            surviving = sum(1 for r in rows if r[0] == domain and (r[0], r[1]) not in blocked)
            self.assertEqual(list(range(1, min(25, surviving) + 1)), [r["rank"] for r in ranked])
            views = [r["count_views"] for r in ranked]
            self.assertEqual(sorted(views, reverse=True), views)
            for r in ranked:
                self.assertNotIn((r["domain_code"], r["page_title"]), blocked)

    def test_ties_get_distinct_ranks(self) -> None:
        pageviews = self.pageviews([
            ("en", "B", 10, 1),
            ("en", "A", 10, 1),
            ("en", "C", 10, 1),
        ])

        ranked = rows_by_domain(rank_top_pages(pageviews))["en"]

        self.assertEqual([1, 2, 3], [r["rank"] for r in ranked])

    def test_title_tie_break_is_deterministic(self) -> None:
        pageviews = self.pageviews([
            ("en", "B", 10, 1),
            ("en", "A", 10, 1),
            ("en", "Z", 20, 1),
            ("en", "C", 10, 1),
        ])

        ranked = rows_by_domain(rank_top_pages(pageviews, tie_break_by_title=True))["en"]

        self.assertEqual(["Z", "A", "B", "C"], [r["page_title"] for r in ranked])

    def test_custom_top_n(self) -> None:
        pageviews = self.pageviews([("en", f"P{i}", i, 1) for i in range(10)])

        ranked = rows_by_domain(process(pageviews, self.blacklist([]), top_n=3))["en"]

        self.assertEqual([9, 8, 7], [r["count_views"] for r in ranked])


if __name__ == "__main__":
    unittest.main()
