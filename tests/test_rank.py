"""Test search result ranking and deduplication."""

from autoresearch.search import rank_and_deduplicate, score_result
from autoresearch.utils import normalize_url

from conftest import make_result


class TestResultRanking:
    """Test source-type boosts, ordering and URL deduplication."""

    def test_scholarly_domains_boosted(self):
        assert score_result(make_result("https://arxiv.org/abs/2401.00001", score=10)) == 20
        assert score_result(make_result("https://doi.org/10.1000/xyz", score=0)) == 10

    def test_edu_gov_and_encyclopedic_boosts(self):
        assert score_result(make_result("https://mit.edu/energy", score=3)) == 10
        assert score_result(make_result("https://energy.gov/solar", score=3)) == 9
        assert score_result(make_result("https://en.wikipedia.org/wiki/Solar_power", score=5)) == 10

    def test_peer_review_snippet_boost(self):
        result = make_result("https://example.com/a", snippet="Published in a peer-reviewed Journal", score=3)
        assert score_result(result) == 8

    def test_sorted_by_non_increasing_score(self):
        results = [
            make_result("https://blog.example.com/post"),
            make_result("https://arxiv.org/abs/1"),
            make_result("https://stanford.edu/paper"),
            make_result("https://energy.gov/report"),
        ]

        ranked = rank_and_deduplicate(results, 10)
        scores = [r.relevance_score for r in ranked]

        assert scores == sorted(scores, reverse=True)
        assert ranked[0].url == "https://arxiv.org/abs/1"

    def test_deduplicates_by_normalized_url_keeping_highest(self):
        """Test that case and trailing-slash variants collapse to the best-scored entry."""
        results = [
            make_result("https://Example.com/Page/", title="low", score=1),
            make_result("https://example.com/page", title="high", score=9),
            make_result("https://other.com/", title="other", score=2),
        ]

        ranked = rank_and_deduplicate(results, 10)
        keys = [normalize_url(r.url) for r in ranked]

        assert len(keys) == len(set(keys)) == 2
        assert ranked[0].title == "high"

    def test_truncates_to_budget(self):
        results = [make_result(f"https://example.com/{i}") for i in range(10)]
        assert len(rank_and_deduplicate(results, 4)) == 4

    def test_equal_scores_keep_input_order(self):
        results = [make_result(f"https://example.com/{i}") for i in range(3)]
        ranked = rank_and_deduplicate(results, 10)
        assert [r.url for r in ranked] == [r.url for r in results]

    def test_input_not_mutated(self):
        original = make_result("https://arxiv.org/abs/1", score=10)
        rank_and_deduplicate([original], 5)
        assert original.relevance_score == 10

    def test_empty_input(self):
        assert rank_and_deduplicate([], 5) == []
