"""Tests for recency-adjusted ranking and source grouping."""

import pytest

from pagegen.core.passage_ranking import (
    adjusted_score,
    domain_label,
    group_by_source,
    rank_passages,
    recency_penalty,
)
from pagegen.core.schemas_pages import Passage

YEAR = 2025


class TestRecencyPenalty:
    """Tests for recency_penalty()."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("No year mentioned here.", 0.0),
            ("Updated in 2025.", 0.0),
            ("Updated in 2023.", 0.5),
            ("Announced 2017, revised 2021.", 1.0),
            ("Published in 1998.", 2.0),
            ("Effective 2027.", 0.0),
            ("Reference number 12024 is not a year.", 0.0),
        ],
    )
    def test_penalty(self, text, expected):
        assert recency_penalty(text, YEAR) == pytest.approx(expected)


class TestRankPassages:
    """Tests for rank_passages()."""

    def test_sorts_by_adjusted_score(self):
        passages = [
            Passage(text="Guidance from 2015.", score=0.9),
            Passage(text="Guidance from 2025.", score=0.8),
            Passage(text="Undated guidance.", score=None),
        ]
        ranked = rank_passages(passages, YEAR)
        assert [p.text for p in ranked] == [
            "Guidance from 2025.",
            "Undated guidance.",
            "Guidance from 2015.",
        ]
        assert ranked[2].adjusted_score == pytest.approx(0.9 - 2.0)

    def test_stable_for_ties(self):
        passages = [Passage(text=f"passage {i}", score=0.5) for i in range(6)]
        assert [p.text for p in rank_passages(passages, YEAR)] == [p.text for p in passages]

    def test_does_not_mutate_input(self):
        passages = [Passage(text="Guidance from 2020.", score=1.0)]
        rank_passages(passages, YEAR)
        assert passages[0].adjusted_score == 0.0

    def test_recency_monotonicity(self):
        for older, newer in [(2010, 2011), (2019, 2024), (2000, 2025), (2024, 2026)]:
            old = Passage(text=f"Rule updated in {older}.", score=0.7)
            new = Passage(text=f"Rule updated in {newer}.", score=0.7)
            assert adjusted_score(new, YEAR) >= adjusted_score(old, YEAR)


class TestGroupBySource:
    """Tests for group_by_source()."""

    def test_domain_label(self):
        assert domain_label("https://www.example.com/page") == "example.com"
        assert domain_label("policy-doc-12") == "Source"
        assert domain_label(None) == "Knowledge Base"
        assert domain_label("") == "Knowledge Base"

    def test_caps_per_domain_and_keeps_best(self):
        passages = [
            Passage(text="a1", source="https://a.com/1", adjusted_score=0.1),
            Passage(text="a2", source="https://a.com/2", adjusted_score=0.9),
            Passage(text="a3", source="https://a.com/3", adjusted_score=0.5),
            Passage(text="b1", source="https://b.com/1", adjusted_score=0.3),
        ]
        groups = group_by_source(passages, cap=2)
        assert list(groups) == ["a.com", "b.com"]
        assert [p.text for p in groups["a.com"]] == ["a2", "a3"]
        assert [p.text for p in groups["b.com"]] == ["b1"]

    def test_total_bounded_by_cap_times_domains(self):
        passages = [
            Passage(text="x1", source="https://same.com/1"),
            Passage(text="x2", source="https://same.com/2"),
            Passage(text="y", source="https://one.com"),
            Passage(text="z", source="https://two.com"),
            Passage(text="w", source="https://three.com"),
        ]
        groups = group_by_source(passages, cap=2)
        assert all(len(items) <= 2 for items in groups.values())
        assert sum(len(items) for items in groups.values()) <= 2 * len(groups)
        assert len(groups) == 4

    def test_missing_sources_grouped_under_default_labels(self):
        passages = [Passage(text="k"), Passage(text="s", source="opaque-id")]
        assert list(group_by_source(passages)) == ["Knowledge Base", "Source"]
