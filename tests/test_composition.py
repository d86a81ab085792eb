"""Tests for composition planning and the deterministic fallback."""

import json

import pytest

from pagegen.core.composition import (
    MAX_SOURCES,
    build_deterministic_plan,
    build_local_quotes,
    build_sources,
    compose_plan,
)
from pagegen.core.highlights import extract_highlights, trim_to_sentence
from pagegen.core.schemas_pages import (
    CARD_BLURB_MAX_CHARS,
    CARD_BLURB_MIN_CHARS,
    HIGHLIGHT_MAX_CHARS,
    HIGHLIGHT_MIN_CHARS,
    MAX_CARDS,
    MAX_LOCAL_QUOTES,
    Passage,
)
from tests.fakes.fake_backends import FakeGenerator

TEXTS = [
    "Rental income from an investment property must be documented with the borrower's "
    "most recent federal income tax return.",
    "A fully executed lease agreement is required for each unit when the borrower owns "
    "the property for less than one year.",
    "The appraisal must include a comparable rent schedule for one-unit investment properties.",
    "Lenders must verify the borrower's income with documentation dated within 120 days "
    "of the note date.",
    "Vacancy and maintenance expenses reduce the gross rent used to qualify the borrower "
    "for the mortgage loan.",
]


def _passages():
    sources = [
        "https://a.example.com/1",
        "https://a.example.com/2",
        "https://a.example.com/3",
        "https://b.example.com/1",
        "internal-doc-9",
    ]
    return [
        Passage(text=text, source=source, score=0.9 - i * 0.1, adjusted_score=0.9 - i * 0.1)
        for i, (text, source) in enumerate(zip(TEXTS, sources))
    ]


def _highlights(passages):
    return extract_highlights([p.text for p in passages])


def _generative(pipeline_config):
    return pipeline_config.model_copy(update={"enable_generative": True})


class TestBuildSources:
    """Tests for build_sources()."""

    def test_numbered_distinct_in_order(self):
        passages = _passages() + [Passage(text="dup", source="https://a.example.com/1")]
        refs = build_sources(passages)
        assert [r.index for r in refs] == [1, 2, 3, 4, 5]
        assert refs[0].domain == "a.example.com"
        assert refs[0].is_url is True
        assert refs[4].source == "internal-doc-9"
        assert refs[4].is_url is False

    def test_capped(self):
        passages = [Passage(text="t", source=f"https://s{i}.example.com") for i in range(20)]
        assert len(build_sources(passages)) == MAX_SOURCES

    def test_sources_missing(self):
        assert build_sources([Passage(text="t"), Passage(text="u", source="  ")]) == []


class TestBuildLocalQuotes:
    """Tests for build_local_quotes()."""

    def test_grouped_and_capped_per_domain(self):
        quotes = build_local_quotes(_passages(), cap_per_source=2)
        domains = [q.domain for q in quotes]
        assert domains.count("a.example.com") == 2
        assert domains.count("b.example.com") == 1
        assert domains.count("Source") == 1

    def test_skips_short_and_trims_long(self):
        passages = [
            Passage(text="Too short to quote.", source="https://a.example.com"),
            Passage(text=TEXTS[0] + " " + TEXTS[1] + " " + TEXTS[3], source="https://b.example.com"),
        ]
        quotes = build_local_quotes(passages, cap_per_source=2)
        assert len(quotes) == 1
        assert len(quotes[0].text) <= 240
        assert quotes[0].source == "https://b.example.com"

    def test_total_capped(self):
        passages = [
            Passage(text=f"{TEXTS[0]} ({i})", source=f"https://s{i}.example.com") for i in range(30)
        ]
        assert len(build_local_quotes(passages, cap_per_source=2)) == MAX_LOCAL_QUOTES


class TestDeterministicPlan:
    """Tests for build_deterministic_plan()."""

    def test_cards_from_top_highlights(self, pipeline_config):
        passages = _passages()
        highlights = _highlights(passages)
        plan = build_deterministic_plan("rental income", highlights, passages, pipeline_config)

        assert plan.mode == "deterministic"
        assert plan.highlights == [h.text for h in highlights]
        assert len(plan.cards) == MAX_CARDS
        for card, highlight in zip(plan.cards, highlights):
            assert card.title == highlight.title
            assert card.slug == highlight.slug
            assert card.blurb == trim_to_sentence(highlight.text, 220)
        assert plan.intro is None
        assert plan.quotes_local is False

    def test_generator_ignored_when_disabled(self, pipeline_config):
        generator = FakeGenerator("{}")
        passages = _passages()
        build_deterministic_plan("b", _highlights(passages), passages, pipeline_config, generator)
        assert generator.calls == []

    def test_blurbs_from_chain_when_enabled(self, pipeline_config):
        passages = _passages()
        highlights = _highlights(passages)
        blurbs = [f"Summarized card blurb number {i} for the rental income page." for i in range(4)]
        generator = FakeGenerator(json.dumps({"blurbs": blurbs}))

        plan = build_deterministic_plan(
            "b", highlights, passages, _generative(pipeline_config), generator
        )
        assert [c.blurb for c in plan.cards] == blurbs
        assert generator.calls[0]["model"] == pipeline_config.blurb_model

    def test_no_highlights(self, pipeline_config):
        plan = build_deterministic_plan("b", [], _passages(), pipeline_config)
        assert plan.cards == []
        assert plan.quotes


class TestComposePlan:
    """Tests for compose_plan()."""

    def test_disabled_uses_deterministic(self, pipeline_config):
        generator = FakeGenerator("{}")
        passages = _passages()
        plan = compose_plan("b", passages, _highlights(passages), pipeline_config, generator)
        assert plan.mode == "deterministic"
        assert generator.calls == []

    def test_generative_plan_gets_local_quotes(self, pipeline_config):
        passages = _passages()
        payload = {
            "intro": "Rental income can count toward qualifying income.",
            "highlights": [TEXTS[0]],
            "cards": [{"title": "Documenting rental income", "blurb": TEXTS[0]}],
            "quotes": [],
        }
        generator = FakeGenerator(json.dumps(payload))
        plan = compose_plan(
            "b", passages, _highlights(passages), _generative(pipeline_config), generator
        )
        assert plan.mode == "generative"
        assert plan.quotes_local is True
        assert plan.quotes
        assert generator.calls[0]["model"] == pipeline_config.planner_model

    def test_generative_plan_keeps_its_quotes(self, pipeline_config):
        passages = _passages()
        payload = {"highlights": [TEXTS[1]], "quotes": [{"text": TEXTS[2]}]}
        plan = compose_plan(
            "b",
            passages,
            _highlights(passages),
            _generative(pipeline_config),
            FakeGenerator(json.dumps(payload)),
        )
        assert plan.mode == "generative"
        assert plan.quotes_local is False
        assert [q.text for q in plan.quotes] == [TEXTS[2]]

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "I cannot help with that.",
            "[]",
            '{"highlights": [1, 2, 3]}',
            '{"cards": "none", "quotes": {"text": 5}}',
            '{"highlights": ["' + "x" * 400 + '"]}',
            "```json\n{broken\n```",
        ],
    )
    def test_malformed_output_falls_back_within_bounds(self, pipeline_config, raw):
        passages = _passages()
        plan = compose_plan(
            "b", passages, _highlights(passages), _generative(pipeline_config), FakeGenerator(raw)
        )
        assert plan.mode == "deterministic"
        assert not plan.is_empty()
        assert len(plan.cards) <= MAX_CARDS
        assert all(
            CARD_BLURB_MIN_CHARS <= len(c.blurb) <= CARD_BLURB_MAX_CHARS for c in plan.cards
        )
        assert all(HIGHLIGHT_MIN_CHARS <= len(h) <= HIGHLIGHT_MAX_CHARS for h in plan.highlights)

    def test_backend_failure_falls_back(self, pipeline_config):
        passages = _passages()
        generator = FakeGenerator(error=ConnectionError("refused"))
        plan = compose_plan(
            "b", passages, _highlights(passages), _generative(pipeline_config), generator
        )
        assert plan.mode == "deterministic"
        assert [c["chain"] for c in generator.calls] == [
            "plan_rich_sections",
            "summarize_highlights",
        ]
