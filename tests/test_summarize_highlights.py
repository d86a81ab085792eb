"""Tests for the highlight blurb chain."""

import json

from pagegen.chains.summarize_highlights import summarize_highlights_to_blurbs
from tests.fakes.fake_backends import FakeGenerator

SENTENCES = [
    "Rental income must be documented with the most recent federal income tax return.",
    "A fully executed lease agreement is required for each unit of the property.",
]
BLURBS = [
    "Document rental income with the latest federal income tax return.",
    "Each unit needs a fully executed lease agreement on file.",
]


def _run(raw):
    generator = FakeGenerator(raw)
    result = summarize_highlights_to_blurbs(
        "rental income", SENTENCES, 2, generate=generator, model="blurb-model"
    )
    return result, generator


class TestSummarizeHighlightsToBlurbs:
    """Tests for summarize_highlights_to_blurbs()."""

    def test_returns_blurbs_in_order(self):
        result, generator = _run(json.dumps({"blurbs": BLURBS}))
        assert result == BLURBS
        (call,) = generator.calls
        assert call["chain"] == "summarize_highlights"
        assert call["model"] == "blurb-model"
        assert [s["text"] for s in json.loads(call["user"])["sentences"]] == SENTENCES
        assert "at most 2 sentences" in call["system"]

    def test_count_mismatch_returns_none(self):
        result, _ = _run(json.dumps({"blurbs": BLURBS[:1]}))
        assert result is None

    def test_malformed_json_returns_none(self):
        result, _ = _run("Here are your blurbs: 1. ...")
        assert result is None

    def test_non_string_blurb_returns_none(self):
        result, _ = _run(json.dumps({"blurbs": [BLURBS[0], {"text": BLURBS[1]}]}))
        assert result is None

    def test_too_short_blurb_returns_none(self):
        result, _ = _run(json.dumps({"blurbs": [BLURBS[0], "Too short."]}))
        assert result is None

    def test_long_blurb_trimmed(self):
        long_blurb = "Lease terms are reviewed for every unit. " * 12
        result, _ = _run(json.dumps({"blurbs": [BLURBS[0], long_blurb]}))
        assert len(result[1]) <= 240

    def test_backend_failure_returns_none(self):
        generator = FakeGenerator(error=ConnectionError("refused"))
        assert (
            summarize_highlights_to_blurbs("b", SENTENCES, 2, generate=generator, model="m")
            is None
        )

    def test_no_sentences_skips_call(self):
        generator = FakeGenerator("{}")
        assert summarize_highlights_to_blurbs("b", [], 2, generate=generator, model="m") is None
        assert generator.calls == []
