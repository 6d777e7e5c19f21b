"""
Tests for progressive constraint relaxation.
"""
from typing import Dict, List, Mapping, Sequence

import pytest

from concierge.data.catalog import InMemoryCatalog
from concierge.data.retrieval import RetrievalSet
from concierge.recommendation.progressive_relaxation import relax_constraints, rule_for_facet
from conftest import make_item, make_retrieval


class ScriptedRetrieval:
    """Retrieval fake returning queued results and recording filter sets."""

    def __init__(self, results: Sequence[RetrievalSet] = ()):
        self.results: List[RetrievalSet] = list(results)
        self.calls: List[Dict[str, str]] = []

    async def search(self, query: str, embedding: Sequence[float], filters: Mapping[str, str], limit: int) -> RetrievalSet:
        self.calls.append(dict(filters))
        if self.results:
            return self.results.pop(0)
        return make_retrieval([], {"price_bucket": ["Under $50"], "style": ["city"]})


EMPTY = make_retrieval([], {"style": ["city", "touring"]})


class TestRelaxationOrder:
    """Filters are dropped in priority order."""

    @pytest.mark.asyncio
    async def test_drops_price_then_style(self):
        client = ScriptedRetrieval()
        filters = {"price_bucket": "Under $50", "style": "city"}

        outcome = await relax_constraints(EMPTY, filters, client, "city bike")

        assert [step.facet for step in outcome.steps] == ["price_bucket", "style"]
        assert outcome.filters == {}
        assert client.calls == [{"style": "city"}, {}]
        assert outcome.retrieval.is_empty

    @pytest.mark.asyncio
    async def test_stops_at_first_non_empty(self):
        hit = make_retrieval([make_item("a", price=120)], {"style": ["city"]})
        client = ScriptedRetrieval([hit])
        filters = {"price_bucket": "Under $50", "style": "city", "vendor": "Acme"}

        outcome = await relax_constraints(EMPTY, filters, client, "bike")

        assert len(outcome.steps) == 1
        assert outcome.filters == {"style": "city", "vendor": "Acme"}
        assert outcome.retrieval is hit
        assert outcome.steps[0].results_after == 1

    @pytest.mark.asyncio
    async def test_missing_priority_facets_are_skipped(self):
        client = ScriptedRetrieval()
        outcome = await relax_constraints(EMPTY, {"vendor": "Acme"}, client, "bike")
        assert outcome.relaxed_facets == ["vendor"]
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_filters_outside_priority_are_kept(self):
        client = ScriptedRetrieval()
        filters = {"color": "red", "price_bucket": "Under $50"}

        outcome = await relax_constraints(EMPTY, filters, client, "bike")

        assert outcome.filters == {"color": "red"}
        assert set(outcome.filters) <= set(filters)
        assert len(outcome.steps) <= 4

    @pytest.mark.asyncio
    async def test_canonical_filter_keys(self):
        client = ScriptedRetrieval()
        outcome = await relax_constraints(EMPTY, {"Price Bucket": "Under $50"}, client, "bike")
        assert outcome.relaxed_facets == ["Price Bucket"]
        assert outcome.filters == {}


class TestNoRelaxation:
    """Relaxation only runs on empty results with active filters."""

    @pytest.mark.asyncio
    async def test_non_empty_retrieval_untouched(self):
        client = ScriptedRetrieval()
        retrieval = make_retrieval([make_item("a")], {})
        outcome = await relax_constraints(retrieval, {"style": "city"}, client, "bike")
        assert not outcome.relaxed
        assert outcome.filters == {"style": "city"}
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_no_filters(self):
        client = ScriptedRetrieval()
        outcome = await relax_constraints(EMPTY, {}, client, "bike")
        assert not outcome.relaxed
        assert client.calls == []


class TestRelaxationCopy:
    """Notes and undo options."""

    @pytest.mark.asyncio
    async def test_notes_and_undo(self):
        client = ScriptedRetrieval()
        outcome = await relax_constraints(EMPTY, {"price_bucket": "Under $50", "style": "city"}, client, "bike")

        assert [n.variant for n in outcome.notes] == ["relaxation", "relaxation"]
        assert outcome.notes[0].text == (
            "Nothing in stock in the Under $50 range. I widened the price range so you still see close matches."
        )
        assert outcome.steps[0].description == outcome.notes[0].text
        assert [u.id for u in outcome.undo_options] == ["undo_price_bucket", "undo_style"]
        assert outcome.undo_options[0].label == "Keep Under $50"
        assert outcome.undo_options[1].label == "Stay with City"
        assert outcome.undo_options[1].value == "city"

    @pytest.mark.asyncio
    async def test_price_copy_uses_band_label(self):
        outcome = await relax_constraints(EMPTY, {"price_bucket": "$200+"}, ScriptedRetrieval(), "bike")
        assert outcome.undo_options[0].label == "Keep $200+"
        assert outcome.steps[0].description.startswith("Nothing in stock in the $200+ range.")
        assert "under" not in outcome.steps[0].description.lower()

    def test_unknown_facet_gets_generic_copy(self):
        rule = rule_for_facet("Frame Size")
        assert rule.render_label("xl") == "Keep Xl"
        assert "frame size" in rule.render_description(None)


class TestWithCatalog:
    """Relaxation against the in-memory catalog."""

    @pytest.mark.asyncio
    async def test_relaxes_price_to_find_items(self):
        catalog = InMemoryCatalog(items=[
            make_item("a", price=180, style="city"),
            make_item("b", price=240, style="touring"),
        ])
        filters = {"price_bucket": "Under $50", "style": "city"}
        first = await catalog.search("bike", (), filters, 24)
        assert first.is_empty
        assert "style" in first.facet_values

        outcome = await relax_constraints(first, filters, catalog, "bike")

        assert outcome.relaxed_facets == ["price_bucket"]
        assert [item.id for item in outcome.retrieval.items] == ["a"]
        assert outcome.filters == {"style": "city"}
