"""
Unit tests for turn strategy selection.
"""
import pytest

from concierge.core.config import ConciergeConfig
from concierge.facets.statistics import compute_facet_stats
from concierge.interview.strategy_selector import (
    ASK_CLARIFIER,
    SHOW_RESULTS,
    TurnStrategy,
    enforce_strategy_invariants,
    find_suppressed_facets,
    select_turn_strategy,
)
from conftest import make_item, make_retrieval


class TestSmallResultSets:
    """Small retrieval sets always show results."""

    @pytest.mark.parametrize("count", [0, 1, 2, 3, 4])
    def test_at_most_four_items(self, count):
        items = [make_item(str(i), price=30 + 60 * i, vendor=f"V{i}") for i in range(count)]
        retrieval = make_retrieval(items, {"price_bucket": [], "vendor": []})
        strategy = select_turn_strategy(retrieval)
        assert strategy.action == SHOW_RESULTS
        assert strategy.facet_to_ask is None


class TestClarifierSelection:
    """Clarifier facet choice."""

    def test_price_spread_asks_price(self, price_spread_retrieval):
        strategy = select_turn_strategy(price_spread_retrieval)
        assert strategy.action == ASK_CLARIFIER
        assert strategy.facet_to_ask == "price_bucket"
        assert strategy.option_values == ("Under $50", "$50-$100", "$200+")

    def test_product_type_facet_is_asked(self):
        items = [make_item(str(i), category="boots" if i < 5 else "snowboard") for i in range(10)]
        retrieval = make_retrieval(items, {"product_type": ["boots", "snowboard"]})
        strategy = select_turn_strategy(retrieval)
        assert strategy.action == ASK_CLARIFIER
        assert strategy.facet_to_ask == "product_type"

    def test_answered_facet_is_skipped(self, price_spread_retrieval):
        strategy = select_turn_strategy(price_spread_retrieval, answered_facets=["Price Bucket"])
        assert strategy.action == SHOW_RESULTS

    def test_high_cardinality_not_asked(self):
        items = [make_item(str(i), vendor=f"Brand {i}") for i in range(8)]
        retrieval = make_retrieval(items, {"vendor": [f"Brand {i}" for i in range(8)]})
        strategy = select_turn_strategy(retrieval)
        assert strategy.action == SHOW_RESULTS
        # still worth suggesting as a passive refinement
        assert strategy.suggested_refinements == ("vendor",)

    def test_low_impact_not_asked(self):
        items = [make_item(str(i), price=30) for i in range(19)] + [make_item("x", price=80)]
        retrieval = make_retrieval(items, {"price_bucket": ["Under $50", "$50-$100"]})
        strategy = select_turn_strategy(retrieval)
        assert strategy.action == SHOW_RESULTS

    def test_options_capped(self):
        prices = [30, 80, 120, 180, 300]
        items = [make_item(f"{p}-{i}", price=p) for p in prices for i in range(2)]
        config = ConciergeConfig(max_option_values=3)
        retrieval = make_retrieval(items, {"price_bucket": []})
        strategy = select_turn_strategy(retrieval, config=config)
        assert strategy.action == ASK_CLARIFIER
        assert len(strategy.option_values) == 3

    def test_refinements_capped_at_two(self):
        items = [
            make_item(str(i), price=30 if i < 5 else 80, vendor=f"V{i % 6}", tags=[f"t{i % 7}"])
            for i in range(12)
        ]
        config = ConciergeConfig(clarifier_min_utility=10.0)
        retrieval = make_retrieval(items, {"price_bucket": [], "vendor": [], "tag": []})
        strategy = select_turn_strategy(retrieval, config=config)
        assert strategy.action == SHOW_RESULTS
        assert len(strategy.suggested_refinements) == 2


class TestInvariants:
    """Malformed clarifier strategies degrade to show_results."""

    def test_single_option_degrades(self):
        strategy = TurnStrategy(action=ASK_CLARIFIER, facet_to_ask="style", option_values=("Park",))
        assert enforce_strategy_invariants(strategy).action == SHOW_RESULTS

    def test_duplicate_options_degrade(self):
        strategy = TurnStrategy(action=ASK_CLARIFIER, facet_to_ask="style", option_values=("Park", " park "))
        assert enforce_strategy_invariants(strategy).action == SHOW_RESULTS

    def test_missing_facet_degrades(self):
        strategy = TurnStrategy(action=ASK_CLARIFIER, option_values=("a", "b"))
        assert enforce_strategy_invariants(strategy).action == SHOW_RESULTS

    def test_valid_strategy_unchanged(self):
        strategy = TurnStrategy(action=ASK_CLARIFIER, facet_to_ask="style", option_values=("Park", "Powder"))
        assert enforce_strategy_invariants(strategy) == strategy

    def test_show_results_passes_through(self):
        strategy = TurnStrategy.show_results(["vendor"])
        assert enforce_strategy_invariants(strategy) is strategy


class TestSuppressedFacets:
    """Answered facets that would otherwise have been asked."""

    def test_reports_answered_qualifying_facet(self, price_spread_retrieval):
        stats = compute_facet_stats(price_spread_retrieval)
        assert find_suppressed_facets(stats, ["price_bucket"]) == ["price_bucket"]

    def test_ignores_non_qualifying_facet(self, price_spread_retrieval):
        stats = compute_facet_stats(price_spread_retrieval)
        assert find_suppressed_facets(stats, ["category"]) == []
