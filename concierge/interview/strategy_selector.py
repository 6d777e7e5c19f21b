"""
Turn strategy selection.

Decides whether this turn shows results or asks a clarifying question, and
which facet and options the clarifier offers. Facets are ranked by the
information-theoretic utility computed in `concierge.facets.statistics`.
"""
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Set, Tuple

from concierge.core.config import ConciergeConfig, get_config
from concierge.data.retrieval import RetrievalSet
from concierge.facets.statistics import FacetStat, compute_facet_stats, rank_facet_stats
from concierge.utils.canonical import canonicalize_facet, dedupe_values
from concierge.utils.logger import get_logger

logger = get_logger("interview.strategy_selector")

SHOW_RESULTS = "show_results"
ASK_CLARIFIER = "ask_clarifier"


@dataclass(frozen=True)
class TurnStrategy:
    """Decision output for one turn."""
    action: str
    facet_to_ask: Optional[str] = None
    option_values: Tuple[str, ...] = ()
    suggested_refinements: Tuple[str, ...] = ()

    @property
    def ask_clarifier(self) -> bool:
        return self.action == ASK_CLARIFIER

    @classmethod
    def show_results(cls, suggested_refinements: Iterable[str] = ()) -> "TurnStrategy":
        return cls(action=SHOW_RESULTS, suggested_refinements=tuple(suggested_refinements))

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "facet_to_ask": self.facet_to_ask,
            "option_values": list(self.option_values),
            "suggested_refinements": list(self.suggested_refinements),
        }


def _answered_set(answered_facets: Iterable[str]) -> Set[str]:
    return {canonicalize_facet(f) for f in answered_facets if f}


def _qualifies_as_clarifier(stat: FacetStat, config: ConciergeConfig) -> bool:
    return (
        config.clarifier_min_cardinality <= stat.cardinality <= config.clarifier_max_cardinality
        and stat.impact >= config.clarifier_min_impact
        and stat.utility >= config.clarifier_min_utility
    )


def enforce_strategy_invariants(
    strategy: TurnStrategy,
    config: Optional[ConciergeConfig] = None,
) -> TurnStrategy:
    """
    Degrade malformed clarifier strategies to show_results.

    A clarifier must name a facet and carry at least two distinct option
    values. Anything else is a defect upstream; it is logged, never raised.
    """
    config = config or get_config()
    if not strategy.ask_clarifier:
        return strategy

    options = dedupe_values(strategy.option_values, limit=config.max_option_values)
    if strategy.facet_to_ask and len(options) >= 2:
        if tuple(options) != strategy.option_values:
            return replace(strategy, option_values=tuple(options))
        return strategy

    logger.error(
        f"Invalid clarifier strategy (facet={strategy.facet_to_ask!r}, "
        f"options={list(strategy.option_values)}): degrading to show_results"
    )
    return TurnStrategy.show_results(strategy.suggested_refinements)


def find_suppressed_facets(
    stats: Iterable[FacetStat],
    answered_facets: Iterable[str],
    config: Optional[ConciergeConfig] = None,
) -> List[str]:
    """Facets that would qualify as clarifiers but were already answered."""
    config = config or get_config()
    answered = _answered_set(answered_facets)
    return [
        stat.facet for stat in rank_facet_stats(stats)
        if canonicalize_facet(stat.facet) in answered and _qualifies_as_clarifier(stat, config)
    ]


def select_turn_strategy(
    retrieval: RetrievalSet,
    answered_facets: Iterable[str] = (),
    stats: Optional[List[FacetStat]] = None,
    config: Optional[ConciergeConfig] = None,
) -> TurnStrategy:
    """
    Choose between showing results and asking a clarifier.

    Strategy:
    1. Empty or small (<= show_results_max_items) retrieval sets always show results
    2. Rank facets by utility (stable, ties keep input order)
    3. Ask about the first facet with cardinality in range, enough impact and
       utility, that the shopper has not already answered
    4. Otherwise show results with up to two passive refinement hints

    Args:
        retrieval: Current retrieval set
        answered_facets: Facets the shopper already answered (TTL-pruned)
        stats: Precomputed facet statistics (computed when omitted)
        config: Optional configuration

    Returns:
        TurnStrategy for this turn
    """
    config = config or get_config()
    total_items = len(retrieval.items)

    if total_items == 0:
        logger.info("No candidates: showing results")
        return TurnStrategy.show_results()

    if total_items <= config.show_results_max_items:
        logger.info(f"Only {total_items} candidates: showing results")
        return TurnStrategy.show_results()

    answered = _answered_set(answered_facets)
    if stats is None:
        stats = compute_facet_stats(retrieval, config=config)
    ranked = rank_facet_stats(stats)

    logger.info(f"Facet utility ranking: {[(s.facet, round(s.utility, 3)) for s in ranked]}")

    top_facet = next(
        (
            stat for stat in ranked
            if _qualifies_as_clarifier(stat, config)
            and canonicalize_facet(stat.facet) not in answered
        ),
        None,
    )

    if top_facet is not None:
        options = dedupe_values(top_facet.ordered_values(), limit=config.max_option_values)
        if len(options) >= 2:
            logger.info(f"Asking clarifier on '{top_facet.facet}' with options {options}")
            return TurnStrategy(
                action=ASK_CLARIFIER,
                facet_to_ask=top_facet.facet,
                option_values=tuple(options),
            )
        logger.info(f"Facet '{top_facet.facet}' has fewer than 2 option values, not asking")

    refinements = [
        stat.facet for stat in ranked
        if stat.utility >= config.refinement_min_utility
        and canonicalize_facet(stat.facet) not in answered
    ][:config.max_refinements]

    logger.info(f"Showing results with refinements {refinements}")
    return TurnStrategy.show_results(refinements)


__all__ = [
    "SHOW_RESULTS",
    "ASK_CLARIFIER",
    "TurnStrategy",
    "select_turn_strategy",
    "enforce_strategy_invariants",
    "find_suppressed_facets",
]
