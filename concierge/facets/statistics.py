"""
Facet statistics for turn strategy selection.

Computes the value-frequency distribution of every candidate facet, its Shannon
entropy, and how much of the candidate set its most common value would still
leave unresolved. Pure functions of the retrieval set.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import math

import numpy as np

from concierge.core.config import ConciergeConfig, get_config
from concierge.data.retrieval import CandidateItem, RetrievalSet
from concierge.utils.canonical import canonicalize_facet, canonicalize_value
from concierge.utils.logger import get_logger

logger = get_logger("facets.statistics")

PRICE_FACET = "price_bucket"
TAG_FACET = "tag"


@dataclass(frozen=True)
class FacetStat:
    """Per-turn statistics for one facet."""
    facet: str
    entropy: float
    cardinality: int
    impact: float
    click_prior: float
    utility: float
    value_counts: Mapping[str, int] = field(default_factory=dict)

    def ordered_values(self) -> List[str]:
        """Values sorted by frequency, first-seen order on ties."""
        ranked = sorted(enumerate(self.value_counts.items()), key=lambda x: (-x[1][1], x[0]))
        return [value for _, (value, _count) in ranked]


def bucketize_prices(
    prices: Sequence[Optional[float]],
    config: Optional[ConciergeConfig] = None,
) -> List[Optional[str]]:
    """
    Map prices onto the configured fixed price bands.

    Band upper bounds are inclusive ("Under $50" holds 50.0). Prices above the
    last band land in the overflow band; missing or NaN prices map to None.

    Args:
        prices: Prices in catalog currency units
        config: Optional configuration (global config when omitted)

    Returns:
        One band label (or None) per input price
    """
    config = config or get_config()
    if not prices:
        return []

    edges = np.array([upper for upper, _ in config.price_bands], dtype=float)
    labels = [label for _, label in config.price_bands] + [config.price_overflow_label]

    values = np.array(
        [np.nan if p is None else float(p) for p in prices],
        dtype=float,
    )
    indices = np.digitize(values, edges, right=True)

    return [
        None if np.isnan(value) else labels[int(idx)]
        for value, idx in zip(values, indices)
    ]


def bucketize_price(price: Optional[float], config: Optional[ConciergeConfig] = None) -> Optional[str]:
    """Band label for a single price."""
    return bucketize_prices([price], config)[0]


def item_facet_values(
    item: CandidateItem,
    facet: str,
    config: Optional[ConciergeConfig] = None,
) -> List[str]:
    """
    Extract the value(s) an item carries for a facet.

    Tags are multi-valued and capped to the first `tag_cap` entries; every other
    facet yields at most one value.
    """
    config = config or get_config()
    facet = canonicalize_facet(facet)

    if facet == PRICE_FACET:
        label = bucketize_price(item.price, config)
        return [label] if label else []
    if facet == TAG_FACET:
        return [t for t in item.tags[:config.tag_cap] if t and t.strip()]
    if facet in ("category", "product_type"):
        raw = item.category
    elif facet == "vendor":
        raw = item.vendor
    else:
        raw = item.attributes.get(facet)
        if raw is None:
            # attribute keys are free-form
            for key, value in item.attributes.items():
                if canonicalize_facet(key) == facet:
                    raw = value
                    break

    if raw is None or not str(raw).strip():
        return []
    return [str(raw).strip()]


def count_facet_values(
    items: Iterable[CandidateItem],
    facet: str,
    config: Optional[ConciergeConfig] = None,
) -> Dict[str, int]:
    """
    Count facet values across items.

    Values are merged by canonical key; the first display form seen is kept.
    Insertion order follows first appearance.
    """
    config = config or get_config()
    counts: "OrderedDict[str, int]" = OrderedDict()
    display: Dict[str, str] = {}

    for item in items:
        for value in item_facet_values(item, facet, config):
            key = canonicalize_value(value)
            if not key:
                continue
            label = display.setdefault(key, value)
            counts[label] = counts.get(label, 0) + 1

    return counts


def compute_shannon_entropy(counts: Mapping[str, int]) -> float:
    """
    Compute Shannon entropy of a value-frequency distribution.

    H = -Σ p_i * log2(p_i)

    Args:
        counts: Mapping from value to count

    Returns:
        Shannon entropy in bits (0.0 for an empty distribution)
    """
    total = sum(c for c in counts.values() if c > 0)
    if total == 0:
        return 0.0

    entropy = 0.0
    for count in counts.values():
        if count <= 0:
            continue
        p = count / total
        entropy -= p * math.log2(p)

    return entropy


def compute_facet_stat(
    retrieval: RetrievalSet,
    facet: str,
    config: Optional[ConciergeConfig] = None,
) -> FacetStat:
    """Compute entropy, impact and utility for a single facet."""
    config = config or get_config()
    total_items = len(retrieval.items)
    counts = count_facet_values(retrieval.items, facet, config)

    entropy = compute_shannon_entropy(counts)
    max_count = max(counts.values()) if counts else 0
    impact = 1 - (max_count / total_items) if total_items > 0 else 0.0

    available = retrieval.facet_values.get(facet)
    if available is None:
        cardinality = len(counts)
    else:
        cardinality = len({canonicalize_value(v) for v in available if canonicalize_value(v)})

    click_prior = config.click_priors.get(canonicalize_facet(facet), config.default_click_prior)
    utility = entropy * impact * click_prior

    return FacetStat(
        facet=facet,
        entropy=entropy,
        cardinality=cardinality,
        impact=impact,
        click_prior=click_prior,
        utility=utility,
        value_counts=counts,
    )


def compute_facet_stats(
    retrieval: RetrievalSet,
    facets: Optional[Iterable[str]] = None,
    config: Optional[ConciergeConfig] = None,
) -> List[FacetStat]:
    """
    Compute statistics for every candidate facet.

    Args:
        retrieval: Current retrieval set
        facets: Facets to analyse (defaults to the retrieval set's facet keys)
        config: Optional configuration

    Returns:
        FacetStat list in input order
    """
    config = config or get_config()
    facet_names = list(facets) if facets is not None else list(retrieval.facet_values.keys())

    stats = [compute_facet_stat(retrieval, facet, config) for facet in facet_names]
    for stat in stats:
        logger.debug(
            f"  {stat.facet}: entropy={stat.entropy:.3f} impact={stat.impact:.3f} "
            f"prior={stat.click_prior:.2f} utility={stat.utility:.3f} cardinality={stat.cardinality}"
        )
    return stats


def rank_facet_stats(stats: Iterable[FacetStat]) -> List[FacetStat]:
    """Sort by utility descending; stable, so ties keep input order."""
    return sorted(stats, key=lambda s: s.utility, reverse=True)


__all__ = [
    "FacetStat",
    "PRICE_FACET",
    "TAG_FACET",
    "bucketize_price",
    "bucketize_prices",
    "item_facet_values",
    "count_facet_values",
    "compute_shannon_entropy",
    "compute_facet_stat",
    "compute_facet_stats",
    "rank_facet_stats",
]
