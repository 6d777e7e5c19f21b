"""
Shared fixtures for the concierge test suite.
"""
from typing import List, Mapping, Optional, Sequence

import pytest

from concierge.core.config import ConciergeConfig, set_config
from concierge.data.retrieval import CandidateItem, RetrievalSet


@pytest.fixture(autouse=True)
def default_config():
    """Pin every test to dataclass defaults, independent of config/default.yaml."""
    config = ConciergeConfig()
    set_config(config)
    yield config
    set_config(None)


def make_item(
    item_id: str,
    price: Optional[float] = None,
    category: Optional[str] = "snowboard",
    vendor: Optional[str] = None,
    tags: Sequence[str] = (),
    **attributes: str,
) -> CandidateItem:
    return CandidateItem(
        id=item_id,
        title=f"Item {item_id}",
        price=price,
        currency="USD",
        tags=tuple(tags),
        category=category,
        vendor=vendor,
        attributes=dict(attributes),
    )


def make_retrieval(items: List[CandidateItem], facets: Mapping[str, Sequence[str]]) -> RetrievalSet:
    return RetrievalSet.build(items, {k: list(v) for k, v in facets.items()})


@pytest.fixture
def price_spread_retrieval() -> RetrievalSet:
    """20 items over three price bands (10/7/3), everything else identical."""
    items = (
        [make_item(f"low-{i}", price=30) for i in range(10)]
        + [make_item(f"mid-{i}", price=80) for i in range(7)]
        + [make_item(f"high-{i}", price=250) for i in range(3)]
    )
    return make_retrieval(items, {
        "price_bucket": ["Under $50", "$50-$100", "$200+"],
        "category": ["snowboard"],
    })
