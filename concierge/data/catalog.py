"""
In-process catalog implementing the retrieval collaborator.

Filters a fixed item list by canonical facet values and ranks by lexical
overlap with the query. Used for demos and tests; production deployments
plug in their own search backend.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from concierge.core.config import ConciergeConfig, get_config
from concierge.data.retrieval import CandidateItem, RetrievalSet
from concierge.facets.statistics import item_facet_values
from concierge.utils.canonical import canonicalize_facet, canonicalize_value
from concierge.utils.logger import get_logger

logger = get_logger("data.catalog")

DEFAULT_FACETS = ("price_bucket", "category", "tag", "vendor")

_TOKEN = re.compile(r"[a-z0-9]+")


def _split_multi_value(text: str) -> List[str]:
    """Split comma-separated filters into individual trimmed values."""
    if not text:
        return []
    return [part.strip() for part in str(text).split(",") if part.strip()]


def _tokens(text: Optional[str]) -> Set[str]:
    return set(_TOKEN.findall((text or "").lower()))


@dataclass
class InMemoryCatalog:
    """
    Retrieval client over an in-memory item list.

    Facet values come from the matched items; when nothing matches, the
    store-wide values are returned so relaxation and strategy selection still
    see the facet space.
    """
    items: List[CandidateItem] = field(default_factory=list)
    facets: Sequence[str] = DEFAULT_FACETS
    config: Optional[ConciergeConfig] = None
    calls: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_dicts(cls, rows: Iterable[Mapping], **kwargs) -> "InMemoryCatalog":
        return cls(items=[CandidateItem.from_dict(dict(row)) for row in rows], **kwargs)

    def _facet_names(self) -> List[str]:
        names = list(self.facets)
        seen = {canonicalize_facet(f) for f in names}
        for item in self.items:
            for key in item.attributes:
                if canonicalize_facet(key) not in seen:
                    seen.add(canonicalize_facet(key))
                    names.append(key)
        return names

    def _matches(self, item: CandidateItem, filters: Mapping[str, str], config: ConciergeConfig) -> bool:
        for facet, wanted in filters.items():
            wanted_keys = {canonicalize_value(v) for v in _split_multi_value(wanted)}
            if not wanted_keys:
                continue
            values = {canonicalize_value(v) for v in item_facet_values(item, facet, config)}
            if not values & wanted_keys:
                return False
        return True

    def facet_values_for(self, items: Sequence[CandidateItem]) -> Dict[str, Set[str]]:
        config = self.config or get_config()
        values: Dict[str, Set[str]] = {}
        for facet in self._facet_names():
            found = {v for item in items for v in item_facet_values(item, facet, config)}
            if found:
                values[facet] = found
        return values

    async def search(
        self,
        query: str,
        embedding: Sequence[float],
        filters: Mapping[str, str],
        limit: int,
    ) -> RetrievalSet:
        config = self.config or get_config()
        self.calls.append(dict(filters))

        matched = [item for item in self.items if self._matches(item, filters, config)]

        query_tokens = _tokens(query)
        if query_tokens:
            def overlap(item: CandidateItem) -> int:
                text = " ".join([item.title, item.category or "", item.vendor or "", *item.tags])
                return len(query_tokens & _tokens(text))
            matched.sort(key=overlap, reverse=True)

        matched = matched[:limit]
        facet_values = self.facet_values_for(matched if matched else self.items)

        logger.debug(f"Catalog search {query!r} filters={dict(filters)}: {len(matched)} items")
        return RetrievalSet.build(matched, facet_values)


__all__ = ["InMemoryCatalog"]
