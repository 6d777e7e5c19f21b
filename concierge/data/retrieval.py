"""
Retrieval collaborator boundary.

The search backend resolves a query plus active filters into ranked candidate
items. The decision core only reads what it returns.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Protocol, Sequence, Tuple


@dataclass(frozen=True)
class CandidateItem:
    """Read-only projection of a catalog entry."""
    id: str
    title: str
    price: Optional[float] = None
    currency: Optional[str] = None
    tags: Tuple[str, ...] = ()
    category: Optional[str] = None
    vendor: Optional[str] = None
    score: Optional[float] = None
    attributes: Mapping[str, str] = field(default_factory=dict)  # style, use_case, ...

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CandidateItem":
        """Build an item from a loosely-typed search payload."""
        price = payload.get("price")
        try:
            price = float(price) if price is not None else None
        except (TypeError, ValueError):
            price = None
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or ""),
            price=price,
            currency=payload.get("currency"),
            tags=tuple(str(t) for t in (payload.get("tags") or []) if t),
            category=payload.get("category") or payload.get("product_type"),
            vendor=payload.get("vendor"),
            score=payload.get("score", payload.get("combined_score")),
            attributes={str(k): str(v) for k, v in (payload.get("attributes") or {}).items() if v is not None},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "currency": self.currency,
            "tags": list(self.tags),
            "category": self.category,
            "vendor": self.vendor,
            "score": self.score,
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True)
class RetrievalSet:
    """Items plus the facet values available for the current query."""
    items: Tuple[CandidateItem, ...] = ()
    facet_values: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        items: Sequence[CandidateItem],
        facet_values: Optional[Mapping[str, Any]] = None,
    ) -> "RetrievalSet":
        """Freeze item and facet containers."""
        frozen = {
            facet: frozenset(str(v) for v in values if v is not None)
            for facet, values in (facet_values or {}).items()
        }
        return cls(items=tuple(items), facet_values=frozen)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def __len__(self) -> int:
        return len(self.items)


class RetrievalClient(Protocol):
    """
    Search backend consumed by the core.

    Must be idempotent for identical filter sets within a turn and must return
    populated facet values even when no item matches.
    """

    async def search(
        self,
        query: str,
        embedding: Sequence[float],
        filters: Mapping[str, str],
        limit: int,
    ) -> RetrievalSet:
        ...


__all__ = ["CandidateItem", "RetrievalSet", "RetrievalClient"]
