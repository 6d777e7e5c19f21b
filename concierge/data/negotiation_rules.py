"""
Negotiation-rule collaborator boundary.

Rules are per-store, per-product configuration loaded from an external store.
The core never writes them.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple
import math

import yaml

from concierge.utils.logger import get_logger

logger = get_logger("data.negotiation_rules")


@dataclass(frozen=True)
class NegotiationRule:
    """Negotiation copy and concession steps for one product."""
    anchor_copy: Optional[str] = None
    sweetener_copy: Optional[str] = None
    discount_steps: Tuple[float, ...] = ()
    risk_copy: Optional[str] = None
    payment_options: Optional[List[str]] = None


def _coerce_step(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def normalize_rule(payload: Optional[Mapping[str, Any]]) -> Optional[NegotiationRule]:
    """
    Build a NegotiationRule from a raw store row.

    Discount steps are coerced to positive finite numbers; anything else is
    dropped. Empty copy strings count as absent.

    Args:
        payload: Raw row (None when the store has no rule)

    Returns:
        NegotiationRule or None
    """
    if not payload:
        return None

    steps = [_coerce_step(v) for v in (payload.get("discount_steps") or [])]
    return NegotiationRule(
        anchor_copy=payload.get("anchor_copy") or None,
        sweetener_copy=payload.get("sweetener_copy") or None,
        discount_steps=tuple(s for s in steps if s is not None),
        risk_copy=payload.get("risk_copy") or None,
        payment_options=payload.get("payment_options") or None,
    )


class RuleStore(Protocol):
    """Negotiation rules consumed by the core. None means negotiation stays off."""

    async def get_rule(self, store_id: str, product_id: str) -> Optional[NegotiationRule]:
        ...


@dataclass
class InMemoryRuleStore:
    """Rule store backed by a dict keyed by (store_id, product_id)."""
    rules: Dict[Tuple[str, str], NegotiationRule] = field(default_factory=dict)

    def add_rule(self, store_id: str, product_id: str, payload: Mapping[str, Any]) -> None:
        rule = normalize_rule(payload)
        if rule is not None:
            self.rules[(store_id, product_id)] = rule

    async def get_rule(self, store_id: str, product_id: str) -> Optional[NegotiationRule]:
        return self.rules.get((store_id, product_id))

    @classmethod
    def from_yaml(cls, path: Path) -> "InMemoryRuleStore":
        """
        Load rules from a YAML file of the form::

            rules:
              - store_id: demo-store
                product_id: board-1
                anchor_copy: "..."
                discount_steps: [7, 3]
        """
        store = cls()
        if not path.exists():
            logger.warning(f"Negotiation rules file not found: {path}")
            return store

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        for row in data.get("rules", []):
            store_id = row.get("store_id")
            product_id = row.get("product_id")
            if not store_id or not product_id:
                logger.warning(f"Skipping negotiation rule without store/product id: {row}")
                continue
            store.add_rule(str(store_id), str(product_id), row)

        logger.info(f"Loaded {len(store.rules)} negotiation rules from {path}")
        return store


__all__ = ["NegotiationRule", "RuleStore", "InMemoryRuleStore", "normalize_rule"]
