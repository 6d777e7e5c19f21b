"""
Negotiation state machine.

On repeated price objections for the same product, escalates through
anchor -> sweetener -> discount(0) -> ... -> discount(n-1) -> terminal.
State is an explicit value passed in and returned; nothing is kept here.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from concierge.core.config import get_config
from concierge.core.segments import OfferSegment, QuickReply
from concierge.data.negotiation_rules import NegotiationRule
from concierge.data.retrieval import CandidateItem
from concierge.data.session_store import NegotiationState
from concierge.utils.logger import get_logger

logger = get_logger("negotiation.engine")

ANCHOR = "anchor"
SWEETENER = "sweetener"
DISCOUNT = "discount"

NEGOTIATION_QUICK_REPLIES = (
    QuickReply(id="accept_offer", label="Sounds good", value="accept offer"),
    QuickReply(id="show_cheaper", label="Show cheaper options", value="show cheaper options"),
    QuickReply(id="no_thanks", label="Maybe later", value="maybe later"),
)


@dataclass
class NegotiationOutcome:
    """What to say for this objection and the state to persist."""
    segments: List[OfferSegment]
    next_state: NegotiationState
    offers: List[str] = field(default_factory=list)
    quick_replies: List[QuickReply] = field(default_factory=lambda: list(NEGOTIATION_QUICK_REPLIES))

    @property
    def stage(self) -> str:
        return self.next_state.stage

    def to_dict(self) -> dict:
        return {
            "stage": self.next_state.stage,
            "segments": [s.to_dict() for s in self.segments],
            "offers": list(self.offers),
            "quick_replies": [q.to_dict() for q in self.quick_replies],
            "next_state": self.next_state.to_dict(),
        }


def is_price_objection(message: str, phrases: Optional[Iterable[str]] = None) -> bool:
    """Case-insensitive substring match against the curated objection phrases."""
    if not message:
        return False
    phrases = phrases if phrases is not None else get_config().price_objection_phrases
    text = message.lower()
    return any(phrase.lower() in text for phrase in phrases if phrase)


def _format_money(amount: float) -> str:
    return f"${amount:.0f}"


def _next_stage(rule: NegotiationRule, product_id: str, current: Optional[NegotiationState]) -> str:
    if current is None or current.product_id != product_id:
        return ANCHOR
    if current.stage == ANCHOR:
        return SWEETENER if rule.sweetener_copy else DISCOUNT
    return DISCOUNT


def advance_negotiation(
    rule: NegotiationRule,
    product: CandidateItem,
    current_state: Optional[NegotiationState],
) -> Optional[NegotiationOutcome]:
    """
    Apply one price objection to the negotiation state.

    The persisted stage records the last concession made. A different product
    id restarts at the anchor. Once every discount step has been offered the
    machine is terminal and returns None.

    Args:
        rule: Negotiation rule for the product
        product: Product under negotiation
        current_state: Persisted state (None on the first objection)

    Returns:
        NegotiationOutcome, or None when no further concession exists
    """
    product_id = product.id
    base_index = 0
    if current_state is not None and current_state.product_id == product_id:
        base_index = current_state.concession_index

    stage = _next_stage(rule, product_id, current_state)
    price = product.price
    segments: List[OfferSegment] = []

    if stage == ANCHOR:
        if rule.anchor_copy:
            text = rule.anchor_copy
        elif price:
            text = f"This one is {_format_money(price)} because of what goes into it, and it holds that value."
        else:
            text = "This is priced to match the quality of what it includes."

        segments.append(OfferSegment(style=ANCHOR, title="Why this price?", text=text))
        logger.info(f"Negotiation on {product_id}: anchor")
        return NegotiationOutcome(
            segments=segments,
            next_state=NegotiationState(product_id=product_id, stage=ANCHOR, concession_index=0),
            offers=["negotiation_anchor"],
        )

    if stage == SWEETENER and rule.sweetener_copy:
        segments.append(OfferSegment(style=SWEETENER, title="I can add this for you", text=rule.sweetener_copy))
        logger.info(f"Negotiation on {product_id}: sweetener")
        return NegotiationOutcome(
            segments=segments,
            next_state=NegotiationState(product_id=product_id, stage=SWEETENER, concession_index=base_index),
            offers=["negotiation_sweetener"],
        )

    steps = rule.discount_steps
    if base_index >= len(steps):
        logger.info(f"Negotiation on {product_id}: terminal after {len(steps)} discount steps")
        return None

    pct = steps[base_index]
    pct_label = f"{pct:g}"
    if price:
        discounted = price * (1 - pct / 100)
        text = f"I can take {pct_label}% off, bringing it to {_format_money(discounted)}."
    else:
        text = f"I can take {pct_label}% off."

    segments.append(OfferSegment(
        style=DISCOUNT,
        title="Here's the best I can do",
        text=text,
        meta={"discount_pct": pct},
    ))
    if rule.risk_copy:
        segments.append(OfferSegment(style="risk", title="Risk-free assurance", text=rule.risk_copy))

    logger.info(f"Negotiation on {product_id}: discount step {base_index} ({pct_label}%)")
    return NegotiationOutcome(
        segments=segments,
        next_state=NegotiationState(product_id=product_id, stage=DISCOUNT, concession_index=base_index + 1),
        offers=[f"negotiation_discount_{pct_label}"],
    )


__all__ = [
    "NegotiationOutcome",
    "NEGOTIATION_QUICK_REPLIES",
    "advance_negotiation",
    "is_price_objection",
]
