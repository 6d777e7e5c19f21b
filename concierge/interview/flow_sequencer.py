"""
Flow ordering: should the clarifier come before or after the product results?
"""
from enum import Enum
import re
from typing import Optional

from concierge.core.config import ConciergeConfig, get_config
from concierge.interview.strategy_selector import TurnStrategy

FIRST_TURN_ASK_MIN_RESULTS = 8
ASK_FIRST_MIN_RESULTS = 12


class FlowOrder(str, Enum):
    """Order in which the turn presents its parts."""
    ASK_THEN_SHOW = "ask_then_show"
    SHOW_THEN_ASK = "show_then_ask"
    SHOW_ONLY = "show_only"


OPEN_ENDED_PATTERNS = [
    re.compile(r"^i need"),
    re.compile(r"^looking for"),
    re.compile(r"^want (a|some)"),
    re.compile(r"^show me"),
    re.compile(r"^help me find"),
    re.compile(r"^recommend"),
]

# Explicit numeric constraints make a request less open
CONSTRAINT_PATTERN = re.compile(r"under \$?\d+|over \$?\d+|size \w+|color \w+|\d+cm|\d+inch", re.IGNORECASE)

SPECIFIC_PATTERNS = [
    re.compile(r"^the \w+"),     # "The Complete Snowboard"
    re.compile(r"#\w+"),         # "#SKU123"
    re.compile(r"model \w+"),    # "model X123"
    re.compile(r"\d+cm"),        # "148cm"
    re.compile(r"size \d+"),     # "size 9"
]

CONSTRAINT_KEYWORDS = re.compile(r"under|over|size|color|brand|material")


def is_open_ended_query(query: str) -> bool:
    """Exploratory request without explicit constraints."""
    q = (query or "").strip().lower()
    has_constraints = bool(CONSTRAINT_PATTERN.search(q))
    return any(p.search(q) for p in OPEN_ENDED_PATTERNS) and not has_constraints


def is_specific_query(query: str) -> bool:
    """Product reference, SKU-like token, measurement, or two or more constraint keywords."""
    q = (query or "").strip().lower()
    constraint_count = len(CONSTRAINT_KEYWORDS.findall(q))
    return any(p.search(q) for p in SPECIFIC_PATTERNS) or constraint_count >= 2


def decide_flow_order(
    result_count: int,
    query_text: str,
    strategy: TurnStrategy,
    turn_index: int,
    config: Optional[ConciergeConfig] = None,
) -> FlowOrder:
    """
    Decide whether to ask first (discovery) or show products first (targeted).

    Args:
        result_count: Number of items in the final retrieval set
        query_text: Shopper's latest message
        strategy: Strategy chosen for the turn
        turn_index: Zero-based turn number within the session
        config: Thresholds; `show_results_max_items` bounds the few-results case

    Returns:
        FlowOrder for the turn
    """
    config = config or get_config()
    asking = strategy.ask_clarifier
    first_turn = turn_index <= 0

    if result_count == 0:
        return FlowOrder.ASK_THEN_SHOW

    if result_count <= config.show_results_max_items:
        return FlowOrder.SHOW_THEN_ASK if asking else FlowOrder.SHOW_ONLY

    if is_specific_query(query_text):
        return FlowOrder.SHOW_THEN_ASK

    open_ended = is_open_ended_query(query_text)

    if asking and first_turn and open_ended and result_count > FIRST_TURN_ASK_MIN_RESULTS:
        return FlowOrder.ASK_THEN_SHOW

    if asking and result_count > ASK_FIRST_MIN_RESULTS and open_ended:
        return FlowOrder.ASK_THEN_SHOW

    return FlowOrder.SHOW_THEN_ASK if asking else FlowOrder.SHOW_ONLY


__all__ = ["FlowOrder", "decide_flow_order", "is_open_ended_query", "is_specific_query"]
