"""
Dialogue memory guard.

Two independent cross-turn checks:
- opener diversity: a lead sentence that repeats a recent opener is flagged
  for regeneration instead of being shown again
- clarifier memory: a facet the shopper answered recently is not asked again
  until its TTL has elapsed

All functions take a DialogueMemory and return a new one.
"""
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple
import re

from concierge.core.config import ConciergeConfig, get_config
from concierge.data.session_store import DialogueMemory
from concierge.interview.strategy_selector import TurnStrategy
from concierge.utils.canonical import canonicalize_facet
from concierge.utils.logger import get_logger

logger = get_logger("memory.dialogue_memory")

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

OPENER_BANK = {
    "question": [
        "Fair question.",
        "Good question.",
        "Glad you asked.",
        "Happy to clarify.",
        "Let me help with that.",
        "Here's what I'd say.",
    ],
    "agreement": [
        "Makes sense.",
        "Good call.",
        "I hear you.",
        "That's fair.",
        "Good point.",
    ],
    "transition": [
        "Got you.",
        "Alright.",
        "Perfect.",
        "Let's do it.",
        "Here we go.",
        "On it.",
        "Check this out.",
    ],
    "information": [
        "Here's the gist.",
        "Here's what I found.",
        "Quick rundown:",
        "Let me break it down.",
        "Bottom line:",
        "Here's the scoop.",
    ],
}

ALL_OPENERS = [opener for group in OPENER_BANK.values() for opener in group]


@dataclass(frozen=True)
class OpenerCheck:
    """Result of checking a lead text against recent openers."""
    opener: str
    reused: bool
    memory: DialogueMemory
    replacement: Optional[str] = None


def _normalize_opener(text: str) -> str:
    return text.strip().lower()


def extract_first_sentence(text: str) -> str:
    """First sentence of a lead text (the whole text when it has no boundary)."""
    if not text:
        return ""
    stripped = text.strip()
    parts = _SENTENCE_BOUNDARY.split(stripped, maxsplit=1)
    return parts[0].strip() if parts else stripped


def is_opener_reused(opener: str, history: Iterable[str], window: Optional[int] = None) -> bool:
    """True when the opener matches (case-insensitive, trimmed) one of the last `window` entries."""
    target = _normalize_opener(opener)
    if not target:
        return False
    recent = list(history)
    if window is not None:
        recent = recent[:window]
    return any(_normalize_opener(h) == target for h in recent)


def suggest_replacement_opener(history: Iterable[str]) -> Optional[str]:
    """First opener from the bank not used recently, or None when all were."""
    used = {_normalize_opener(h) for h in history}
    for opener in ALL_OPENERS:
        if _normalize_opener(opener) not in used:
            return opener
    return None


def push_opener(memory: DialogueMemory, opener: str, bound: int) -> DialogueMemory:
    """Add an opener to the front of the history, keeping the most recent `bound` entries."""
    history = (opener.strip(),) + tuple(memory.opener_history)
    return replace(memory, opener_history=history[:max(bound, 0)])


def check_opener(
    memory: DialogueMemory,
    lead_text: str,
    config: Optional[ConciergeConfig] = None,
) -> OpenerCheck:
    """
    Check a newly generated lead text for a repeated opening sentence.

    A reused opener leaves the history untouched and comes back flagged with a
    replacement suggestion; a fresh one is pushed to the front of the history.

    Args:
        memory: Current dialogue memory
        lead_text: Generated lead text for this turn
        config: Optional configuration

    Returns:
        OpenerCheck with the updated memory
    """
    config = config or get_config()
    opener = extract_first_sentence(lead_text)
    if not opener:
        return OpenerCheck(opener="", reused=False, memory=memory)

    if is_opener_reused(opener, memory.opener_history, config.opener_history_size):
        replacement = suggest_replacement_opener(memory.opener_history)
        logger.info(f"Opener reused from recent history: {opener!r} (suggesting {replacement!r})")
        return OpenerCheck(opener=opener, reused=True, memory=memory, replacement=replacement)

    return OpenerCheck(
        opener=opener,
        reused=False,
        memory=push_opener(memory, opener, config.opener_history_size),
    )


def record_answered_clarifier(memory: DialogueMemory, facet: str, turn: int) -> DialogueMemory:
    """Mark a facet as answered at `turn` (re-answering refreshes the turn)."""
    key = canonicalize_facet(facet)
    if not key:
        return memory
    answered = tuple(memory.answered_clarifier_facets)
    if key not in answered:
        answered = answered + (key,)
    history = dict(memory.clarifier_history)
    history[key] = turn
    return replace(memory, answered_clarifier_facets=answered, clarifier_history=history)


def prune_answered_clarifiers(
    memory: DialogueMemory,
    current_turn: int,
    ttl: Optional[int] = None,
) -> DialogueMemory:
    """
    Drop answered facets whose TTL has elapsed.

    A facet answered at turn T stays answered while current_turn - T < ttl.
    Facets without a recorded turn are kept.
    """
    ttl = ttl if ttl is not None else get_config().clarifier_ttl_turns
    kept: List[str] = []
    history = dict(memory.clarifier_history)

    for facet in memory.answered_clarifier_facets:
        answered_at = history.get(facet)
        if answered_at is None or (current_turn - answered_at) < ttl:
            kept.append(facet)
        else:
            history.pop(facet, None)
            logger.debug(f"Clarifier '{facet}' expired (answered at {answered_at}, now {current_turn})")

    return replace(memory, answered_clarifier_facets=tuple(kept), clarifier_history=history)


def is_clarifier_suppressed(
    memory: DialogueMemory,
    facet: str,
    current_turn: int,
    ttl: Optional[int] = None,
) -> bool:
    """True when `facet` was answered fewer than `ttl` turns ago."""
    ttl = ttl if ttl is not None else get_config().clarifier_ttl_turns
    key = canonicalize_facet(facet)
    if key not in memory.answered_clarifier_facets:
        return False
    answered_at = memory.clarifier_history.get(key)
    return answered_at is None or (current_turn - answered_at) < ttl


def guard_clarifier(
    strategy: TurnStrategy,
    memory: DialogueMemory,
    current_turn: int,
    ttl: Optional[int] = None,
) -> Tuple[TurnStrategy, List[str]]:
    """
    Suppress a clarifier about a recently answered facet.

    Returns:
        (strategy, suppressed facets) - the strategy falls back to
        show_results when its facet is suppressed
    """
    if not strategy.ask_clarifier or not strategy.facet_to_ask:
        return strategy, []

    if is_clarifier_suppressed(memory, strategy.facet_to_ask, current_turn, ttl):
        logger.info(f"Clarifier on '{strategy.facet_to_ask}' already answered: falling back to show_results")
        return TurnStrategy.show_results(strategy.suggested_refinements), [strategy.facet_to_ask]

    return strategy, []


__all__ = [
    "ALL_OPENERS",
    "OpenerCheck",
    "check_opener",
    "extract_first_sentence",
    "guard_clarifier",
    "is_clarifier_suppressed",
    "is_opener_reused",
    "prune_answered_clarifiers",
    "push_opener",
    "record_answered_clarifier",
    "suggest_replacement_opener",
]
