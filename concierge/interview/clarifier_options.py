"""
Clarifier copy and quick-reply options.

Turns a chosen facet and its raw values into the question text and the
clickable options handed to the generation service.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from concierge.core.segments import QuickReply
from concierge.utils.canonical import canonicalize_facet, canonicalize_value

MAX_OPTION_CANDIDATES = 6
MAX_QUICK_REPLIES = 4
MAX_LABEL_WORDS = 3
MAX_LABEL_LENGTH = 28

_VENDOR_SUFFIX = re.compile(r"\b(vendor|inc|corp|llc|ltd|store|co)\b", re.IGNORECASE)
_SEPARATOR_RUN = re.compile(r"[_-]+")
_WHITESPACE = re.compile(r"\s+")
_ID_UNSAFE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ClarifierChoice:
    """Canonical option for a facet, used when retrieval offers no values."""
    label: str
    value: str
    aliases: List[str] = field(default_factory=list)


DEFAULT_CLARIFIER_CHOICES: Dict[str, List[ClarifierChoice]] = {
    "style": [
        ClarifierChoice("All Mountain", "all_mountain", ["all mountain", "all-mountain"]),
        ClarifierChoice("Freestyle", "freestyle"),
        ClarifierChoice("Powder", "powder"),
        ClarifierChoice("Park", "park", ["terrain park"]),
    ],
    "price_bucket": [
        ClarifierChoice("Under $50", "Under $50", ["under 50", "under fifty"]),
        ClarifierChoice("$50 - $200", "$50-$200", ["$50 to $200", "50-200"]),
        ClarifierChoice("$200+", "$200+", ["200+", "$200 plus"]),
    ],
}

FACET_QUESTIONS = {
    "price_bucket": "Which price range feels right?",
    "category": "Which type suits you best?",
    "product_type": "Which style suits you best?",
    "style": "Any particular style or vibe you prefer?",
    "use_case": "What will you mostly use it for?",
    "vendor": "Do you prefer any brand?",
    "tag": "Want me to focus on any specific feature?",
}
DEFAULT_QUESTION = "How should we refine the options?"


def facet_to_question(facet: str) -> str:
    """Fixed clarifying question for a facet."""
    return FACET_QUESTIONS.get(canonicalize_facet(facet), DEFAULT_QUESTION)


def _format_label(facet: str, raw: str) -> Optional[str]:
    if not raw or not raw.strip():
        return None
    if facet == "price_bucket":
        return raw.strip()

    cleaned = _WHITESPACE.sub(" ", _SEPARATOR_RUN.sub(" ", raw)).strip()
    if not cleaned:
        return None

    words = [w[:1].upper() + w[1:].lower() for w in cleaned.split(" ") if w]
    label = " ".join(words[:MAX_LABEL_WORDS])

    if len(label) > MAX_LABEL_LENGTH:
        return None
    if facet == "tag" and not re.search(r"[a-zA-Z]", label):
        return None

    if facet == "vendor":
        stripped = _WHITESPACE.sub(" ", _VENDOR_SUFFIX.sub("", label)).strip()
        if len(stripped) >= 3:
            return stripped

    return label


def facet_to_options(facet: str, values: Sequence[str]) -> List[QuickReply]:
    """
    Build quick-reply options for a clarifier.

    Looks at the first six values, drops labels that are too long (or, for
    tags, contain no letters), deduplicates by label and keeps at most four.

    Args:
        facet: Facet being asked about
        values: Option values, most frequent first

    Returns:
        QuickReply list (value carries the raw facet value)
    """
    facet = canonicalize_facet(facet)
    options: List[QuickReply] = []
    seen_labels = set()

    for value in list(values)[:MAX_OPTION_CANDIDATES]:
        label = _format_label(facet, value)
        if not label:
            continue
        key = label.lower()
        if key in seen_labels:
            continue
        seen_labels.add(key)

        options.append(QuickReply(
            id=f"{facet}-{_ID_UNSAFE.sub('_', key)}",
            label=label,
            value=value,
        ))
        if len(options) >= MAX_QUICK_REPLIES:
            break

    return options


def match_choice(facet: str, text: str) -> Optional[ClarifierChoice]:
    """Resolve shopper text against a facet's canonical choices and aliases."""
    key = canonicalize_value(text)
    if not key:
        return None
    for choice in DEFAULT_CLARIFIER_CHOICES.get(canonicalize_facet(facet), []):
        candidates = [choice.label, choice.value, *choice.aliases]
        if any(canonicalize_value(c) == key for c in candidates):
            return choice
    return None
