"""
Structured pieces of a turn that the generation service renders verbatim.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class QuickReply:
    """A clickable reply offered to the shopper."""
    id: str
    label: str
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NoteSegment:
    """Informational note (e.g. why a filter was relaxed)."""
    text: str
    variant: str = "info"
    tone: str = "info"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "note", **asdict(self)}


@dataclass(frozen=True)
class OfferSegment:
    """Negotiation offer copy."""
    style: str  # anchor | sweetener | discount | risk
    text: str
    title: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "offer", **asdict(self)}
