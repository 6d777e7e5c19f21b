"""
Session-store collaborator boundary and the state it persists.

State is loaded at turn start, transformed by pure functions, and written back
at turn end. Nothing is cached in-process between turns by the core itself.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from concierge.utils.logger import get_logger

logger = get_logger("data.session_store")

NEGOTIATION_STAGES = ("anchor", "sweetener", "discount")


@dataclass(frozen=True)
class DialogueMemory:
    """Cross-turn anti-repetition memory."""
    opener_history: Tuple[str, ...] = ()            # most recent first
    answered_clarifier_facets: Tuple[str, ...] = ()
    clarifier_history: Mapping[str, int] = field(default_factory=dict)  # facet -> turn answered

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opener_history": list(self.opener_history),
            "answered_clarifier_facets": list(self.answered_clarifier_facets),
            "clarifier_history": dict(self.clarifier_history),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "DialogueMemory":
        data = data or {}
        return cls(
            opener_history=tuple(str(o) for o in data.get("opener_history") or []),
            answered_clarifier_facets=tuple(str(f) for f in data.get("answered_clarifier_facets") or []),
            clarifier_history={str(k): int(v) for k, v in (data.get("clarifier_history") or {}).items()},
        )


@dataclass(frozen=True)
class NegotiationState:
    """Bargaining progress for one product within a session."""
    product_id: str
    stage: str = "anchor"
    concession_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"product_id": self.product_id, "stage": self.stage, "concession_index": self.concession_index}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["NegotiationState"]:
        if not data or not data.get("product_id"):
            return None
        stage = data.get("stage") if data.get("stage") in NEGOTIATION_STAGES else "anchor"
        return cls(
            product_id=str(data["product_id"]),
            stage=stage,
            concession_index=max(0, int(data.get("concession_index") or 0)),
        )


@dataclass(frozen=True)
class PendingClarifier:
    """Clarifier asked on the previous turn, awaiting an answer."""
    facet: str
    options: Tuple[str, ...] = ()
    asked_at_turn: int = 0


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything the core persists per session."""
    memory: DialogueMemory = field(default_factory=DialogueMemory)
    negotiation: Optional[NegotiationState] = None
    turn_count: int = 0
    active_filters: Mapping[str, str] = field(default_factory=dict)
    pending_clarifier: Optional[PendingClarifier] = None
    zero_result_streak: int = 0

    def to_dict(self) -> Dict[str, Any]:
        pending = None
        if self.pending_clarifier is not None:
            pending = {
                "facet": self.pending_clarifier.facet,
                "options": list(self.pending_clarifier.options),
                "asked_at_turn": self.pending_clarifier.asked_at_turn,
            }
        return {
            "memory": self.memory.to_dict(),
            "negotiation": self.negotiation.to_dict() if self.negotiation else None,
            "turn_count": self.turn_count,
            "active_filters": dict(self.active_filters),
            "pending_clarifier": pending,
            "zero_result_streak": self.zero_result_streak,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SessionSnapshot":
        data = data or {}
        pending_data = data.get("pending_clarifier")
        pending = None
        if pending_data and pending_data.get("facet"):
            pending = PendingClarifier(
                facet=str(pending_data["facet"]),
                options=tuple(str(o) for o in pending_data.get("options") or []),
                asked_at_turn=int(pending_data.get("asked_at_turn") or 0),
            )
        return cls(
            memory=DialogueMemory.from_dict(data.get("memory")),
            negotiation=NegotiationState.from_dict(data.get("negotiation")),
            turn_count=int(data.get("turn_count") or 0),
            active_filters={str(k): str(v) for k, v in (data.get("active_filters") or {}).items()},
            pending_clarifier=pending,
            zero_result_streak=int(data.get("zero_result_streak") or 0),
        )


class SessionStore(Protocol):
    """
    Persistent session storage consumed and produced by the core.

    `load` must return a default snapshot for unknown sessions.
    """

    async def load(self, session_id: str) -> SessionSnapshot:
        ...

    async def save(self, session_id: str, snapshot: SessionSnapshot) -> None:
        ...


class InMemorySessionStore:
    """Process-local session store; snapshots are copied on read and write."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Dict[str, Any]] = {}

    async def load(self, session_id: str) -> SessionSnapshot:
        data = self._sessions.get(session_id)
        if data is None:
            logger.debug(f"Session {session_id} not found, starting fresh")
            return SessionSnapshot()
        return SessionSnapshot.from_dict(data)

    async def save(self, session_id: str, snapshot: SessionSnapshot) -> None:
        self._sessions[session_id] = snapshot.to_dict()

    def reset(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions


__all__ = [
    "DialogueMemory",
    "NegotiationState",
    "PendingClarifier",
    "SessionSnapshot",
    "SessionStore",
    "InMemorySessionStore",
]
