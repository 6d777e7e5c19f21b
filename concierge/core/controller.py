"""
Main turn controller.

Runs one conversational turn: retrieval (with relaxation on empty results),
facet statistics, strategy selection, clarifier memory, flow ordering and
price negotiation. The resulting TurnIntent is handed to the generation
service, whose rendered output comes back through `review_rendered_turn`.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

from concierge.core.config import ConciergeConfig, get_config
from concierge.core.segments import NoteSegment, QuickReply
from concierge.data.negotiation_rules import InMemoryRuleStore, NegotiationRule, RuleStore
from concierge.data.retrieval import CandidateItem, RetrievalClient, RetrievalSet
from concierge.data.session_store import (
    DialogueMemory,
    InMemorySessionStore,
    PendingClarifier,
    SessionSnapshot,
    SessionStore,
)
from concierge.facets.statistics import compute_facet_stats
from concierge.generation.turn_validation import TurnValidationResult, validate_rendered_turn
from concierge.interview.clarifier_options import facet_to_options, facet_to_question, match_choice
from concierge.interview.flow_sequencer import FlowOrder, decide_flow_order
from concierge.interview.strategy_selector import (
    TurnStrategy,
    enforce_strategy_invariants,
    find_suppressed_facets,
    select_turn_strategy,
)
from concierge.memory.dialogue_memory import (
    OpenerCheck,
    check_opener,
    guard_clarifier,
    prune_answered_clarifiers,
    record_answered_clarifier,
)
from concierge.negotiation.engine import NegotiationOutcome, advance_negotiation, is_price_objection
from concierge.recommendation.progressive_relaxation import (
    RelaxationOutcome,
    RelaxationStep,
    relax_constraints,
)
from concierge.utils.canonical import mentions_value, same_value
from concierge.utils.logger import get_logger

logger = get_logger("core.controller")


@dataclass
class TurnRequest:
    """Input for one turn."""
    session_id: str
    message: str
    store_id: Optional[str] = None
    query: Optional[str] = None                  # lexical query (defaults to message)
    embedding: Sequence[float] = ()
    filters: Optional[Dict[str, str]] = None     # None keeps the session's active filters
    product_id: Optional[str] = None             # product the shopper is looking at
    product: Optional[CandidateItem] = None
    answered_facets: List[str] = field(default_factory=list)


@dataclass
class TurnIntent:
    """Decided intent for one turn, consumed by the generation service."""
    session_id: str
    turn_index: int
    strategy: TurnStrategy
    flow_order: FlowOrder
    relaxation_steps: List[RelaxationStep] = field(default_factory=list)
    negotiation_outcome: Optional[NegotiationOutcome] = None
    suppressed_clarifier_facets: List[str] = field(default_factory=list)
    active_filters: Dict[str, str] = field(default_factory=dict)
    items: List[CandidateItem] = field(default_factory=list)
    clarifier_question: Optional[str] = None
    clarifier_options: List[QuickReply] = field(default_factory=list)
    relaxation_notes: List[NoteSegment] = field(default_factory=list)
    undo_options: List[QuickReply] = field(default_factory=list)
    degraded: bool = False

    @property
    def result_count(self) -> int:
        return len(self.items)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-serialisable view for the generation service."""
        return {
            "session_id": self.session_id,
            "turn_index": self.turn_index,
            "strategy": self.strategy.to_dict(),
            "flow_order": self.flow_order.value,
            "relaxation_steps": [s.to_dict() for s in self.relaxation_steps],
            "negotiation_outcome": self.negotiation_outcome.to_dict() if self.negotiation_outcome else None,
            "suppressed_clarifier_facets": list(self.suppressed_clarifier_facets),
            "active_filters": dict(self.active_filters),
            "items": [item.to_dict() for item in self.items],
            "clarifier_question": self.clarifier_question,
            "clarifier_options": [o.to_dict() for o in self.clarifier_options],
            "relaxation_notes": [n.to_dict() for n in self.relaxation_notes],
            "undo_options": [u.to_dict() for u in self.undo_options],
            "degraded": self.degraded,
        }


@dataclass
class RenderedTurnReview:
    """Validation and opener check for a rendered turn."""
    validation: TurnValidationResult
    opener_check: Optional[OpenerCheck] = None

    @property
    def needs_regeneration(self) -> bool:
        """True when the turn is unusable or opens with a recently used sentence."""
        if not self.validation.ok:
            return True
        return bool(self.opener_check and self.opener_check.reused)


class TurnController:
    """
    Per-turn decision core.

    Holds references to its collaborators only; all session state is loaded
    at turn start and written back at turn end. Callers must serialise turns
    for the same session.
    """

    def __init__(
        self,
        retrieval: RetrievalClient,
        rules: Optional[RuleStore] = None,
        sessions: Optional[SessionStore] = None,
        config: Optional[ConciergeConfig] = None,
    ):
        """
        Initialize the controller.

        Args:
            retrieval: Search collaborator
            rules: Negotiation-rule collaborator (negotiation disabled when None)
            sessions: Session store (process-local store when None)
            config: Configuration object. Uses default config if not provided.
        """
        self.config = config or get_config()
        self.retrieval = retrieval
        self.rules = rules
        self.sessions = sessions if sessions is not None else InMemorySessionStore()

        logger.info(
            f"Turn controller initialized: relaxation={self.config.relaxation_priority}, "
            f"ttl={self.config.clarifier_ttl_turns}, openers={self.config.opener_history_size}"
        )

    async def run_turn(self, request: TurnRequest) -> TurnIntent:
        """
        Decide what the next turn should contain.

        Args:
            request: Shopper message plus retrieval inputs

        Returns:
            TurnIntent for the generation service
        """
        logger.info(f"Turn for session {request.session_id}: {request.message[:100]}")

        snapshot = await self._load_session(request.session_id)
        turn = snapshot.turn_count
        filters = dict(request.filters if request.filters is not None else snapshot.active_filters)

        memory = self._record_answers(snapshot, request, filters)
        memory = prune_answered_clarifiers(memory, turn, self.config.clarifier_ttl_turns)

        query = request.query if request.query is not None else request.message
        try:
            relaxation = await self._retrieve(query, request.embedding, filters)
        except Exception as e:
            logger.error(f"Retrieval failed, falling back to conservative turn: {e}")
            intent = TurnIntent(
                session_id=request.session_id,
                turn_index=turn,
                strategy=TurnStrategy.show_results(),
                flow_order=FlowOrder.SHOW_ONLY,
                active_filters=filters,
                degraded=True,
            )
            await self._save_session(request.session_id, replace(
                snapshot,
                memory=memory,
                turn_count=turn + 1,
                active_filters=filters,
                pending_clarifier=None,
            ))
            return intent

        retrieval = relaxation.retrieval
        answered = list(memory.answered_clarifier_facets)

        stats = compute_facet_stats(retrieval, config=self.config)
        strategy = select_turn_strategy(retrieval, answered, stats=stats, config=self.config)
        strategy = enforce_strategy_invariants(strategy, self.config)
        suppressed = find_suppressed_facets(stats, answered, self.config)

        strategy, guarded = guard_clarifier(strategy, memory, turn, self.config.clarifier_ttl_turns)
        for facet in guarded:
            if facet not in suppressed:
                suppressed.append(facet)

        flow_order = decide_flow_order(len(retrieval.items), request.message, strategy, turn, config=self.config)
        logger.info(f"Strategy: {strategy.action} (facet={strategy.facet_to_ask}), flow: {flow_order.value}")

        clarifier_question = None
        clarifier_options: List[QuickReply] = []
        if strategy.ask_clarifier:
            clarifier_question = facet_to_question(strategy.facet_to_ask)
            clarifier_options = facet_to_options(strategy.facet_to_ask, strategy.option_values)

        negotiation = await self._negotiate(request, snapshot, retrieval)
        next_negotiation = negotiation.next_state if negotiation else snapshot.negotiation

        pending = None
        if strategy.ask_clarifier:
            pending = PendingClarifier(
                facet=strategy.facet_to_ask,
                options=strategy.option_values,
                asked_at_turn=turn,
            )

        zero_streak = snapshot.zero_result_streak + 1 if retrieval.is_empty else 0
        await self._save_session(request.session_id, replace(
            snapshot,
            memory=memory,
            negotiation=next_negotiation,
            turn_count=turn + 1,
            active_filters=dict(relaxation.filters),
            pending_clarifier=pending,
            zero_result_streak=zero_streak,
        ))

        return TurnIntent(
            session_id=request.session_id,
            turn_index=turn,
            strategy=strategy,
            flow_order=flow_order,
            relaxation_steps=list(relaxation.steps),
            negotiation_outcome=negotiation,
            suppressed_clarifier_facets=suppressed,
            active_filters=dict(relaxation.filters),
            items=list(retrieval.items),
            clarifier_question=clarifier_question,
            clarifier_options=clarifier_options,
            relaxation_notes=list(relaxation.notes),
            undo_options=list(relaxation.undo_options),
        )

    async def review_rendered_turn(
        self,
        session_id: str,
        raw_output: Any,
        candidate_ids: Optional[Sequence[str]] = None,
    ) -> RenderedTurnReview:
        """
        Validate generation output and check its opener against recent history.

        A fresh opener is recorded in the session; a repeated one is flagged
        for regeneration and not recorded.

        Args:
            session_id: Session the turn belongs to
            raw_output: Rendered turn (dict or JSON string)
            candidate_ids: Product ids the turn may recommend

        Returns:
            RenderedTurnReview
        """
        validation = validate_rendered_turn(raw_output, candidate_ids)
        if not validation.ok:
            return RenderedTurnReview(validation=validation)

        snapshot = await self._load_session(session_id)
        opener_check = check_opener(snapshot.memory, validation.turn.opening, self.config)
        if not opener_check.reused:
            await self._save_session(session_id, replace(snapshot, memory=opener_check.memory))

        return RenderedTurnReview(validation=validation, opener_check=opener_check)

    async def _retrieve(
        self,
        query: str,
        embedding: Sequence[float],
        filters: Mapping[str, str],
    ) -> RelaxationOutcome:
        retrieval = await self.retrieval.search(query, embedding, dict(filters), self.config.retrieval_limit)
        logger.info(f"Retrieval: {len(retrieval.items)} items with filters {dict(filters)}")

        if retrieval.is_empty and filters:
            return await relax_constraints(
                retrieval,
                filters,
                self.retrieval,
                query,
                embedding,
                limit=self.config.retrieval_limit,
                config=self.config,
            )
        return RelaxationOutcome(retrieval=retrieval, filters=dict(filters))

    def _record_answers(
        self,
        snapshot: SessionSnapshot,
        request: TurnRequest,
        filters: Mapping[str, str],
    ) -> DialogueMemory:
        """Mark the pending clarifier (and any explicit facets) as answered this turn."""
        memory = snapshot.memory
        turn = snapshot.turn_count

        for facet in request.answered_facets:
            memory = record_answered_clarifier(memory, facet, turn)

        pending = snapshot.pending_clarifier
        if pending is None:
            return memory

        if self._answers_pending(pending, request.message, filters):
            logger.info(f"Clarifier '{pending.facet}' answered at turn {turn}")
            memory = record_answered_clarifier(memory, pending.facet, turn)
        return memory

    @staticmethod
    def _answers_pending(pending: PendingClarifier, message: str, filters: Mapping[str, str]) -> bool:
        if any(same_value(key, pending.facet) for key in filters):
            return True
        if any(mentions_value(message, option) for option in pending.options):
            return True
        return match_choice(pending.facet, message) is not None

    async def _negotiate(
        self,
        request: TurnRequest,
        snapshot: SessionSnapshot,
        retrieval: RetrievalSet,
    ) -> Optional[NegotiationOutcome]:
        if self.rules is None or not request.store_id:
            return None
        if not is_price_objection(request.message, self.config.price_objection_phrases):
            return None

        product = request.product or self._find_product(request.product_id, retrieval)
        if product is None:
            logger.info("Price objection without a product in focus: no negotiation")
            return None

        try:
            rule: Optional[NegotiationRule] = await self.rules.get_rule(request.store_id, product.id)
        except Exception as e:
            logger.warning(f"Failed to load negotiation rule for {product.id}: {e}")
            return None

        if rule is None:
            logger.info(f"No negotiation rule for {product.id}")
            return None

        return advance_negotiation(rule, product, snapshot.negotiation)

    @staticmethod
    def _find_product(product_id: Optional[str], retrieval: RetrievalSet) -> Optional[CandidateItem]:
        if not product_id:
            return None
        return next((item for item in retrieval.items if item.id == product_id), None)

    async def _load_session(self, session_id: str) -> SessionSnapshot:
        try:
            return await self.sessions.load(session_id)
        except Exception as e:
            logger.warning(f"Failed to load session {session_id}, using defaults: {e}")
            return SessionSnapshot()

    async def _save_session(self, session_id: str, snapshot: SessionSnapshot) -> None:
        try:
            await self.sessions.save(session_id, snapshot)
        except Exception as e:
            logger.error(f"Failed to persist session {session_id}: {e}")


def create_controller(
    retrieval: RetrievalClient,
    rules: Optional[RuleStore] = None,
    sessions: Optional[SessionStore] = None,
    config: Optional[ConciergeConfig] = None,
) -> TurnController:
    """Create a controller, defaulting to in-memory rule and session stores."""
    return TurnController(
        retrieval=retrieval,
        rules=rules if rules is not None else InMemoryRuleStore(),
        sessions=sessions,
        config=config,
    )
