"""
Stage validation for rendered turns, with one local repair attempt.

Invariants per stage:
- clarify: no recommendations and a clarifier
- refine: at least one recommendation and a clarifier
- final: no clarifier

A violation is repaired by removing the smallest offending piece (usually the
clarifier) and validating again. If the second validation also fails the
result carries a TurnValidationError instead of a turn; nothing is raised
unless the caller asks for it with `unwrap()`.
"""
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Optional, Tuple
import copy
import json

from pydantic import ValidationError

from concierge.generation.schemas import MAX_CLARIFIER_OPTIONS, RenderedTurn
from concierge.utils.logger import get_logger

logger = get_logger("generation.turn_validation")

# Violation codes
CLARIFY_HAS_RECOMMENDATIONS = "clarify_has_recommendations"
CLARIFY_MISSING_CLARIFIER = "clarify_missing_clarifier"
REFINE_MISSING_CLARIFIER = "refine_missing_clarifier"
REFINE_MISSING_RECOMMENDATIONS = "refine_missing_recommendations"
FINAL_HAS_CLARIFIER = "final_has_clarifier"
SCHEMA_INVALID = "schema_invalid"
CLARIFIER_SCHEMA_INVALID = "clarifier_schema_invalid"
NOT_JSON = "not_json"


@dataclass(frozen=True)
class StageViolation:
    code: str
    message: str


@dataclass(frozen=True)
class TurnValidationError:
    """Rendered turn that could not be repaired."""
    violations: Tuple[StageViolation, ...]
    payload: Any = None

    @property
    def message(self) -> str:
        return "; ".join(v.message for v in self.violations)


class RenderedTurnInvalid(ValueError):
    """Raised by TurnValidationResult.unwrap() for unrepairable output."""

    def __init__(self, error: TurnValidationError):
        super().__init__(error.message)
        self.error = error


@dataclass
class TurnValidationResult:
    """Either a valid (possibly repaired) turn or a validation error."""
    turn: Optional[RenderedTurn] = None
    error: Optional[TurnValidationError] = None
    repairs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.turn is not None

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)

    def unwrap(self) -> RenderedTurn:
        if self.turn is None:
            raise RenderedTurnInvalid(self.error or TurnValidationError(violations=()))
        return self.turn


def check_stage_invariants(turn: RenderedTurn) -> List[StageViolation]:
    """Stage-specific invariant violations of a schema-valid turn."""
    violations: List[StageViolation] = []
    has_recs = len(turn.recommendations) > 0
    has_clarifier = turn.clarifier is not None

    if turn.stage == "clarify":
        if has_recs:
            violations.append(StageViolation(CLARIFY_HAS_RECOMMENDATIONS, "Stage clarify must not include recommendations"))
        if not has_clarifier:
            violations.append(StageViolation(CLARIFY_MISSING_CLARIFIER, "Stage clarify requires a clarifier block"))
    elif turn.stage == "refine":
        if not has_clarifier:
            violations.append(StageViolation(REFINE_MISSING_CLARIFIER, "Stage refine requires a clarifier"))
        if not has_recs:
            violations.append(StageViolation(REFINE_MISSING_RECOMMENDATIONS, "Stage refine requires at least one recommendation"))
    elif turn.stage == "final" and has_clarifier:
        violations.append(StageViolation(FINAL_HAS_CLARIFIER, "Stage final must not include a clarifier"))

    return violations


def _schema_violations(error: ValidationError) -> List[StageViolation]:
    violations = []
    for issue in error.errors():
        loc = ".".join(str(part) for part in issue.get("loc", ()))
        code = CLARIFIER_SCHEMA_INVALID if loc.startswith("clarifier") else SCHEMA_INVALID
        violations.append(StageViolation(code, f"{loc or 'turn'}: {issue.get('msg')}"))
    return violations


def preprocess_payload(
    raw: Any,
    candidate_ids: Optional[Collection[str]] = None,
) -> Tuple[Optional[Dict[str, Any]], List[StageViolation]]:
    """
    Normalise a raw generation payload before validation.

    - JSON strings are decoded
    - clarifier option lists are capped at six; a non-list becomes []
    - missing suggested_filters become []
    - recommendations for products outside `candidate_ids` are dropped
    """
    payload = raw
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            return None, [StageViolation(NOT_JSON, f"Generation returned invalid JSON: {e}")]

    if not isinstance(payload, dict):
        return None, [StageViolation(SCHEMA_INVALID, "Generation output is not an object")]

    payload = copy.deepcopy(payload)

    clarifier = payload.get("clarifier")
    if isinstance(clarifier, dict):
        options = clarifier.get("options")
        if not isinstance(options, list):
            clarifier["options"] = []
        elif len(options) > MAX_CLARIFIER_OPTIONS:
            clarifier["options"] = options[:MAX_CLARIFIER_OPTIONS]

    if payload.get("suggested_filters") is None:
        payload["suggested_filters"] = []

    if candidate_ids is not None and isinstance(payload.get("recommendations"), list):
        allowed = set(candidate_ids)
        kept = [
            rec for rec in payload["recommendations"]
            if isinstance(rec, dict) and rec.get("product_id") in allowed
        ]
        dropped = len(payload["recommendations"]) - len(kept)
        if dropped:
            logger.warning(f"Dropped {dropped} recommendations outside the candidate set")
        payload["recommendations"] = kept

    return payload, []


def _attempt(payload: Dict[str, Any]) -> Tuple[Optional[RenderedTurn], List[StageViolation]]:
    try:
        turn = RenderedTurn.model_validate(payload)
    except ValidationError as e:
        return None, _schema_violations(e)
    return turn, check_stage_invariants(turn)


def repair_payload(
    payload: Dict[str, Any],
    violations: List[StageViolation],
) -> Tuple[Optional[Dict[str, Any]], List[str]]:
    """
    Strip the minimal offending fields for a set of violations.

    Returns:
        (repaired payload, repair notes), or (None, []) when no repair applies
    """
    codes = {v.code for v in violations}
    if codes & {SCHEMA_INVALID, NOT_JSON, CLARIFY_MISSING_CLARIFIER}:
        return None, []

    repaired = dict(payload)
    repairs: List[str] = []

    if CLARIFIER_SCHEMA_INVALID in codes or FINAL_HAS_CLARIFIER in codes:
        repaired["clarifier"] = None
        repairs.append("dropped clarifier")
        if repaired.get("stage") == "refine":
            repaired["stage"] = "final"
            repairs.append("refine -> final")
        elif repaired.get("stage") == "clarify":
            # a clarify turn without its clarifier has nothing left to say
            return None, []

    if CLARIFY_HAS_RECOMMENDATIONS in codes:
        repaired["recommendations"] = []
        repairs.append("dropped recommendations from clarify turn")

    if REFINE_MISSING_CLARIFIER in codes:
        repaired["stage"] = "final"
        repairs.append("refine -> final")

    if REFINE_MISSING_RECOMMENDATIONS in codes and REFINE_MISSING_CLARIFIER not in codes:
        repaired["stage"] = "clarify"
        repairs.append("refine -> clarify")

    return (repaired, repairs) if repairs else (None, [])


def validate_rendered_turn(
    raw: Any,
    candidate_ids: Optional[Collection[str]] = None,
) -> TurnValidationResult:
    """
    Validate a rendered turn, repairing it at most once.

    Args:
        raw: Generation output (dict or JSON string)
        candidate_ids: Product ids the turn may recommend (no filtering when None)

    Returns:
        TurnValidationResult holding the turn or a TurnValidationError
    """
    payload, violations = preprocess_payload(raw, candidate_ids)
    if payload is None:
        logger.warning(f"Rendered turn rejected: {violations[0].message}")
        return TurnValidationResult(error=TurnValidationError(tuple(violations), raw))

    turn, violations = _attempt(payload)
    if turn is not None and not violations:
        return TurnValidationResult(turn=turn)

    logger.warning(f"Rendered turn invalid: {[v.code for v in violations]}")
    repaired, repairs = repair_payload(payload, violations)
    if repaired is None:
        return TurnValidationResult(error=TurnValidationError(tuple(violations), payload))

    turn, second = _attempt(repaired)
    if turn is not None and not second:
        logger.info(f"Rendered turn repaired: {repairs}")
        return TurnValidationResult(turn=turn, repairs=repairs)

    logger.error(f"Rendered turn still invalid after repair: {[v.code for v in second]}")
    return TurnValidationResult(error=TurnValidationError(tuple(second), repaired), repairs=repairs)


__all__ = [
    "StageViolation",
    "TurnValidationError",
    "TurnValidationResult",
    "RenderedTurnInvalid",
    "check_stage_invariants",
    "preprocess_payload",
    "repair_payload",
    "validate_rendered_turn",
]
