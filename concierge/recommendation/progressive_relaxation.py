"""
Progressive Constraint Relaxation.

When a query returns nothing, drops active filters one at a time in a fixed
product-defined order, re-querying after each drop, until results appear or
the priority list is exhausted. Calls are strictly sequential: each search
depends on the filter set left by the previous step.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from concierge.core.config import ConciergeConfig, get_config
from concierge.core.segments import NoteSegment, QuickReply
from concierge.data.retrieval import RetrievalClient, RetrievalSet
from concierge.utils.canonical import canonicalize_facet, humanize_value
from concierge.utils.logger import get_logger

logger = get_logger("recommendation.progressive_relaxation")


@dataclass(frozen=True)
class RelaxationRule:
    """Copy templates for relaxing one facet. `{value}` is the dropped value."""
    facet: str
    label: str
    label_without_value: str
    description: str
    description_without_value: str
    humanize: bool = True

    def render_label(self, value: Optional[str]) -> str:
        if not value:
            return self.label_without_value
        shown = humanize_value(value) if self.humanize else value
        return self.label.format(value=shown)

    def render_description(self, value: Optional[str]) -> str:
        if not value:
            return self.description_without_value
        shown = humanize_value(value) if self.humanize else value
        return self.description.format(value=shown)


RELAXATION_RULES: Dict[str, RelaxationRule] = {
    "price_bucket": RelaxationRule(
        facet="price_bucket",
        label="Keep {value}",
        label_without_value="Reset budget",
        description="Nothing in stock in the {value} range. I widened the price range so you still see close matches.",
        description_without_value="No stock in that price range. I widened the budget slightly to surface close matches.",
        humanize=False,
    ),
    "style": RelaxationRule(
        facet="style",
        label="Stay with {value}",
        label_without_value="Keep current style",
        description="That exact style is tight right now. I broadened to nearby styles so you still get something similar.",
        description_without_value="I loosened the style filter so you can see adjacent options.",
    ),
    "use_case": RelaxationRule(
        facet="use_case",
        label="Keep {value}",
        label_without_value="Keep use case",
        description="I relaxed the activity filter so you can compare close matches.",
        description_without_value="I relaxed the activity filter so you can compare close matches.",
    ),
    "vendor": RelaxationRule(
        facet="vendor",
        label="Only {value}",
        label_without_value="Keep brand",
        description="That brand is low on stock. I included similar brands so you still get the same spec.",
        description_without_value="I opened the brand filter to show comparable options.",
    ),
}


def rule_for_facet(facet: str) -> RelaxationRule:
    """Copy templates for a facet (generic wording for unknown facets)."""
    key = canonicalize_facet(facet)
    if key in RELAXATION_RULES:
        return RELAXATION_RULES[key]
    topic = humanize_value(key).lower() or "that"
    return RelaxationRule(
        facet=key,
        label="Keep {value}",
        label_without_value=f"Keep {topic}",
        description=f"Nothing matched {{value}} for {topic}, so I loosened that filter.",
        description_without_value=f"I loosened the {topic} filter to show close matches.",
    )


@dataclass(frozen=True)
class RelaxationStep:
    """One dropped filter."""
    facet: str
    previous_value: Optional[str]
    description: str
    undo: Optional[QuickReply] = None
    results_after: int = 0

    def to_dict(self) -> dict:
        return {
            "facet": self.facet,
            "previous_value": self.previous_value,
            "description": self.description,
            "undo": self.undo.to_dict() if self.undo else None,
            "results_after": self.results_after,
        }


@dataclass
class RelaxationOutcome:
    """Result of a relaxation run."""
    retrieval: RetrievalSet
    filters: Dict[str, str]
    steps: List[RelaxationStep] = field(default_factory=list)
    notes: List[NoteSegment] = field(default_factory=list)
    undo_options: List[QuickReply] = field(default_factory=list)

    @property
    def relaxed(self) -> bool:
        return bool(self.steps)

    @property
    def relaxed_facets(self) -> List[str]:
        return [step.facet for step in self.steps]


def _find_filter_key(filters: Mapping[str, str], facet: str) -> Optional[str]:
    target = canonicalize_facet(facet)
    for key in filters:
        if canonicalize_facet(key) == target:
            return key
    return None


async def relax_constraints(
    retrieval: RetrievalSet,
    filters: Mapping[str, str],
    client: RetrievalClient,
    query: str,
    embedding: Sequence[float] = (),
    limit: Optional[int] = None,
    priority: Optional[Sequence[str]] = None,
    config: Optional[ConciergeConfig] = None,
) -> RelaxationOutcome:
    """
    Drop filters in priority order until the retrieval set is non-empty.

    Key behavior:
    - Nothing happens when the incoming retrieval already has items
    - Each present priority facet is removed and the search re-run; a step is
      recorded whether or not that particular removal produced results
    - Stops at the first non-empty retrieval or when the priority list ends
    - Filters outside the priority list are never dropped

    Args:
        retrieval: Retrieval set obtained with the full filter set
        filters: Active filters (facet -> value)
        client: Retrieval collaborator
        query: Lexical query text
        embedding: Query embedding passed through to search
        limit: Result limit (config.retrieval_limit when omitted)
        priority: Relaxation order (config.relaxation_priority when omitted)
        config: Optional configuration

    Returns:
        RelaxationOutcome with the final retrieval, the reduced filter map and
        the ordered steps
    """
    config = config or get_config()
    limit = limit if limit is not None else config.retrieval_limit
    priority = list(priority if priority is not None else config.relaxation_priority)

    working_filters: Dict[str, str] = dict(filters)
    outcome = RelaxationOutcome(retrieval=retrieval, filters=working_filters)

    if not retrieval.is_empty or not working_filters:
        return outcome

    logger.info("=" * 60)
    logger.info("PROGRESSIVE CONSTRAINT RELAXATION")
    logger.info("=" * 60)
    logger.info(f"Starting filters: {working_filters}")
    logger.info(f"Relaxation order: {priority}")

    working_retrieval = retrieval
    for facet in priority:
        if not working_retrieval.is_empty:
            break
        key = _find_filter_key(working_filters, facet)
        if key is None:
            continue

        previous_value = working_filters.pop(key)
        rule = rule_for_facet(facet)

        logger.info(f"  Relaxing filter: '{key}' (was: {previous_value})")
        working_retrieval = await client.search(query, embedding, dict(working_filters), limit)
        logger.info(f"  -> {len(working_retrieval)} results with {list(working_filters.keys())}")

        undo = None
        if previous_value:
            undo = QuickReply(
                id=f"undo_{canonicalize_facet(facet)}",
                label=rule.render_label(previous_value),
                value=previous_value,
            )
        description = rule.render_description(previous_value)

        outcome.steps.append(RelaxationStep(
            facet=key,
            previous_value=previous_value,
            description=description,
            undo=undo,
            results_after=len(working_retrieval),
        ))
        outcome.notes.append(NoteSegment(text=description, variant="relaxation"))
        if undo is not None:
            outcome.undo_options.append(undo)

    outcome.retrieval = working_retrieval

    logger.info(f"Final result: {len(working_retrieval)} items")
    if outcome.relaxed:
        logger.info(f"Relaxed filters: {outcome.relaxed_facets}")
    logger.info("=" * 60)

    return outcome


__all__ = [
    "RELAXATION_RULES",
    "RelaxationRule",
    "RelaxationStep",
    "RelaxationOutcome",
    "relax_constraints",
    "rule_for_facet",
]
