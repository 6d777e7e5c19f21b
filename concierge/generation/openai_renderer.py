"""
OpenAI-backed generation adapter.

Renders a decided TurnIntent into the structured turn the storefront shows.
The model only phrases the turn: strategy, relaxation and negotiation are
fixed by the intent and passed in verbatim.
"""
from typing import Any, Dict, List, Optional
import json

from openai import AsyncOpenAI

from concierge.core.config import ConciergeConfig, get_config
from concierge.utils.logger import get_logger

logger = get_logger("generation.openai_renderer")

STAGE_BY_ACTION = {
    "ask_clarifier": "clarify",
    "show_results": "final",
}

SYSTEM_PROMPT = """You are a friendly shopping concierge for an online store.
You write the text of ONE assistant turn from a decision that has already been made.

## Output
Reply with a JSON object:
{
  "stage": "clarify" | "refine" | "final",
  "opening": "1-2 sentence lead text",
  "recommendations": [{"product_id": "...", "title": "...", "reason": "why it fits"}],
  "clarifier": {"facet": "...", "question": "...", "options": [{"label": "...", "value": "..."}]} | null,
  "suggested_filters": [{"facet": "...", "value": "..."}]
}

## Stage rules
- clarify: a clarifier, no recommendations
- refine: recommendations AND a clarifier
- final: recommendations, clarifier is null

## Rules
- Use the requested stage.
- Only recommend products from the candidate list, by their exact id.
- Use the clarifier question and options you are given; do not invent new ones.
- Include relaxation notes and negotiation offers verbatim when present.
- Do not open with any of the recent openers listed."""


def stage_for_intent(payload: Dict[str, Any]) -> str:
    """Stage the rendered turn should take for an intent payload."""
    strategy = payload.get("strategy") or {}
    action = strategy.get("action")
    if action == "ask_clarifier" and payload.get("flow_order") == "show_then_ask" and payload.get("items"):
        return "refine"
    return STAGE_BY_ACTION.get(action, "final")


def build_prompt(
    intent_payload: Dict[str, Any],
    recent_openers: Optional[List[str]] = None,
    max_products: int = 12,
) -> str:
    """
    Build the user message for one turn.

    Args:
        intent_payload: Output of TurnIntent.to_payload()
        recent_openers: Openers to avoid
        max_products: Candidate cap sent to the model

    Returns:
        JSON prompt string
    """
    items = intent_payload.get("items") or []
    context = {
        "stage": stage_for_intent(intent_payload),
        "flow_order": intent_payload.get("flow_order"),
        "clarifier": None,
        "candidates": items[:max_products],
        "active_filters": intent_payload.get("active_filters") or {},
        "suggested_refinements": (intent_payload.get("strategy") or {}).get("suggested_refinements") or [],
        "relaxation_notes": [n.get("text") for n in intent_payload.get("relaxation_notes") or []],
        "negotiation": intent_payload.get("negotiation_outcome"),
        "recent_openers": list(recent_openers or []),
    }

    if intent_payload.get("clarifier_question"):
        strategy = intent_payload.get("strategy") or {}
        context["clarifier"] = {
            "facet": strategy.get("facet_to_ask"),
            "question": intent_payload["clarifier_question"],
            "options": [
                {"label": o["label"], "value": o.get("value") or o["label"]}
                for o in intent_payload.get("clarifier_options") or []
            ],
        }

    return json.dumps(context, indent=2)


class OpenAITurnRenderer:
    """Generation collaborator backed by the OpenAI chat completions API."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, config: Optional[ConciergeConfig] = None):
        """
        Initialize the renderer.

        Args:
            client: AsyncOpenAI client (created from the environment when omitted)
            config: Configuration object. Uses default config if not provided.
        """
        self.config = config or get_config()
        self.client = client or AsyncOpenAI()

    async def render(
        self,
        intent_payload: Dict[str, Any],
        recent_openers: Optional[List[str]] = None,
    ) -> str:
        """
        Render one turn.

        Returns the raw JSON text; callers validate it with
        `validate_rendered_turn` (or `TurnController.review_rendered_turn`).
        API errors propagate to the caller.
        """
        prompt = build_prompt(intent_payload, recent_openers, self.config.generation_max_products)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        logger.info(f"Rendering turn with {self.config.generation_model} (stage={stage_for_intent(intent_payload)})")
        response = await self.client.chat.completions.create(
            model=self.config.generation_model,
            messages=messages,
            response_format={"type": "json_object"},
            temperature=self.config.generation_temperature,
        )

        content = response.choices[0].message.content or ""
        logger.debug(f"Rendered turn: {content[:500]}")
        return content


__all__ = ["OpenAITurnRenderer", "build_prompt", "stage_for_intent"]
