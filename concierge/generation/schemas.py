"""
Pydantic models for the generation service's rendered turn.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MAX_CLARIFIER_OPTIONS = 6

TurnStage = Literal["clarify", "refine", "final"]


class ClarifierOptionModel(BaseModel):
    """One clickable clarifier option."""
    label: str = Field(min_length=1, max_length=80)
    value: str = Field(min_length=1, max_length=80)
    aliases: Optional[List[str]] = None


class ClarifierModel(BaseModel):
    """Narrowing question rendered by the generation service."""
    facet: str = Field(description="Facet the question narrows")
    question: str = Field(min_length=3, max_length=200)
    options: List[ClarifierOptionModel] = Field(min_length=2, max_length=MAX_CLARIFIER_OPTIONS)


class RecommendationModel(BaseModel):
    """A recommended product with its short rationale."""
    product_id: str
    title: Optional[str] = None
    reason: str = Field(min_length=3, max_length=280)
    confidence: Optional[Literal["high", "medium", "low"]] = None


class SuggestedFilterModel(BaseModel):
    facet: str
    value: str
    reason: Optional[str] = None


class RenderedTurn(BaseModel):
    """Structured output of the generation service for one turn."""
    stage: TurnStage = Field(description="'clarify', 'refine' or 'final'")
    opening: str = Field(min_length=3, max_length=320, description="Lead text shown first")
    recommendations: List[RecommendationModel] = Field(default_factory=list)
    clarifier: Optional[ClarifierModel] = None
    suggested_filters: List[SuggestedFilterModel] = Field(default_factory=list)

    @field_validator("recommendations", "suggested_filters", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value
