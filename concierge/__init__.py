"""
Concierge - decision core of a conversational shopping assistant

Decides, per turn:
- show products or ask a clarifying question (entropy-based facet utility)
- whether to ask before or after showing results
- which filters to drop when a query returns nothing
- how to respond to repeated price objections
- which openers and clarifiers must not be repeated
"""

from concierge.core.controller import (
    RenderedTurnReview,
    TurnController,
    TurnIntent,
    TurnRequest,
    create_controller,
)
from concierge.core.config import ConciergeConfig, get_config, set_config

__all__ = [
    'TurnController',
    'TurnRequest',
    'TurnIntent',
    'RenderedTurnReview',
    'create_controller',
    'ConciergeConfig',
    'get_config',
    'set_config',
]

__version__ = '0.1.0'
