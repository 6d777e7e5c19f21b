"""
Configuration management for the concierge decision core.

Loads settings from YAML config file and provides typed access.
"""
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import yaml

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from concierge.utils.logger import configure_logging


def _project_root() -> Path:
    """Return project root (parent of concierge package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"

DEFAULT_CLICK_PRIORS: Dict[str, float] = {
    "price_bucket": 1.0,
    "category": 0.9,
    "product_type": 0.9,
    "tag": 0.65,
    "vendor": 0.45,
}

DEFAULT_PRICE_BANDS: List[Tuple[float, str]] = [
    (50, "Under $50"),
    (100, "$50-$100"),
    (150, "$100-$150"),
    (200, "$150-$200"),
]

DEFAULT_RELAXATION_PRIORITY: List[str] = ["price_bucket", "style", "use_case", "vendor"]

DEFAULT_PRICE_OBJECTION_PHRASES: List[str] = [
    "too expensive",
    "over budget",
    "out of my budget",
    "cheaper",
    "lower price",
    "cost too much",
    "pricey",
    "discount",
    "can you do better",
    "any deal",
    "better price",
    "less expensive",
    "price range",
]


@dataclass
class ConciergeConfig:
    """Configuration for the turn decision core."""

    # Turn strategy thresholds
    show_results_max_items: int = 4       # At or below this many items never ask
    clarifier_min_cardinality: int = 2
    clarifier_max_cardinality: int = 5
    clarifier_min_impact: float = 0.10
    clarifier_min_utility: float = 0.25
    refinement_min_utility: float = 0.15
    max_refinements: int = 2
    max_option_values: int = 4

    # Facet statistics
    tag_cap: int = 5                      # Tags counted per item
    click_priors: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_CLICK_PRIORS))
    default_click_prior: float = 0.4
    price_bands: List[Tuple[float, str]] = field(default_factory=lambda: list(DEFAULT_PRICE_BANDS))
    price_overflow_label: str = "$200+"

    # Relaxation
    relaxation_priority: List[str] = field(default_factory=lambda: list(DEFAULT_RELAXATION_PRIORITY))
    retrieval_limit: int = 24

    # Dialogue memory
    opener_history_size: int = 10
    clarifier_ttl_turns: int = 10

    # Negotiation
    price_objection_phrases: List[str] = field(
        default_factory=lambda: list(DEFAULT_PRICE_OBJECTION_PHRASES)
    )

    # Generation collaborator
    generation_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.5
    generation_max_products: int = 12

    # Logging (LOG_LEVEL env var overrides)
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "ConciergeConfig":
        """Load configuration from YAML file."""
        path = config_path or DEFAULT_CONFIG_PATH
        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        strategy_config = data.get('strategy', {})
        facets_config = data.get('facets', {})
        relaxation_config = data.get('relaxation', {})
        memory_config = data.get('memory', {})
        negotiation_config = data.get('negotiation', {})
        generation_config = data.get('generation', {})
        logging_config = data.get('logging', {})

        defaults = cls()
        price_bands = facets_config.get('price_bands')
        if price_bands:
            price_bands = [(float(band['max']), str(band['label'])) for band in price_bands]

        return cls(
            show_results_max_items=strategy_config.get('show_results_max_items', defaults.show_results_max_items),
            clarifier_min_cardinality=strategy_config.get('min_cardinality', defaults.clarifier_min_cardinality),
            clarifier_max_cardinality=strategy_config.get('max_cardinality', defaults.clarifier_max_cardinality),
            clarifier_min_impact=strategy_config.get('min_impact', defaults.clarifier_min_impact),
            clarifier_min_utility=strategy_config.get('min_utility', defaults.clarifier_min_utility),
            refinement_min_utility=strategy_config.get('refinement_min_utility', defaults.refinement_min_utility),
            max_refinements=strategy_config.get('max_refinements', defaults.max_refinements),
            max_option_values=strategy_config.get('max_option_values', defaults.max_option_values),
            tag_cap=facets_config.get('tag_cap', defaults.tag_cap),
            click_priors=facets_config.get('click_priors', defaults.click_priors),
            default_click_prior=facets_config.get('default_click_prior', defaults.default_click_prior),
            price_bands=price_bands or defaults.price_bands,
            price_overflow_label=facets_config.get('price_overflow_label', defaults.price_overflow_label),
            relaxation_priority=relaxation_config.get('priority', defaults.relaxation_priority),
            retrieval_limit=relaxation_config.get('retrieval_limit', defaults.retrieval_limit),
            opener_history_size=memory_config.get('opener_history_size', defaults.opener_history_size),
            clarifier_ttl_turns=memory_config.get('clarifier_ttl_turns', defaults.clarifier_ttl_turns),
            price_objection_phrases=negotiation_config.get('price_objection_phrases', defaults.price_objection_phrases),
            generation_model=generation_config.get('model', defaults.generation_model),
            generation_temperature=generation_config.get('temperature', defaults.generation_temperature),
            generation_max_products=generation_config.get('max_products', defaults.generation_max_products),
            log_level=logging_config.get('level', defaults.log_level),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict view, used for logging the effective configuration."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


# Global config instance
_config: Optional[ConciergeConfig] = None


def get_config() -> ConciergeConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ConciergeConfig.from_yaml()
        configure_logging(_config.log_level)
    return _config


def set_config(config: Optional[ConciergeConfig]) -> None:
    """Set the global configuration instance (None forces a reload on next access)."""
    global _config
    _config = config
    if config is not None:
        configure_logging(config.log_level)
