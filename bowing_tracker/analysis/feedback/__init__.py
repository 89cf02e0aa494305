"""Rule-driven suggestions for bowing and technique feedback."""

from .rules import (
    BOWING_RULES_CONFIG,
    DEFAULT_RULES_CONFIG,
    TECHNIQUE_RULES_CONFIG,
    evaluate_rules,
    load_rules_config,
    suggestion_texts,
)

__all__ = [
    "BOWING_RULES_CONFIG",
    "DEFAULT_RULES_CONFIG",
    "TECHNIQUE_RULES_CONFIG",
    "evaluate_rules",
    "load_rules_config",
    "suggestion_texts",
]
