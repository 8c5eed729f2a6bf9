"""Registry modules for declarative mappings."""

from .indicators import (
    INDICATOR_IMPORTS,
    INDICATOR_OUTPUTS,
    INDICATOR_TEMPLATES,
    generate_all_indicators,
    generate_indicator,
    indicator_column,
    indicator_fields,
    validate_indicator_id,
)
from .trade_context import TRADE_CONTEXT_FIELDS, trade_context_fields

__all__ = [
    "INDICATOR_IMPORTS",
    "INDICATOR_OUTPUTS",
    "INDICATOR_TEMPLATES",
    "generate_all_indicators",
    "generate_indicator",
    "indicator_column",
    "indicator_fields",
    "validate_indicator_id",
    "TRADE_CONTEXT_FIELDS",
    "trade_context_fields",
]
