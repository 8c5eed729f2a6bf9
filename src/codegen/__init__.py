"""UI builder config to Freqtrade strategy code generator.

Converts a UI builder document (indicators, condition trees, callback rules)
into the source of a Freqtrade IStrategy subclass.

The generation pipeline:
  1. Document (JSON) → parse_ui_builder_config → UIBuilderConfig (pydantic)
  2. normalize_config → per-direction (v2) shape
  3. apply_mirror_config → derive the missing direction when requested
  4. indicators / conditions / callbacks → source fragments + import ids
  5. generate_strategy → complete strategy module
"""

from .assembler import (
    GeneratedStrategy,
    generate_strategy,
    name_to_class_name,
    preview_strategy_code,
    render_import_statements,
    validate_class_name,
    validate_config_size,
)
from .compiler import generate_condition, generate_operand
from .context import GenerationContext, GenerationScope, ImportId, IndicatorRegistry
from .errors import CodegenError, ConfigLimitError, SchemaError, SemanticError
from .ir import UIBuilderConfig, parse_condition, parse_operand, parse_ui_builder_config
from .leverage import generate_leverage, needs_market_data
from .mirror import apply_mirror_config
from .normalize import normalize_config, should_generate_long, should_generate_short
from .registries import generate_all_indicators, generate_indicator
from .validator import ValidationResult, validate_config

__all__ = [
    "CodegenError",
    "ConfigLimitError",
    "SchemaError",
    "SemanticError",
    "UIBuilderConfig",
    "parse_condition",
    "parse_operand",
    "parse_ui_builder_config",
    "GenerationContext",
    "GenerationScope",
    "ImportId",
    "IndicatorRegistry",
    "generate_condition",
    "generate_operand",
    "generate_indicator",
    "generate_all_indicators",
    "apply_mirror_config",
    "normalize_config",
    "should_generate_long",
    "should_generate_short",
    "generate_leverage",
    "needs_market_data",
    "ValidationResult",
    "validate_config",
    "GeneratedStrategy",
    "generate_strategy",
    "name_to_class_name",
    "preview_strategy_code",
    "render_import_statements",
    "validate_class_name",
    "validate_config_size",
]
