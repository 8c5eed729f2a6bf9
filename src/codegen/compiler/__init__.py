"""Compiler package for strategy code generation.

Phases:
1. operand_builder   - Lower Operand trees to Python expressions
2. condition_builder - Lower ConditionNode trees (pruning disabled nodes first)
3. callbacks         - Dataframe preamble shared by callback methods

Imports are accumulated into GenerationContext as constructs are emitted.
"""

from src.codegen.compiler.callbacks import (
    MarketDataNeeds,
    analyze_market_data,
    render_market_data_preamble,
)
from src.codegen.compiler.condition_builder import (
    ALWAYS_FALSE,
    ALWAYS_TRUE,
    generate_condition,
)
from src.codegen.compiler.operand_builder import (
    check_computed_arity,
    format_constant,
    generate_operand,
)

__all__ = [
    "ALWAYS_FALSE",
    "ALWAYS_TRUE",
    "MarketDataNeeds",
    "analyze_market_data",
    "check_computed_arity",
    "format_constant",
    "generate_condition",
    "generate_operand",
    "render_market_data_preamble",
]
