"""Condition builder: lowers ConditionNode trees to Python boolean expressions.

In VECTORIZED scope the result is an elementwise boolean series expression
(`&`, `|`, `~`, np.where, qtpylib crossovers). In callback scopes the same
tree renders as a scalar Python expression (`and`, `or`, `not`, conditional
expressions, last/previous candle comparisons).

Disabled nodes are pruned before lowering; a fully disabled tree renders as
the "always false" literal.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.codegen.compiler.operand_builder import PRICE_COMPOSITES, format_constant, generate_operand
from src.codegen.context import ImportId
from src.codegen.errors import CodegenError, SchemaError
from src.codegen.ir import (
    AndNode,
    ComparisonOperator,
    CompareNode,
    ConditionNode,
    ConstantOperand,
    CrossoverNode,
    CrossunderNode,
    IfThenElseNode,
    IndicatorOperand,
    InRangeNode,
    NotNode,
    Operand,
    OrNode,
    PriceOperand,
)
from src.codegen.visitors.pruner import prune_disabled

if TYPE_CHECKING:
    from src.codegen.context import GenerationContext

logger = logging.getLogger(__name__)

ALWAYS_TRUE = "True"
ALWAYS_FALSE = "False"


# =============================================================================
# Field maps
# =============================================================================

_COMPARE_OP_MAP: dict[ComparisonOperator, str] = {
    ComparisonOperator.EQ: "==",
    ComparisonOperator.NEQ: "!=",
    ComparisonOperator.GT: ">",
    ComparisonOperator.GTE: ">=",
    ComparisonOperator.LT: "<",
    ComparisonOperator.LTE: "<=",
}


# =============================================================================
# Public API
# =============================================================================


def generate_condition(node: ConditionNode | None, ctx: GenerationContext) -> str:
    """Lower a condition tree to a Python expression.

    Args:
        node: Decoded condition tree, or None for "no condition".
        ctx: Generation context; its scope selects vectorized or callback output.

    Returns:
        Python expression text. A missing or fully disabled tree yields "False".

    Raises:
        SchemaError: Unsupported operator or malformed operand.
        SemanticError: Unknown field name or operand invalid in this scope.
    """
    pruned = prune_disabled(node)
    if pruned is None:
        if node is not None:
            logger.debug(f"Condition {node.id or node.type} is fully disabled, emitting {ALWAYS_FALSE}")
        return ALWAYS_FALSE
    return _lower(pruned, ctx)


def _lower(node: ConditionNode, ctx: GenerationContext) -> str:
    try:
        match node:
            case AndNode():
                return _and(node, ctx)
            case OrNode():
                return _or(node, ctx)
            case NotNode():
                return _not(node, ctx)
            case IfThenElseNode():
                return _if_then_else(node, ctx)
            case CompareNode():
                return _compare(node, ctx)
            case CrossoverNode() | CrossunderNode():
                return _cross(node, ctx)
            case InRangeNode():
                return _in_range(node, ctx)
            case _:
                raise SchemaError(f"unknown node type: {getattr(node, 'type', node)!r}")
    except CodegenError as e:
        # Attach the innermost node id that has one
        if e.node_id is None and getattr(node, "id", ""):
            raise type(e)(e.message, node_id=node.id) from e
        raise


# =============================================================================
# Logical nodes
# =============================================================================


def _and(node: AndNode, ctx: GenerationContext) -> str:
    if not node.children:
        return ALWAYS_TRUE
    joiner = " and " if ctx.scope.is_callback else " & "
    return joiner.join(f"({_lower(child, ctx)})" for child in node.children)


def _or(node: OrNode, ctx: GenerationContext) -> str:
    if not node.children:
        return ALWAYS_FALSE
    joiner = " or " if ctx.scope.is_callback else " | "
    return joiner.join(f"({_lower(child, ctx)})" for child in node.children)


def _not(node: NotNode, ctx: GenerationContext) -> str:
    child = _lower(node.child, ctx)
    if ctx.scope.is_callback:
        return f"not ({child})"
    return f"~({child})"


def _if_then_else(node: IfThenElseNode, ctx: GenerationContext) -> str:
    condition = _lower(node.condition, ctx)
    then = _lower(node.then, ctx)
    else_ = _lower(node.else_, ctx) if node.else_ is not None else ALWAYS_FALSE
    if ctx.scope.is_callback:
        return f"(({then}) if ({condition}) else ({else_}))"
    ctx.add_import(ImportId.NUMPY)
    return f"np.where({condition}, {then}, {else_})"


# =============================================================================
# Comparison nodes
# =============================================================================


def _membership_target(operand: Operand, ctx: GenerationContext) -> str:
    # A scalar constant on the right of in/not_in is treated as a one-item list
    if isinstance(operand, ConstantOperand) and not isinstance(operand.value, list):
        return f"[{format_constant(operand.value)}]"
    return generate_operand(operand, ctx)


def _series_receiver(operand: Operand, expr: str) -> str:
    # Attribute access binds tighter than arithmetic: only plain column reads go bare
    if isinstance(operand, IndicatorOperand):
        return expr
    if isinstance(operand, PriceOperand) and operand.field not in PRICE_COMPOSITES:
        return expr
    return f"({expr})"


def _compare(node: CompareNode, ctx: GenerationContext) -> str:
    callback = ctx.scope.is_callback

    if node.operator == ComparisonOperator.BETWEEN:
        raise SchemaError("operator 'between' needs two bounds; use an IN_RANGE node instead")

    left = generate_operand(node.left, ctx)

    if node.operator in (ComparisonOperator.IN, ComparisonOperator.NOT_IN):
        right = _membership_target(node.right, ctx)
        if callback:
            keyword = "in" if node.operator == ComparisonOperator.IN else "not in"
            return f"{left} {keyword} {right}"
        receiver = _series_receiver(node.left, left)
        if node.operator == ComparisonOperator.IN:
            return f"{receiver}.isin({right})"
        return f"~{receiver}.isin({right})"

    right = generate_operand(node.right, ctx)
    return f"{left} {_COMPARE_OP_MAP[node.operator]} {right}"


def _cross(node: CrossoverNode | CrossunderNode, ctx: GenerationContext) -> str:
    above = isinstance(node, CrossoverNode)
    series1 = generate_operand(node.series1, ctx)
    series2 = generate_operand(node.series2, ctx)

    if not ctx.scope.is_callback:
        ctx.add_import(ImportId.QTPYLIB)
        helper = "crossed_above" if above else "crossed_below"
        return f"qtpylib.{helper}({series1}, {series2})"

    prev1 = generate_operand(node.series1, ctx, previous=True)
    prev2 = generate_operand(node.series2, ctx, previous=True)
    if above:
        return f"({prev1} <= {prev2}) and ({series1} > {series2})"
    return f"({prev1} >= {prev2}) and ({series1} < {series2})"


def _in_range(node: InRangeNode, ctx: GenerationContext) -> str:
    value = generate_operand(node.value, ctx)
    low = generate_operand(node.min, ctx)
    high = generate_operand(node.max, ctx)
    lower_op, upper_op = (">=", "<=") if node.inclusive else (">", "<")
    joiner = " and " if ctx.scope.is_callback else " & "
    return f"({value} {lower_op} {low}){joiner}({value} {upper_op} {high})"
