"""Leverage rule compiler.

Compiles a prioritized list of (condition -> leverage) rules plus a default
into the strategy's `leverage()` callback:

    def leverage(self, pair: str, ..., side: str, **kwargs) -> float:
        max_leverage = min(max_leverage, 10.0)
        is_short = (side == 'short')
        dataframe, _ = self.dp.get_analyzed_dataframe(pair, self.timeframe)
        ...
        # High RSI (priority 5)
        if last_candle['rsi_14'] > 70:
            return min(1.0, max_leverage)
        return min(3.0, max_leverage)

Rules are evaluated in descending priority; the first match wins. A rule
without a condition is a catch-all and ends the procedure.
"""

from __future__ import annotations

import logging

from src.codegen.compiler.callbacks import (
    BODY_INDENT,
    METHOD_INDENT,
    MarketDataNeeds,
    analyze_market_data,
    comment_text,
    render_market_data_preamble,
)
from src.codegen.compiler.condition_builder import generate_condition
from src.codegen.compiler.operand_builder import generate_operand
from src.codegen.context import GenerationContext, GenerationScope, ImportId
from src.codegen.errors import SchemaError
from src.codegen.ir import (
    LeverageConfig,
    LeverageConstantValue,
    LeverageExpressionValue,
    LeverageRule,
    LeverageValue,
)
from src.codegen.visitors.pruner import prune_disabled

logger = logging.getLogger(__name__)

LEVERAGE_SIGNATURE = (
    "def leverage(self, pair: str, current_time: datetime, current_rate: float, "
    "proposed_leverage: float, max_leverage: float, entry_tag: str | None, "
    "side: str, **kwargs) -> float:"
)

DEFAULT_EXPRESSION_MIN = 1.0


def sort_rules_by_priority(rules: list[LeverageRule]) -> list[LeverageRule]:
    """Stable sort by descending priority; the input list is left untouched."""
    return sorted(rules, key=lambda rule: rule.priority, reverse=True)


def active_rules(config: LeverageConfig) -> list[LeverageRule]:
    """Enabled rules in evaluation order."""
    return sort_rules_by_priority([rule for rule in config.rules if not rule.disabled])


def needs_market_data(config: LeverageConfig | None) -> bool:
    """Whether any active rule reads the analyzed dataframe.

    True when an INDICATOR or PRICE operand is reachable from an active
    rule's condition or EXPRESSION value.
    """
    if config is None:
        return False
    return _market_data_needs(active_rules(config)).dataframe


def _market_data_needs(rules: list[LeverageRule]) -> MarketDataNeeds:
    return analyze_market_data(
        conditions=[rule.condition for rule in rules],
        operands=[
            rule.leverage.operand
            for rule in rules
            if isinstance(rule.leverage, LeverageExpressionValue)
        ],
    )


def _float(value: float) -> str:
    return repr(float(value))


def _leverage_value(value: LeverageValue, ctx: GenerationContext) -> str:
    match value:
        case LeverageConstantValue():
            return f"min({_float(value.value)}, max_leverage)"
        case LeverageExpressionValue():
            expr = generate_operand(value.operand, ctx)
            if value.max is not None:
                expr = f"min({_float(value.max)}, {expr})"
            low = value.min if value.min is not None else DEFAULT_EXPRESSION_MIN
            return f"min(max({_float(low)}, {expr}), max_leverage)"
        case _:
            raise SchemaError(f"unknown leverage value type: {value!r}")


def generate_leverage(config: LeverageConfig | None, ctx: GenerationContext) -> str:
    """Generate the leverage() callback method.

    Args:
        config: Leverage policy; None or disabled yields an empty string.
        ctx: Generation context. A LEVERAGE-scoped context sharing its
            imports and handlers is derived from it.

    Returns:
        Method source indented for a class body.

    Raises:
        CodegenError: If a rule's condition or value cannot be generated.
    """
    if config is None or not config.enabled:
        return ""

    ctx = ctx.for_scope(GenerationScope.LEVERAGE)
    ctx.add_import(ImportId.DATETIME)
    rules = active_rules(config)
    default = f"min({_float(config.default_leverage)}, max_leverage)"

    lines = [f"{METHOD_INDENT}{LEVERAGE_SIGNATURE}"]
    if config.max_leverage is not None:
        lines.append(f"{BODY_INDENT}max_leverage = min(max_leverage, {_float(config.max_leverage)})")
    lines.append(f"{BODY_INDENT}is_short = (side == 'short')")

    lines.extend(render_market_data_preamble(_market_data_needs(rules), default))

    catch_all = False
    for rule in rules:
        value = _leverage_value(rule.leverage, ctx)
        label = comment_text(rule.label or rule.id or "Rule")
        condition = prune_disabled(rule.condition)

        if rule.condition is None:
            lines.append(f"{BODY_INDENT}# Catch-all rule (no condition)")
            lines.append(f"{BODY_INDENT}# {label} (priority {rule.priority})")
            lines.append(f"{BODY_INDENT}return {value}")
            catch_all = True
            logger.debug(f"Leverage rule {rule.id} is a catch-all, skipping remaining rules")
            break

        if condition is None:
            # Every node of the condition is disabled: the rule can never match
            logger.debug(f"Leverage rule {rule.id} has no active condition, skipped")
            continue

        lines.append(f"{BODY_INDENT}# {label} (priority {rule.priority})")
        lines.append(f"{BODY_INDENT}if {generate_condition(condition, ctx)}:")
        lines.append(f"{BODY_INDENT}{METHOD_INDENT}return {value}")

    if not catch_all:
        lines.append(f"{BODY_INDENT}return {default}")

    return "\n".join(lines)
