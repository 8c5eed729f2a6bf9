"""Shared test fixtures and helpers.

Builders return document-shaped dicts (as the UI builder sends them) so
tests exercise decoding together with generation.
"""

from typing import Any

import pytest

from src.codegen.context import GenerationContext, GenerationScope, IndicatorRegistry
from src.codegen.ir import (
    IndicatorDefinition,
    UIBuilderConfig,
    parse_condition,
    parse_operand,
)

# =============================================================================
# Operand builders
# =============================================================================


def constant(value: Any) -> dict:
    return {"type": "CONSTANT", "value": value}


def indicator(indicator_id: str, field: str | None = None, offset: int = 0) -> dict:
    operand: dict[str, Any] = {"type": "INDICATOR", "indicatorId": indicator_id}
    if field is not None:
        operand["field"] = field
    if offset:
        operand["offset"] = offset
    return operand


def price(field: str = "close", offset: int = 0, timeframe: str | None = None) -> dict:
    operand: dict[str, Any] = {"type": "PRICE", "field": field}
    if offset:
        operand["offset"] = offset
    if timeframe is not None:
        operand["timeframe"] = timeframe
    return operand


def trade_context(field: str) -> dict:
    return {"type": "TRADE_CONTEXT", "field": field}


def time_field(field: str, timezone: str | None = None) -> dict:
    operand: dict[str, Any] = {"type": "TIME", "field": field}
    if timezone is not None:
        operand["timezone"] = timezone
    return operand


def computed(operation: str, *operands: dict, precision: int | None = None) -> dict:
    operand: dict[str, Any] = {"type": "COMPUTED", "operation": operation, "operands": list(operands)}
    if precision is not None:
        operand["precision"] = precision
    return operand


# =============================================================================
# Condition builders
# =============================================================================


def compare(left: dict, operator: str, right: dict, node_id: str = "", disabled: bool = False) -> dict:
    return {
        "type": "COMPARE",
        "id": node_id,
        "left": left,
        "operator": operator,
        "right": right,
        "disabled": disabled,
    }


def crossover(series1: dict, series2: dict, node_id: str = "") -> dict:
    return {"type": "CROSSOVER", "id": node_id, "series1": series1, "series2": series2}


def crossunder(series1: dict, series2: dict, node_id: str = "") -> dict:
    return {"type": "CROSSUNDER", "id": node_id, "series1": series1, "series2": series2}


def and_(*children: dict, node_id: str = "", disabled: bool = False) -> dict:
    return {"type": "AND", "id": node_id, "children": list(children), "disabled": disabled}


def or_(*children: dict, node_id: str = "", disabled: bool = False) -> dict:
    return {"type": "OR", "id": node_id, "children": list(children), "disabled": disabled}


def not_(child: dict, node_id: str = "") -> dict:
    return {"type": "NOT", "id": node_id, "child": child}


def in_range(value: dict, low: dict, high: dict, inclusive: bool = False) -> dict:
    return {"type": "IN_RANGE", "value": value, "min": low, "max": high, "inclusive": inclusive}


def if_then_else(condition: dict, then: dict, else_: dict | None = None) -> dict:
    node = {"type": "IF_THEN_ELSE", "condition": condition, "then": then}
    if else_ is not None:
        node["else"] = else_
    return node


def rsi_below(threshold: float = 30, indicator_id: str = "rsi_1", node_id: str = "") -> dict:
    return compare(indicator(indicator_id), "lt", constant(threshold), node_id=node_id)


def rsi_above(threshold: float = 70, indicator_id: str = "rsi_1", node_id: str = "") -> dict:
    return compare(indicator(indicator_id), "gt", constant(threshold), node_id=node_id)


# =============================================================================
# Documents and contexts
# =============================================================================


def indicator_def(ind_id: str, kind: str, **params: Any) -> dict:
    return {"id": ind_id, "type": kind, "params": params}


DEFAULT_INDICATORS = [
    indicator_def("rsi_1", "RSI", period=14),
    indicator_def("rsi_14", "RSI", period=14),
    indicator_def("ema_fast", "EMA", period=12),
    indicator_def("ema_slow", "EMA", period=26),
    indicator_def("macd_1", "MACD"),
    indicator_def("bb_1", "BB"),
]


def make_document(**overrides: Any) -> dict:
    """A v2 long-only document with RSI entry/exit, overridable per key."""
    document: dict[str, Any] = {
        "version": 2,
        "indicators": list(DEFAULT_INDICATORS),
        "position_mode": "LONG_ONLY",
        "long": {
            "entry_conditions": and_(rsi_below(30)),
            "exit_conditions": and_(rsi_above(70)),
        },
    }
    document.update(overrides)
    return document


def make_config(**overrides: Any) -> UIBuilderConfig:
    return UIBuilderConfig.model_validate(make_document(**overrides))


def make_ctx(
    scope: GenerationScope = GenerationScope.VECTORIZED,
    indicators: list[dict] | None = None,
) -> GenerationContext:
    definitions = [
        IndicatorDefinition.model_validate(d)
        for d in (DEFAULT_INDICATORS if indicators is None else indicators)
    ]
    return GenerationContext(registry=IndicatorRegistry(definitions), scope=scope)


def node(data: dict):
    return parse_condition(data)


def operand(data: dict):
    return parse_operand(data)


@pytest.fixture
def ctx() -> GenerationContext:
    """Vectorized context with the default indicator set."""
    return make_ctx()


@pytest.fixture
def leverage_ctx() -> GenerationContext:
    return make_ctx(GenerationScope.LEVERAGE)
