"""Operand builder: lowers Operand trees to Python expressions.

Two renderings exist for the same operand:

1. VECTORIZED scope (populate_* methods)
   - Values are dataframe columns: dataframe['rsi_1'], .shift(n) for offsets
   - TIME reads the candle date column, TRADE_CONTEXT is unavailable

2. Callback scopes (leverage, custom_stoploss, ...)
   - Values are scalars from the last (or previous) analyzed candle
   - TIME reads current_time, TRADE_CONTEXT reads the callback arguments

Every operand kind has exactly one branch; an unhandled kind raises.
"""

from __future__ import annotations

import json
import math
import re
from typing import TYPE_CHECKING, Any

from src.codegen.context import GenerationScope, ImportId
from src.codegen.errors import SchemaError, SemanticError
from src.codegen.ir import (
    ComputedOperand,
    ComputedOperation,
    ConstantOperand,
    CustomOperand,
    ExternalOperand,
    IndicatorOperand,
    IndicatorType,
    MarketOperand,
    Operand,
    OperandType,
    PriceOperand,
    TimeOperand,
    TradeContextOperand,
)
from src.codegen.registries.indicators import (
    indicator_column,
    indicator_fields,
    validate_indicator_id,
)
from src.codegen.registries.trade_context import trade_context_fields

if TYPE_CHECKING:
    from src.codegen.context import GenerationContext
    from src.codegen.ir import IndicatorDefinition


# =============================================================================
# Field maps
# =============================================================================

OHLCV_FIELDS = ("open", "high", "low", "close", "volume")

# Composite prices: (component columns, divisor)
PRICE_COMPOSITES: dict[str, tuple[tuple[str, ...], int]] = {
    "ohlc4": (("open", "high", "low", "close"), 4),
    "hlc3": (("high", "low", "close"), 3),
    "hl2": (("high", "low"), 2),
}

_VECTORIZED_TIME_FIELDS: dict[str, str] = {
    "hour": "{date}.dt.hour",
    "minute": "{date}.dt.minute",
    "day_of_week": "{date}.dt.dayofweek",
    "day_of_month": "{date}.dt.day",
    "month": "{date}.dt.month",
    "timestamp": "({date}.astype('int64') // 10**9)",
    "is_weekend": "({date}.dt.dayofweek >= 5)",
    # No session calendar is available to generated strategies
    "trading_session": "'unknown'",
}

_CALLBACK_TIME_FIELDS: dict[str, str] = {
    "hour": "{now}.hour",
    "minute": "{now}.minute",
    "day_of_week": "{now}.weekday()",
    "day_of_month": "{now}.day",
    "month": "{now}.month",
    "timestamp": "{now}.timestamp()",
    "is_weekend": "({now}.weekday() >= 5)",
    "trading_session": "'unknown'",
}

TIME_FIELDS = tuple(_CALLBACK_TIME_FIELDS)

MARKET_FIELDS = ("btc_dominance", "total_market_cap", "fear_greed_index")

# Operand-count constraints per operation: (minimum, maximum or None)
_COMPUTED_ARITY: dict[ComputedOperation, tuple[int, int | None]] = {
    ComputedOperation.ADD: (2, None),
    ComputedOperation.SUBTRACT: (2, None),
    ComputedOperation.MULTIPLY: (2, None),
    ComputedOperation.DIVIDE: (2, None),
    ComputedOperation.MIN: (2, None),
    ComputedOperation.MAX: (2, None),
    ComputedOperation.SUM: (1, None),
    ComputedOperation.AVERAGE: (1, None),
    ComputedOperation.ABS: (1, 1),
    ComputedOperation.ROUND: (1, 1),
    ComputedOperation.FLOOR: (1, 1),
    ComputedOperation.CEIL: (1, 1),
    ComputedOperation.PERCENT_CHANGE: (2, 2),
}

_FOLD_SYMBOLS: dict[ComputedOperation, str] = {
    ComputedOperation.ADD: " + ",
    ComputedOperation.SUBTRACT: " - ",
    ComputedOperation.MULTIPLY: " * ",
    ComputedOperation.DIVIDE: " / ",
    ComputedOperation.SUM: " + ",
}

_TIMEFRAME_RE = re.compile(r"^[0-9]+[smhdwM]$")
# Minutes per timeframe unit; a month counts as 30 days
_TIMEFRAME_MINUTES = {"s": 1 / 60, "m": 1, "h": 60, "d": 1440, "w": 10080, "M": 43200}
_TIMEZONE_RE = re.compile(r"^[A-Za-z0-9_+\-/]+$")

LAST_CANDLE = "last_candle"
PREV_CANDLE = "prev_candle"


# =============================================================================
# Public API
# =============================================================================


def timeframe_to_minutes(timeframe: str) -> float:
    """Length of one candle, e.g. "15m" -> 15, "1h" -> 60.

    Raises:
        SemanticError: If the timeframe is not <count><unit> with unit s/m/h/d/w/M.
    """
    if not _TIMEFRAME_RE.match(timeframe):
        raise SemanticError(f"invalid timeframe '{timeframe}'")
    return int(timeframe[:-1]) * _TIMEFRAME_MINUTES[timeframe[-1]]


def generate_operand(operand: Operand, ctx: GenerationContext, previous: bool = False) -> str:
    """Lower an operand to a Python expression.

    Args:
        operand: Decoded operand tree.
        ctx: Generation context (scope, registry, import accumulator).
        previous: In callback scopes, read the candle before the last one.
            Used by crossover rendering; ignored in vectorized scope.

    Returns:
        Python expression text.

    Raises:
        SchemaError: Wrong COMPUTED arity or an unrepresentable value.
        SemanticError: Unknown field name, or operand not valid in this scope.
    """
    match operand:
        case ConstantOperand():
            return format_constant(operand.value)
        case IndicatorOperand():
            return _indicator(operand, ctx, previous)
        case PriceOperand():
            return _price(operand, ctx, previous)
        case TradeContextOperand():
            return _trade_context(operand, ctx)
        case TimeOperand():
            return _time(operand, ctx)
        case MarketOperand():
            return _market(operand, ctx)
        case ComputedOperand():
            return _computed(operand, ctx, previous)
        case ExternalOperand():
            return _delegate(OperandType.EXTERNAL, operand.source_id, operand, ctx)
        case CustomOperand():
            return _delegate(OperandType.CUSTOM, operand.plugin_id, operand, ctx)
        case _:
            raise SchemaError(f"unknown operand type: {getattr(operand, 'type', operand)!r}")


def format_constant(value: Any) -> str:
    """Format a literal as Python source."""
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SchemaError(f"constant {value!r} is not a finite number")
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, list):
        return "[" + ", ".join(format_constant(v) for v in value) + "]"
    raise SchemaError(f"unsupported constant value {value!r}")


# =============================================================================
# Column-backed operands
# =============================================================================


def _column_ref(column: str, offset: int, ctx: GenerationContext, previous: bool) -> str:
    if not ctx.scope.is_callback:
        if offset > 0:
            return f"dataframe['{column}'].shift({offset})"
        return f"dataframe['{column}']"

    # Callback scope reads scalars; bars_back 0 is the last candle
    bars_back = offset + (1 if previous else 0)
    if bars_back == 0:
        return f"{LAST_CANDLE}['{column}']"
    if bars_back == 1 and offset == 0:
        return f"{PREV_CANDLE}['{column}']"
    return f"dataframe['{column}'].iloc[-{bars_back + 1}]"


def check_indicator_field(operand: IndicatorOperand, definition: IndicatorDefinition | None) -> None:
    """Raise SemanticError unless `operand.field` is an output of the indicator.

    Unregistered and CUSTOM indicators are not checked.
    """
    if definition is None or definition.type == IndicatorType.CUSTOM:
        return
    fields = indicator_fields(definition.type) or ()
    if (operand.field or "") in fields:
        return
    named = [f for f in fields if f]
    if not operand.field:
        raise SemanticError(
            f"indicator '{operand.indicator_id}' ({definition.type.value}) "
            f"requires a field, one of: {', '.join(named)}"
        )
    raise SemanticError(
        f"indicator '{operand.indicator_id}' ({definition.type.value}) "
        f"has no field '{operand.field}'"
    )


def _indicator(operand: IndicatorOperand, ctx: GenerationContext, previous: bool) -> str:
    validate_indicator_id(operand.indicator_id)
    check_indicator_field(operand, ctx.registry.get(operand.indicator_id))
    column = validate_indicator_id(indicator_column(operand.indicator_id, operand.field))
    return _column_ref(column, operand.offset, ctx, previous)


def _price_column(field: str, timeframe: str | None, ctx: GenerationContext) -> str:
    if timeframe is None:
        return field
    minutes = timeframe_to_minutes(timeframe)
    if ctx.timeframe is not None:
        base = timeframe_to_minutes(ctx.timeframe)
        if minutes == base:
            return field
        if minutes < base:
            raise SemanticError(
                f"price timeframe '{timeframe}' is shorter than the strategy timeframe '{ctx.timeframe}'"
            )
    # Column added by merge_informative_pair for this timeframe
    ctx.add_informative_timeframe(timeframe)
    return f"{field}_{timeframe}"


def _price(operand: PriceOperand, ctx: GenerationContext, previous: bool) -> str:
    if operand.field in PRICE_COMPOSITES:
        components, divisor = PRICE_COMPOSITES[operand.field]
        # Composites always read the current bar
        terms = " + ".join(
            _column_ref(_price_column(c, operand.timeframe, ctx), 0, ctx, previous) for c in components
        )
        return f"({terms}) / {divisor}"
    if operand.field not in OHLCV_FIELDS:
        raise SemanticError(f"unknown price field: {operand.field}")
    column = _price_column(operand.field, operand.timeframe, ctx)
    return _column_ref(column, operand.offset, ctx, previous)


# =============================================================================
# Context operands
# =============================================================================


def _trade_context(operand: TradeContextOperand, ctx: GenerationContext) -> str:
    if not ctx.scope.is_callback:
        raise SemanticError(
            f"trade context field '{operand.field}' is only available in callbacks"
        )
    fields = trade_context_fields(ctx.scope)
    expr = fields.get(operand.field)
    if expr is None:
        raise SemanticError(
            f"unknown trade context field for {ctx.scope.value}: {operand.field}"
        )
    return expr


def _time(operand: TimeOperand, ctx: GenerationContext) -> str:
    if operand.timezone is not None and not _TIMEZONE_RE.match(operand.timezone):
        raise SemanticError(f"invalid timezone '{operand.timezone}'")

    if ctx.scope.is_callback:
        template = _CALLBACK_TIME_FIELDS.get(operand.field)
        if template is None:
            raise SemanticError(f"unknown time field: {operand.field}")
        ctx.add_import(ImportId.DATETIME)
        now = "current_time"
        if operand.timezone:
            ctx.add_import(ImportId.PANDAS)
            now = f"pd.Timestamp(current_time).tz_convert('{operand.timezone}')"
        return template.format(now=now)

    template = _VECTORIZED_TIME_FIELDS.get(operand.field)
    if template is None:
        raise SemanticError(f"unknown time field: {operand.field}")
    ctx.add_import(ImportId.PANDAS)
    date = "dataframe['date']"
    if operand.timezone:
        date = f"{date}.dt.tz_convert('{operand.timezone}')"
    return template.format(date=date)


def _market(operand: MarketOperand, ctx: GenerationContext) -> str:
    if operand.field not in MARKET_FIELDS:
        raise SemanticError(f"unknown market field: {operand.field}")
    expr = f"self.dp.get_analyzed_dataframe('{operand.field}', self.timeframe)[0]['{operand.field}']"
    if ctx.scope.is_callback:
        return f"{expr}.iloc[-1]"
    return expr


def _delegate(kind: OperandType, key: str, operand: Operand, ctx: GenerationContext) -> str:
    handler = ctx.get_operand_handler(kind.value, key)
    if handler is None:
        raise SemanticError(f"no handler registered for {kind.value} operand '{key}'")
    return handler(operand, ctx)


# =============================================================================
# Computed operands
# =============================================================================


def check_computed_arity(operand: ComputedOperand) -> None:
    """Raise SchemaError when the operand count does not fit the operation."""
    minimum, maximum = _COMPUTED_ARITY[operand.operation]
    count = len(operand.operands)
    if count < minimum or (maximum is not None and count > maximum):
        if maximum == minimum:
            expected = f"exactly {minimum}"
        else:
            expected = f"at least {minimum}"
        raise SchemaError(
            f"{operand.operation.value} expects {expected} operand(s), got {count}"
        )


def _term(operand: Operand, ctx: GenerationContext, previous: bool) -> str:
    """Child expression safe to embed next to arithmetic operators."""
    expr = generate_operand(operand, ctx, previous)
    if isinstance(operand, PriceOperand) and operand.field in PRICE_COMPOSITES:
        return f"({expr})"
    return expr


def _computed(operand: ComputedOperand, ctx: GenerationContext, previous: bool) -> str:
    check_computed_arity(operand)
    terms = [_term(child, ctx, previous) for child in operand.operands]
    op = operand.operation
    callback = ctx.scope.is_callback

    match op:
        case (
            ComputedOperation.ADD
            | ComputedOperation.SUBTRACT
            | ComputedOperation.MULTIPLY
            | ComputedOperation.DIVIDE
            | ComputedOperation.SUM
        ):
            return f"({_FOLD_SYMBOLS[op].join(terms)})"
        case ComputedOperation.MIN | ComputedOperation.MAX:
            if callback:
                return f"{op.value}({', '.join(terms)})"
            ctx.add_import(ImportId.NUMPY)
            function = "np.minimum" if op == ComputedOperation.MIN else "np.maximum"
            expr = terms[0]
            for term in terms[1:]:
                expr = f"{function}({expr}, {term})"
            return expr
        case ComputedOperation.ABS:
            return f"abs({terms[0]})"
        case ComputedOperation.ROUND:
            if callback:
                if operand.precision:
                    return f"round({terms[0]}, {operand.precision})"
                return f"round({terms[0]})"
            ctx.add_import(ImportId.NUMPY)
            if operand.precision:
                return f"np.round({terms[0]}, {operand.precision})"
            return f"np.round({terms[0]})"
        case ComputedOperation.FLOOR | ComputedOperation.CEIL:
            ctx.add_import(ImportId.NUMPY)
            return f"np.{op.value}({terms[0]})"
        case ComputedOperation.PERCENT_CHANGE:
            a, b = terms
            return f"(({a} - {b}) / {b} * 100)"
        case ComputedOperation.AVERAGE:
            ctx.add_import(ImportId.NUMPY)
            if callback:
                return f"np.mean([{', '.join(terms)}])"
            return f"np.mean([{', '.join(terms)}], axis=0)"
        case _:
            raise SchemaError(f"unknown computed operation: {op}")
