"""Indicator template registry.

Maps indicator kinds to template functions that emit the dataframe
assignment statements for populate_indicators(). Multi-output indicators
name their columns `<id>` for the primary output and `<id>_<suffix>` for
each secondary output.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from src.codegen.context import ImportId
from src.codegen.errors import CodegenError, SchemaError
from src.codegen.ir import IndicatorDefinition, IndicatorType

if TYPE_CHECKING:
    from src.codegen.context import GenerationContext

logger = logging.getLogger(__name__)

# Type alias for template functions: (indicator id, params) -> statements
IndicatorTemplate = Callable[[str, dict[str, Any]], str]

_COLUMN_ID_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# =============================================================================
# Parameter readers
# =============================================================================


def _int_param(params: dict[str, Any], key: str, default: int) -> int:
    """Read an integer parameter; floats are truncated, anything else falls back."""
    value = params.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return default


def _float_param(params: dict[str, Any], key: str, default: float) -> float:
    value = params.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return default


def _str_param(params: dict[str, Any], key: str, default: str) -> str:
    """Read a string parameter that ends up as a column name in generated code."""
    value = params.get(key)
    if not isinstance(value, str):
        return default
    if not _IDENTIFIER_RE.match(value):
        raise SchemaError(f"invalid value {value!r} for parameter '{key}'")
    return value


def validate_indicator_id(indicator_id: str) -> str:
    """Reject ids that cannot be embedded in a quoted column reference."""
    if not _COLUMN_ID_RE.match(indicator_id):
        raise SchemaError(f"invalid indicator id {indicator_id!r}")
    return indicator_id


# =============================================================================
# Multi-line templates
# =============================================================================


def _moving_average(function: str, default_period: int) -> IndicatorTemplate:
    def template(ind_id: str, p: dict[str, Any]) -> str:
        source = _str_param(p, "source", "close")
        period = _int_param(p, "period", default_period)
        return f"dataframe['{ind_id}'] = ta.{function}(dataframe['{source}'], timeperiod={period})"

    return template


def _macd(ind_id: str, p: dict[str, Any]) -> str:
    fast = _int_param(p, "fast", 12)
    slow = _int_param(p, "slow", 26)
    signal = _int_param(p, "signal", 9)
    return (
        f"macd = ta.MACD(dataframe, fastperiod={fast}, slowperiod={slow}, signalperiod={signal})\n"
        f"dataframe['{ind_id}'] = macd['macd']\n"
        f"dataframe['{ind_id}_signal'] = macd['macdsignal']\n"
        f"dataframe['{ind_id}_histogram'] = macd['macdhist']"
    )


def _bollinger(ind_id: str, p: dict[str, Any]) -> str:
    period = _int_param(p, "period", 20)
    std_dev = _float_param(p, "std_dev", 2.0)
    return (
        f"bollinger = ta.BBANDS(dataframe, timeperiod={period}, "
        f"nbdevup={std_dev!r}, nbdevdn={std_dev!r}, matype=0)\n"
        f"dataframe['{ind_id}_upper'] = bollinger['upperband']\n"
        f"dataframe['{ind_id}_middle'] = bollinger['middleband']\n"
        f"dataframe['{ind_id}_lower'] = bollinger['lowerband']\n"
        f"dataframe['{ind_id}_width'] = "
        f"(bollinger['upperband'] - bollinger['lowerband']) / bollinger['middleband']"
    )


def _keltner(ind_id: str, p: dict[str, Any]) -> str:
    period = _int_param(p, "period", 20)
    multiplier = _float_param(p, "multiplier", 2.0)
    atr_period = _int_param(p, "atr_period", 10)
    return (
        "# Keltner Channel\n"
        f"kc_middle = ta.EMA(dataframe, timeperiod={period})\n"
        f"kc_atr = ta.ATR(dataframe, timeperiod={atr_period})\n"
        f"dataframe['{ind_id}_upper'] = kc_middle + ({multiplier!r} * kc_atr)\n"
        f"dataframe['{ind_id}_middle'] = kc_middle\n"
        f"dataframe['{ind_id}_lower'] = kc_middle - ({multiplier!r} * kc_atr)"
    )


def _stoch(ind_id: str, p: dict[str, Any]) -> str:
    k_period = _int_param(p, "k", 14)
    d_period = _int_param(p, "d", 3)
    smooth = _int_param(p, "smooth", 3)
    return (
        f"stoch = ta.STOCH(dataframe, fastk_period={k_period}, slowk_period={smooth}, "
        f"slowk_matype=0, slowd_period={d_period}, slowd_matype=0)\n"
        f"dataframe['{ind_id}_k'] = stoch['slowk']\n"
        f"dataframe['{ind_id}_d'] = stoch['slowd']"
    )


def _stoch_rsi(ind_id: str, p: dict[str, Any]) -> str:
    period = _int_param(p, "period", 14)
    k_period = _int_param(p, "k", 3)
    d_period = _int_param(p, "d", 3)
    return (
        f"stochrsi = ta.STOCHRSI(dataframe, timeperiod={period}, fastk_period={k_period}, "
        f"fastd_period={d_period}, fastd_matype=0)\n"
        f"dataframe['{ind_id}_k'] = stochrsi['fastk']\n"
        f"dataframe['{ind_id}_d'] = stochrsi['fastd']"
    )


def _adx(ind_id: str, p: dict[str, Any]) -> str:
    period = _int_param(p, "period", 14)
    return (
        f"dataframe['{ind_id}'] = ta.ADX(dataframe, timeperiod={period})\n"
        f"dataframe['{ind_id}_plus_di'] = ta.PLUS_DI(dataframe, timeperiod={period})\n"
        f"dataframe['{ind_id}_minus_di'] = ta.MINUS_DI(dataframe, timeperiod={period})"
    )


def _cmf(ind_id: str, p: dict[str, Any]) -> str:
    period = _int_param(p, "period", 20)
    return (
        "# Chaikin Money Flow\n"
        "mfv = ((dataframe['close'] - dataframe['low']) - (dataframe['high'] - dataframe['close']))"
        " / (dataframe['high'] - dataframe['low']) * dataframe['volume']\n"
        f"dataframe['{ind_id}'] = mfv.rolling({period}).sum()"
        f" / dataframe['volume'].rolling({period}).sum()"
    )


def _ichimoku(ind_id: str, p: dict[str, Any]) -> str:
    conv = _int_param(p, "conv", 9)
    base = _int_param(p, "base", 26)
    span = _int_param(p, "span", 52)
    return (
        "# Ichimoku Cloud\n"
        f"dataframe['{ind_id}_tenkan'] = "
        f"(dataframe['high'].rolling({conv}).max() + dataframe['low'].rolling({conv}).min()) / 2\n"
        f"dataframe['{ind_id}_kijun'] = "
        f"(dataframe['high'].rolling({base}).max() + dataframe['low'].rolling({base}).min()) / 2\n"
        f"dataframe['{ind_id}_senkou_a'] = "
        f"((dataframe['{ind_id}_tenkan'] + dataframe['{ind_id}_kijun']) / 2).shift({base})\n"
        f"dataframe['{ind_id}_senkou_b'] = "
        f"((dataframe['high'].rolling({span}).max() + dataframe['low'].rolling({span}).min()) / 2)"
        f".shift({base})"
    )


def _pivot(ind_id: str, p: dict[str, Any]) -> str:
    return (
        "# Pivot Points (classic, previous candle)\n"
        "pivot_high = dataframe['high'].shift(1)\n"
        "pivot_low = dataframe['low'].shift(1)\n"
        "pivot_close = dataframe['close'].shift(1)\n"
        f"dataframe['{ind_id}'] = (pivot_high + pivot_low + pivot_close) / 3\n"
        f"dataframe['{ind_id}_r1'] = (2 * dataframe['{ind_id}']) - pivot_low\n"
        f"dataframe['{ind_id}_s1'] = (2 * dataframe['{ind_id}']) - pivot_high\n"
        f"dataframe['{ind_id}_r2'] = dataframe['{ind_id}'] + (pivot_high - pivot_low)\n"
        f"dataframe['{ind_id}_s2'] = dataframe['{ind_id}'] - (pivot_high - pivot_low)"
    )


def _supertrend(ind_id: str, p: dict[str, Any]) -> str:
    period = _int_param(p, "period", 10)
    multiplier = _float_param(p, "multiplier", 3.0)
    return (
        "# Supertrend\n"
        f"atr = ta.ATR(dataframe, timeperiod={period})\n"
        "hl2 = (dataframe['high'] + dataframe['low']) / 2\n"
        f"dataframe['{ind_id}_upper'] = hl2 + ({multiplier!r} * atr)\n"
        f"dataframe['{ind_id}_lower'] = hl2 - ({multiplier!r} * atr)"
    )


# =============================================================================
# Registry
# =============================================================================

# Registry mapping built-in indicator kinds to template functions
INDICATOR_TEMPLATES: dict[IndicatorType, IndicatorTemplate] = {
    IndicatorType.RSI: lambda id, p: (
        f"dataframe['{id}'] = ta.RSI(dataframe, timeperiod={_int_param(p, 'period', 14)})"
    ),
    IndicatorType.SMA: _moving_average("SMA", 20),
    IndicatorType.EMA: _moving_average("EMA", 20),
    IndicatorType.WMA: _moving_average("WMA", 20),
    IndicatorType.DEMA: _moving_average("DEMA", 20),
    IndicatorType.TEMA: _moving_average("TEMA", 20),
    IndicatorType.KAMA: _moving_average("KAMA", 30),
    IndicatorType.MACD: _macd,
    IndicatorType.BB: _bollinger,
    IndicatorType.KC: _keltner,
    IndicatorType.STOCH: _stoch,
    IndicatorType.STOCH_RSI: _stoch_rsi,
    IndicatorType.ATR: lambda id, p: (
        f"dataframe['{id}'] = ta.ATR(dataframe, timeperiod={_int_param(p, 'period', 14)})"
    ),
    IndicatorType.ADX: _adx,
    IndicatorType.CCI: lambda id, p: (
        f"dataframe['{id}'] = ta.CCI(dataframe, timeperiod={_int_param(p, 'period', 20)})"
    ),
    IndicatorType.WILLR: lambda id, p: (
        f"dataframe['{id}'] = ta.WILLR(dataframe, timeperiod={_int_param(p, 'period', 14)})"
    ),
    IndicatorType.MOM: lambda id, p: (
        f"dataframe['{id}'] = ta.MOM(dataframe, timeperiod={_int_param(p, 'period', 10)})"
    ),
    IndicatorType.ROC: lambda id, p: (
        f"dataframe['{id}'] = ta.ROC(dataframe, timeperiod={_int_param(p, 'period', 10)})"
    ),
    IndicatorType.OBV: lambda id, p: f"dataframe['{id}'] = ta.OBV(dataframe)",
    IndicatorType.MFI: lambda id, p: (
        f"dataframe['{id}'] = ta.MFI(dataframe, timeperiod={_int_param(p, 'period', 14)})"
    ),
    IndicatorType.VWAP: lambda id, p: f"dataframe['{id}'] = qtpylib.rolling_vwap(dataframe)",
    IndicatorType.CMF: _cmf,
    IndicatorType.AD: lambda id, p: f"dataframe['{id}'] = ta.AD(dataframe)",
    IndicatorType.ICHIMOKU: _ichimoku,
    IndicatorType.SAR: lambda id, p: (
        f"dataframe['{id}'] = ta.SAR(dataframe, "
        f"acceleration={_float_param(p, 'acceleration', 0.02)!r}, "
        f"maximum={_float_param(p, 'maximum', 0.2)!r})"
    ),
    IndicatorType.PIVOT: _pivot,
    IndicatorType.SUPERTREND: _supertrend,
}

# Imports each template relies on; kinds not listed use plain pandas operations
INDICATOR_IMPORTS: dict[IndicatorType, tuple[ImportId, ...]] = {
    kind: (ImportId.TALIB,)
    for kind in INDICATOR_TEMPLATES
    if kind not in (IndicatorType.VWAP, IndicatorType.CMF, IndicatorType.ICHIMOKU, IndicatorType.PIVOT)
}
INDICATOR_IMPORTS[IndicatorType.VWAP] = (ImportId.QTPYLIB,)

# Column suffixes each kind produces; "" is the bare `<id>` column
INDICATOR_OUTPUTS: dict[IndicatorType, tuple[str, ...]] = {
    kind: ("",) for kind in INDICATOR_TEMPLATES
}
INDICATOR_OUTPUTS.update(
    {
        IndicatorType.MACD: ("", "signal", "histogram"),
        IndicatorType.BB: ("upper", "middle", "lower", "width"),
        IndicatorType.KC: ("upper", "middle", "lower"),
        IndicatorType.STOCH: ("k", "d"),
        IndicatorType.STOCH_RSI: ("k", "d"),
        IndicatorType.ADX: ("", "plus_di", "minus_di"),
        IndicatorType.ICHIMOKU: ("tenkan", "kijun", "senkou_a", "senkou_b"),
        IndicatorType.PIVOT: ("", "r1", "s1", "r2", "s2"),
        IndicatorType.SUPERTREND: ("upper", "lower"),
    }
)


# =============================================================================
# Public API
# =============================================================================


def generate_indicator(definition: IndicatorDefinition, ctx: GenerationContext) -> str:
    """Generate the populate_indicators() statements for one indicator.

    Args:
        definition: The configured indicator.
        ctx: Generation context accumulating required imports.

    Returns:
        Newline-joined assignment statements.

    Raises:
        SchemaError: If the id or a string parameter cannot be embedded safely.
    """
    ind_id = validate_indicator_id(definition.id)

    if definition.type == IndicatorType.CUSTOM:
        return _generate_custom(definition, ctx)

    template = INDICATOR_TEMPLATES.get(definition.type)
    if template is None:
        raise SchemaError(f"unknown indicator type: {definition.type}")

    code = template(ind_id, definition.params)
    for name in INDICATOR_IMPORTS.get(definition.type, ()):
        ctx.add_import(name)
    logger.debug(f"Generated indicator {ind_id} ({definition.type.value})")
    return code


def _generate_custom(definition: IndicatorDefinition, ctx: GenerationContext) -> str:
    plugin = definition.plugin
    if plugin is not None and plugin.python_code:
        for name in plugin.required_imports:
            ctx.add_import(name)
        return plugin.python_code
    logger.warning(f"Custom indicator {definition.id} has no code, emitting placeholder")
    return f"# Custom indicator '{definition.id}' - no code provided"


def generate_all_indicators(
    definitions: Iterable[IndicatorDefinition], ctx: GenerationContext
) -> str:
    """Generate statements for every indicator, failing on the first error.

    Raises:
        CodegenError: Same class as the per-indicator failure, with the
            offending indicator id prefixed to the message.
    """
    blocks: list[str] = []
    for definition in definitions:
        try:
            blocks.append(generate_indicator(definition, ctx))
        except CodegenError as e:
            raise type(e)(f"failed to generate indicator {definition.id}: {e.message}") from e
    return "\n".join(blocks)


def indicator_column(indicator_id: str, field: str | None = None) -> str:
    """Column name for an indicator output."""
    return f"{indicator_id}_{field}" if field else indicator_id


def indicator_fields(kind: IndicatorType) -> tuple[str, ...] | None:
    """Known output fields for a built-in kind, None for CUSTOM."""
    return INDICATOR_OUTPUTS.get(kind)
