"""Tests for operand_builder module."""

from __future__ import annotations

import pytest

from src.codegen.compiler.operand_builder import format_constant, generate_operand, timeframe_to_minutes
from src.codegen.context import GenerationScope
from src.codegen.errors import SchemaError, SemanticError
from src.codegen.ir import OperandType
from tests.conftest import (
    computed,
    constant,
    indicator,
    make_ctx,
    operand,
    price,
    time_field,
    trade_context,
)


def _gen(data, ctx, previous=False):
    return generate_operand(operand(data), ctx, previous=previous)


# =============================================================================
# Constants
# =============================================================================


class TestFormatConstant:
    """Literal formatting."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (30, "30"),
            (0.05, "0.05"),
            ("test", '"test"'),
            (True, "True"),
            (False, "False"),
            (None, "None"),
            ([1, "a"], '[1, "a"]'),
        ],
    )
    def test_formats(self, value, expected):
        assert format_constant(value) == expected

    def test_quotes_are_escaped(self):
        assert format_constant('say "hi"') == '"say \\"hi\\""'

    def test_non_finite_float_rejected(self):
        with pytest.raises(SchemaError):
            format_constant(float("inf"))

    def test_constant_operand(self, ctx):
        assert _gen(constant(30), ctx) == "30"
        assert _gen(constant(0.05), ctx) == "0.05"


# =============================================================================
# Indicators and prices
# =============================================================================


class TestIndicatorOperand:
    """INDICATOR column references."""

    def test_primary_column(self, ctx):
        assert _gen(indicator("rsi_1"), ctx) == "dataframe['rsi_1']"

    def test_field_suffix(self, ctx):
        assert _gen(indicator("macd_1", field="signal"), ctx) == "dataframe['macd_1_signal']"

    def test_offset_shifts(self, ctx):
        assert _gen(indicator("rsi_1", offset=2), ctx) == "dataframe['rsi_1'].shift(2)"

    def test_multi_output_requires_field(self, ctx):
        with pytest.raises(SemanticError, match="requires a field"):
            _gen(indicator("bb_1"), ctx)

    def test_unknown_field_rejected(self, ctx):
        with pytest.raises(SemanticError, match="has no field 'bogus'"):
            _gen(indicator("bb_1", field="bogus"), ctx)

    def test_unregistered_indicator_still_renders(self, ctx):
        assert _gen(indicator("later_1"), ctx) == "dataframe['later_1']"

    def test_unsafe_id_rejected(self, ctx):
        with pytest.raises(SchemaError, match="invalid indicator id"):
            _gen(indicator("rsi']; import os; x=['"), ctx)

    def test_no_imports_added(self, ctx):
        _gen(indicator("rsi_1"), ctx)
        assert ctx.required_imports() == []


class TestPriceOperand:
    """PRICE fields and composites."""

    def test_ohlcv_field(self, ctx):
        assert _gen(price("close"), ctx) == "dataframe['close']"

    def test_offset(self, ctx):
        assert _gen(price("high", offset=1), ctx) == "dataframe['high'].shift(1)"

    def test_ohlc4(self, ctx):
        assert _gen(price("ohlc4"), ctx) == (
            "(dataframe['open'] + dataframe['high'] + dataframe['low'] + dataframe['close']) / 4"
        )

    def test_hlc3(self, ctx):
        assert _gen(price("hlc3"), ctx) == (
            "(dataframe['high'] + dataframe['low'] + dataframe['close']) / 3"
        )

    def test_hl2_ignores_offset(self, ctx):
        assert _gen(price("hl2", offset=3), ctx) == "(dataframe['high'] + dataframe['low']) / 2"

    def test_timeframe_suffix(self, ctx):
        assert _gen(price("close", timeframe="1h"), ctx) == "dataframe['close_1h']"
        assert ctx.informative_timeframes == {"1h"}

    def test_composite_timeframe_suffix(self, ctx):
        result = _gen(price("hl2", timeframe="4h"), ctx)
        assert result == "(dataframe['high_4h'] + dataframe['low_4h']) / 2"
        assert ctx.informative_timeframes == {"4h"}

    def test_strategy_timeframe_reads_base_column(self):
        ctx = make_ctx()
        ctx.timeframe = "1h"
        assert _gen(price("close", timeframe="60m"), ctx) == "dataframe['close']"
        assert ctx.informative_timeframes == set()

    def test_shorter_than_strategy_timeframe_rejected(self):
        ctx = make_ctx()
        ctx.timeframe = "1h"
        with pytest.raises(SemanticError, match="shorter than the strategy timeframe"):
            _gen(price("close", timeframe="15m"), ctx)

    def test_informative_read_in_callback(self):
        ctx = make_ctx(GenerationScope.STOPLOSS)
        assert _gen(price("close", timeframe="1d"), ctx) == "last_candle['close_1d']"
        assert ctx.informative_timeframes == {"1d"}

    def test_invalid_timeframe(self, ctx):
        with pytest.raises(SemanticError, match="invalid timeframe"):
            _gen(price("close", timeframe="1 hour"), ctx)

    def test_unknown_field(self, ctx):
        with pytest.raises(SemanticError, match="unknown price field"):
            _gen(price("typical"), ctx)


class TestCallbackColumns:
    """Column reads in callback scope."""

    @pytest.fixture
    def ctx(self):
        return make_ctx(GenerationScope.STOPLOSS)

    def test_last_candle(self, ctx):
        assert _gen(price("close"), ctx) == "last_candle['close']"

    def test_previous_candle(self, ctx):
        assert _gen(indicator("rsi_1"), ctx, previous=True) == "prev_candle['rsi_1']"

    def test_offset_uses_iloc(self, ctx):
        assert _gen(price("close", offset=2), ctx) == "dataframe['close'].iloc[-3]"

    def test_offset_and_previous(self, ctx):
        assert _gen(price("close", offset=1), ctx, previous=True) == "dataframe['close'].iloc[-3]"


# =============================================================================
# Context operands
# =============================================================================


class TestTimeOperand:
    """TIME calendar fields."""

    @pytest.mark.parametrize(
        "field,expected",
        [
            ("hour", "dataframe['date'].dt.hour"),
            ("day_of_week", "dataframe['date'].dt.dayofweek"),
            ("is_weekend", "(dataframe['date'].dt.dayofweek >= 5)"),
            ("month", "dataframe['date'].dt.month"),
        ],
    )
    def test_vectorized_fields(self, ctx, field, expected):
        assert _gen(time_field(field), ctx) == expected
        assert "pandas" in ctx.required_imports()

    def test_timezone_conversion(self, ctx):
        assert _gen(time_field("hour", "UTC"), ctx) == "dataframe['date'].dt.tz_convert('UTC').dt.hour"

    def test_callback_weekend(self):
        ctx = make_ctx(GenerationScope.LEVERAGE)
        assert _gen(time_field("is_weekend"), ctx) == "(current_time.weekday() >= 5)"
        assert ctx.required_imports() == ["datetime"]

    def test_trading_session_is_unknown(self, ctx):
        assert _gen(time_field("trading_session"), ctx) == "'unknown'"
        assert _gen(time_field("trading_session"), make_ctx(GenerationScope.CUSTOM_EXIT)) == "'unknown'"

    def test_unknown_field(self, ctx):
        with pytest.raises(SemanticError, match="unknown time field"):
            _gen(time_field("fortnight"), ctx)

    def test_unsafe_timezone(self, ctx):
        with pytest.raises(SemanticError, match="invalid timezone"):
            _gen(time_field("hour", "UTC'); x('"), ctx)


class TestTradeContextOperand:
    """TRADE_CONTEXT per-scope tables."""

    def test_rejected_in_vectorized_scope(self, ctx):
        with pytest.raises(SemanticError):
            _gen(trade_context("current_profit"), ctx)

    def test_stoploss_profit(self):
        assert _gen(trade_context("current_profit"), make_ctx(GenerationScope.STOPLOSS)) == "current_profit"

    def test_leverage_is_short(self):
        assert _gen(trade_context("is_short"), make_ctx(GenerationScope.LEVERAGE)) == "is_short"

    def test_confirm_entry_stake(self):
        ctx = make_ctx(GenerationScope.CONFIRM_ENTRY)
        assert _gen(trade_context("stake_amount"), ctx) == "(amount * rate)"

    @pytest.mark.parametrize(
        "scope",
        [
            GenerationScope.STOPLOSS,
            GenerationScope.CUSTOM_EXIT,
            GenerationScope.LEVERAGE,
            GenerationScope.CONFIRM_ENTRY,
        ],
    )
    def test_market_microstructure_placeholders(self, scope):
        ctx = make_ctx(scope)
        assert _gen(trade_context("volume_ratio"), ctx) == "1.0"
        assert _gen(trade_context("spread_pct"), ctx) == "0.0"

    def test_placeholders_still_rejected_in_vectorized_scope(self, ctx):
        with pytest.raises(SemanticError, match="only available in callbacks"):
            _gen(trade_context("volume_ratio"), ctx)

    def test_unknown_field(self):
        with pytest.raises(SemanticError, match="unknown trade context field"):
            _gen(trade_context("current_profit"), make_ctx(GenerationScope.LEVERAGE))


class TestMarketAndDelegatedOperands:
    """MARKET fields and EXTERNAL/CUSTOM handlers."""

    def test_market_field(self, ctx):
        assert _gen({"type": "MARKET", "field": "btc_dominance"}, ctx) == (
            "self.dp.get_analyzed_dataframe('btc_dominance', self.timeframe)[0]['btc_dominance']"
        )

    def test_unknown_market_field(self, ctx):
        with pytest.raises(SemanticError, match="unknown market field"):
            _gen({"type": "MARKET", "field": "moon_phase"}, ctx)

    def test_external_without_handler(self, ctx):
        with pytest.raises(SemanticError, match="no handler registered"):
            _gen({"type": "EXTERNAL", "sourceId": "funding", "field": "rate"}, ctx)

    def test_external_handler(self, ctx):
        ctx.register_operand_handler(
            OperandType.EXTERNAL.value,
            "funding",
            lambda op, c: f"dataframe['funding_{op.field}']",
        )
        result = _gen({"type": "EXTERNAL", "sourceId": "funding", "field": "rate"}, ctx)
        assert result == "dataframe['funding_rate']"

    def test_custom_handler(self, ctx):
        ctx.register_operand_handler(OperandType.CUSTOM.value, "sentiment", lambda op, c: "0.5")
        assert _gen({"type": "CUSTOM", "pluginId": "sentiment"}, ctx) == "0.5"


# =============================================================================
# Computed operands
# =============================================================================


class TestComputedOperand:
    """COMPUTED operations."""

    def test_add(self, ctx):
        assert _gen(computed("add", indicator("ema_fast"), constant(5)), ctx) == "(dataframe['ema_fast'] + 5)"

    def test_divide_folds_left(self, ctx):
        result = _gen(computed("divide", price("close"), price("open"), constant(2)), ctx)
        assert result == "(dataframe['close'] / dataframe['open'] / 2)"

    def test_abs(self, ctx):
        assert _gen(computed("abs", indicator("rsi_1")), ctx) == "abs(dataframe['rsi_1'])"

    def test_round(self, ctx):
        assert _gen(computed("round", indicator("rsi_1")), ctx) == "np.round(dataframe['rsi_1'])"
        assert "numpy" in ctx.required_imports()

    def test_round_precision(self, ctx):
        result = _gen(computed("round", indicator("rsi_1"), precision=2), ctx)
        assert result == "np.round(dataframe['rsi_1'], 2)"

    def test_floor_and_ceil(self, ctx):
        assert _gen(computed("floor", indicator("rsi_1")), ctx) == "np.floor(dataframe['rsi_1'])"
        assert _gen(computed("ceil", indicator("rsi_1")), ctx) == "np.ceil(dataframe['rsi_1'])"

    def test_percent_change(self, ctx):
        result = _gen(computed("percent_change", price("close"), price("open")), ctx)
        assert result == "((dataframe['close'] - dataframe['open']) / dataframe['open'] * 100)"

    def test_min_nests_binary_calls(self, ctx):
        result = _gen(computed("min", price("open"), price("close"), price("low")), ctx)
        assert result == (
            "np.minimum(np.minimum(dataframe['open'], dataframe['close']), dataframe['low'])"
        )

    def test_max_in_callback_uses_builtin(self):
        ctx = make_ctx(GenerationScope.LEVERAGE)
        result = _gen(computed("max", indicator("rsi_1"), constant(1)), ctx)
        assert result == "max(last_candle['rsi_1'], 1)"

    def test_average_is_elementwise(self, ctx):
        result = _gen(computed("average", price("open"), price("close")), ctx)
        assert result == "np.mean([dataframe['open'], dataframe['close']], axis=0)"

    def test_composite_price_is_grouped(self, ctx):
        result = _gen(computed("subtract", price("close"), price("hl2")), ctx)
        assert result == "(dataframe['close'] - ((dataframe['high'] + dataframe['low']) / 2))"

    def test_nested_computed(self, ctx):
        inner = computed("subtract", price("high"), price("low"))
        result = _gen(computed("multiply", inner, constant(0.5)), ctx)
        assert result == "((dataframe['high'] - dataframe['low']) * 0.5)"

    def test_abs_arity_checked(self, ctx):
        with pytest.raises(SchemaError, match="abs expects exactly 1 operand"):
            _gen(computed("abs", price("open"), price("close")), ctx)

    def test_percent_change_arity_checked(self, ctx):
        with pytest.raises(SchemaError, match="percent_change expects exactly 2"):
            _gen(computed("percent_change", price("open")), ctx)

    def test_fold_arity_checked(self, ctx):
        with pytest.raises(SchemaError, match="add expects at least 2 operand"):
            _gen(computed("add", price("open")), ctx)


class TestTimeframeToMinutes:
    """Candle lengths."""

    @pytest.mark.parametrize(
        "timeframe,minutes",
        [("30s", 0.5), ("5m", 5), ("1h", 60), ("4h", 240), ("1d", 1440), ("1w", 10080), ("1M", 43200)],
    )
    def test_units(self, timeframe, minutes):
        assert timeframe_to_minutes(timeframe) == minutes

    def test_invalid(self):
        with pytest.raises(SemanticError, match="invalid timeframe"):
            timeframe_to_minutes("hourly")
