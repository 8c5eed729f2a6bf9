"""Tests for document validation."""

from src.codegen.ir import UIBuilderConfig
from src.codegen.validator import validate_config
from tests.conftest import (
    and_,
    compare,
    computed,
    constant,
    indicator,
    indicator_def,
    make_document,
    price,
    rsi_below,
    time_field,
    trade_context,
)


def _validate(**overrides):
    return validate_config(UIBuilderConfig.model_validate(make_document(**overrides)))


def _paths(issues):
    return [issue.path for issue in issues]


class TestValidDocuments:
    """Documents that generate cleanly."""

    def test_default_document_is_complete(self):
        result = _validate()
        assert result.is_valid
        assert result.is_complete

    def test_disabled_nodes_not_checked(self):
        tree = and_(rsi_below(30), compare(indicator("nope"), "gt", constant(1), disabled=True))
        result = _validate(long={"entry_conditions": tree})
        assert result.is_valid


class TestErrors:
    """Referential integrity failures."""

    def test_undefined_indicator(self):
        result = _validate(long={"entry_conditions": and_(rsi_below(30, indicator_id="rsi_9"))})
        assert not result.is_valid
        assert _paths(result.errors) == ["long.entry_conditions.children[0].left"]
        assert "undefined indicator 'rsi_9'" in result.errors[0].message

    def test_undefined_indicator_in_computed(self):
        tree = compare(computed("add", indicator("ghost"), constant(1)), "gt", constant(0))
        result = _validate(long={"exit_conditions": tree})
        assert _paths(result.errors) == ["long.exit_conditions.left.operands[0]"]

    def test_duplicate_indicator_ids(self):
        result = _validate(indicators=[indicator_def("rsi_1", "RSI"), indicator_def("rsi_1", "RSI")])
        assert any("Duplicate indicator id 'rsi_1'" in e.message for e in result.errors)

    def test_between_operator(self):
        tree = compare(indicator("rsi_1"), "between", constant(30))
        result = _validate(long={"entry_conditions": tree})
        assert _paths(result.errors) == ["long.entry_conditions.operator"]

    def test_trade_context_in_signals(self):
        tree = compare(trade_context("current_profit"), "gt", constant(0))
        result = _validate(long={"entry_conditions": tree})
        assert "only available in callbacks" in result.errors[0].message

    def test_computed_arity(self):
        tree = compare(computed("abs", indicator("rsi_1"), indicator("rsi_1")), "gt", constant(0))
        result = _validate(long={"entry_conditions": tree})
        assert "abs expects exactly 1 operand(s), got 2" in result.errors[0].message

    def test_mirror_source_missing(self):
        result = _validate(mirror_config={"enabled": True, "source": "SHORT"})
        assert _paths(result.errors) == ["mirror_config.source"]

    def test_legacy_trees_checked(self):
        result = _validate(long=None, entry_conditions=rsi_below(30, indicator_id="old_rsi"))
        assert _paths(result.errors) == ["entry_conditions.left"]


    def test_unknown_indicator_output(self):
        tree = compare(indicator("macd_1", field="bogus"), "gt", constant(0))
        result = _validate(long={"entry_conditions": tree})
        assert _paths(result.errors) == ["long.entry_conditions.left.field"]
        assert "has no field 'bogus'" in result.errors[0].message

    def test_multi_output_indicator_needs_field(self):
        tree = compare(indicator("bb_1"), "gt", price("close"))
        result = _validate(long={"entry_conditions": tree})
        assert "requires a field" in result.errors[0].message

    def test_known_indicator_output_accepted(self):
        tree = compare(indicator("macd_1", field="signal"), "gt", indicator("bb_1", field="upper"))
        assert _validate(long={"entry_conditions": tree}).is_valid

    def test_unknown_price_time_and_market_fields(self):
        tree = and_(
            compare(price("typical"), "gt", constant(1)),
            compare(time_field("fortnight"), "eq", constant(1)),
            compare({"type": "MARKET", "field": "moon_phase"}, "gt", constant(1)),
        )
        result = _validate(long={"entry_conditions": tree})
        assert _paths(result.errors) == [
            "long.entry_conditions.children[0].left.field",
            "long.entry_conditions.children[1].left.field",
            "long.entry_conditions.children[2].left.field",
        ]

    def test_invalid_price_timeframe(self):
        tree = compare(price("close", timeframe="1 hour"), "gt", constant(1))
        result = _validate(long={"entry_conditions": tree})
        assert _paths(result.errors) == ["long.entry_conditions.left.timeframe"]

    def test_known_fields_accepted(self):
        tree = and_(
            compare(price("hl2", timeframe="1h"), "gt", price("close")),
            compare(time_field("trading_session"), "eq", constant("asia")),
            compare({"type": "MARKET", "field": "fear_greed_index"}, "lt", constant(25)),
        )
        assert _validate(long={"entry_conditions": tree}).is_valid

class TestCallbackTrees:
    """Callback rule trees allow trade context but still need indicators."""

    def test_stoploss_rule_trade_context_allowed(self):
        callbacks = {
            "custom_stoploss": {
                "enabled": True,
                "rules": [
                    {"condition": compare(trade_context("current_profit"), "gt", constant(0.05)), "stoploss": -0.02}
                ],
            }
        }
        assert _validate(callbacks=callbacks).is_valid

    def test_leverage_rule_undefined_indicator(self):
        callbacks = {
            "leverage": {
                "enabled": True,
                "rules": [
                    {
                        "condition": compare(indicator("missing"), "gt", constant(1)),
                        "leverage": {"type": "CONSTANT", "value": 2},
                    }
                ],
            }
        }
        result = _validate(callbacks=callbacks)
        assert _paths(result.errors) == ["callbacks.leverage.rules[0].condition.left"]

    def test_leverage_expression_operand_checked(self):
        callbacks = {
            "leverage": {
                "enabled": True,
                "rules": [{"leverage": {"type": "EXPRESSION", "operand": indicator("atr_9")}}],
            }
        }
        result = _validate(callbacks=callbacks)
        assert _paths(result.errors) == ["callbacks.leverage.rules[0].leverage.operand"]

    def test_disabled_leverage_rule_ignored(self):
        callbacks = {
            "leverage": {
                "enabled": True,
                "rules": [
                    {
                        "disabled": True,
                        "condition": compare(indicator("missing"), "gt", constant(1)),
                        "leverage": {"type": "CONSTANT", "value": 2},
                    }
                ],
            }
        }
        assert _validate(callbacks=callbacks).is_valid

    def test_trade_context_field_checked_per_callback(self):
        callbacks = {
            "confirm_entry": {
                "enabled": True,
                "rules": and_(
                    compare(trade_context("stake_amount"), "gt", constant(10)),
                    compare(trade_context("current_profit"), "gt", constant(0)),
                ),
            }
        }
        result = _validate(callbacks=callbacks)
        assert _paths(result.errors) == ["callbacks.confirm_entry.rules.children[1].left.field"]
        assert "for confirm_entry" in result.errors[0].message

    def test_placeholder_trade_context_fields_accepted(self):
        callbacks = {
            "custom_exit": {
                "enabled": True,
                "exit_strategies": [
                    {
                        "exit_condition": compare(trade_context("volume_ratio"), "gt", constant(2)),
                        "exit_tag": "volume_spike",
                    }
                ],
            }
        }
        assert _validate(callbacks=callbacks).is_valid

    def test_disabled_callback_ignored(self):
        callbacks = {"confirm_entry": {"enabled": False, "rules": rsi_below(30, indicator_id="x")}}
        assert _validate(callbacks=callbacks).is_valid


class TestWarnings:
    """Soft failures keep the document valid but incomplete."""

    def test_custom_indicator_without_code(self):
        result = _validate(indicators=[indicator_def("rsi_1", "RSI"), indicator_def("mine", "CUSTOM")])
        assert result.is_valid
        assert not result.is_complete
        assert _paths(result.warnings) == ["indicators[1]"]

    def test_unknown_position_mode(self):
        result = _validate(position_mode="SIDEWAYS")
        assert result.is_valid
        assert _paths(result.warnings) == ["position_mode"]
