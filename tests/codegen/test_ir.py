"""Tests for decoding UI builder documents into typed models."""

import pytest
from pydantic import ValidationError

from src.codegen.errors import SchemaError
from src.codegen.ir import (
    AndNode,
    CompareNode,
    ComparisonOperator,
    ConstantOperand,
    IfThenElseNode,
    IndicatorOperand,
    LeverageConstantValue,
    LeverageExpressionValue,
    LeverageRule,
    MirrorConfig,
    UIBuilderConfig,
    parse_condition,
    parse_operand,
    parse_ui_builder_config,
)
from tests.conftest import and_, constant, if_then_else, indicator, make_document, rsi_below


class TestConditionDecoding:
    """Discriminated-union decoding of condition trees."""

    def test_nested_tree(self):
        tree = parse_condition(and_(rsi_below(30, node_id="c1"), node_id="root"))
        assert isinstance(tree, AndNode)
        assert tree.id == "root"
        child = tree.children[0]
        assert isinstance(child, CompareNode)
        assert child.operator == ComparisonOperator.LT
        assert isinstance(child.left, IndicatorOperand)
        assert isinstance(child.right, ConstantOperand)

    def test_unknown_node_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_condition({"type": "XOR", "children": []})

    def test_unknown_operand_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_operand({"type": "ORACLE", "value": 1})

    def test_missing_required_field_rejected(self):
        with pytest.raises(ValidationError):
            parse_condition({"type": "NOT"})

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            parse_condition({"type": "COMPARE", "left": constant(1), "operator": "approx", "right": constant(1)})

    def test_else_key(self):
        tree = parse_condition(if_then_else(rsi_below(30), rsi_below(20), rsi_below(10)))
        assert isinstance(tree, IfThenElseNode)
        assert tree.else_ is not None

    def test_negative_offset_rejected(self):
        with pytest.raises(ValidationError):
            parse_operand({"type": "INDICATOR", "indicatorId": "rsi_1", "offset": -1})


class TestOperandDecoding:
    """JSON spellings and constant values."""

    def test_camel_and_snake_indicator_id(self):
        assert parse_operand(indicator("rsi_1")).indicator_id == "rsi_1"
        assert parse_operand({"type": "INDICATOR", "indicator_id": "rsi_2"}).indicator_id == "rsi_2"

    def test_indicator_id_serializes_camel_case(self):
        dumped = parse_operand(indicator("rsi_1")).model_dump(by_alias=True)
        assert dumped["indicatorId"] == "rsi_1"

    def test_constant_value_kinds_preserved(self):
        assert parse_operand(constant(30)).value == 30
        assert isinstance(parse_operand(constant(30)).value, int)
        assert parse_operand(constant(0.05)).value == 0.05
        assert parse_operand(constant(True)).value is True
        assert parse_operand(constant("x")).value == "x"
        assert parse_operand(constant(None)).value is None

    def test_value_type_hint(self):
        assert parse_operand({"type": "CONSTANT", "value": 1, "valueType": "number"}).value_type == "number"


class TestDocumentDecoding:
    """Top-level documents."""

    def test_bare_document(self):
        config = parse_ui_builder_config(make_document())
        assert isinstance(config, UIBuilderConfig)
        assert config.long is not None
        assert len(config.indicators) == 6

    def test_full_strategy_config(self):
        config = parse_ui_builder_config({"timeframe": "1h", "ui_builder": make_document()})
        assert config.version == 2

    def test_strategy_config_without_ui_builder(self):
        with pytest.raises(SchemaError, match="missing ui_builder"):
            parse_ui_builder_config({"timeframe": "1h", "ui_builder": None})

    def test_defaults(self):
        config = UIBuilderConfig()
        assert config.version == 1
        assert config.parameters.stoploss == -0.10
        assert config.parameters.minimal_roi == {"0": 0.10}
        assert config.callbacks.leverage is None

    def test_unknown_position_mode_kept_as_string(self):
        config = parse_ui_builder_config(make_document(position_mode="SIDEWAYS"))
        assert config.position_mode == "SIDEWAYS"

    def test_unknown_indicator_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_ui_builder_config(make_document(indicators=[{"id": "x", "type": "HYPE"}]))

    def test_mirror_config_camel_case_flags(self):
        mirror = MirrorConfig.model_validate(
            {"enabled": True, "source": "LONG", "invertComparisons": True, "invertCrossovers": True}
        )
        assert mirror.invert_comparisons and mirror.invert_crossovers


class TestLeverageDecoding:
    """Leverage value union."""

    def test_constant_value(self):
        rule = LeverageRule.model_validate({"leverage": {"type": "CONSTANT", "value": 3}})
        assert isinstance(rule.leverage, LeverageConstantValue)
        assert rule.condition is None

    def test_expression_value(self):
        rule = LeverageRule.model_validate(
            {"leverage": {"type": "EXPRESSION", "operand": indicator("atr_1"), "min": 1, "max": 5}}
        )
        assert isinstance(rule.leverage, LeverageExpressionValue)
        assert rule.leverage.max == 5

    def test_unknown_value_type_rejected(self):
        with pytest.raises(ValidationError):
            LeverageRule.model_validate({"leverage": {"type": "RANDOM"}})
