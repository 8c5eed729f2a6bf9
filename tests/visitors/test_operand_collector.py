"""Tests for OperandCollector and CrossDetector."""

from src.codegen.ir import ComputedOperand, ConstantOperand, IndicatorOperand, PriceOperand
from src.codegen.visitors.operand_collector import (
    collect_operands,
    contains_cross,
    iter_operands,
)
from tests.conftest import (
    and_,
    compare,
    computed,
    constant,
    crossover,
    crossunder,
    if_then_else,
    in_range,
    indicator,
    node,
    not_,
    operand,
    or_,
    price,
    rsi_below,
)


class TestIterOperands:
    def test_leaf(self):
        leaf = operand(constant(1))
        assert list(iter_operands(leaf)) == [leaf]

    def test_nested_computed(self):
        data = computed("add", indicator("rsi_1"), computed("abs", price("close")))
        kinds = [type(op) for op in iter_operands(operand(data))]
        assert kinds == [ComputedOperand, IndicatorOperand, ComputedOperand, PriceOperand]


class TestOperandCollector:
    """Operands are collected in source order."""

    def test_compare(self):
        ops = collect_operands(node(rsi_below(30)))
        assert isinstance(ops[0], IndicatorOperand)
        assert isinstance(ops[1], ConstantOperand)

    def test_whole_tree(self):
        tree = node(
            and_(
                or_(rsi_below(), not_(compare(price("close"), "gt", indicator("ema_slow")))),
                crossover(indicator("ema_fast"), indicator("ema_slow")),
                in_range(indicator("rsi_14"), constant(30), constant(70)),
                if_then_else(rsi_below(), rsi_below(20), rsi_below(10)),
            )
        )
        ids = [op.indicator_id for op in collect_operands(tree) if isinstance(op, IndicatorOperand)]
        assert ids == ["rsi_1", "ema_slow", "ema_fast", "ema_slow", "rsi_14", "rsi_1", "rsi_1", "rsi_1"]

    def test_computed_children_included(self):
        tree = node(compare(computed("sub", indicator("ema_fast"), indicator("ema_slow")), "gt", constant(0)))
        ids = [op.indicator_id for op in collect_operands(tree) if isinstance(op, IndicatorOperand)]
        assert ids == ["ema_fast", "ema_slow"]

    def test_none(self):
        assert collect_operands(None) == []


class TestCrossDetector:
    def test_no_cross(self):
        assert contains_cross(node(and_(rsi_below(), not_(rsi_below())))) is False

    def test_nested_crossunder(self):
        tree = node(or_(rsi_below(), not_(crossunder(indicator("ema_fast"), indicator("ema_slow")))))
        assert contains_cross(tree) is True

    def test_cross_in_else_branch(self):
        tree = node(if_then_else(rsi_below(), rsi_below(), crossover(indicator("ema_fast"), indicator("ema_slow"))))
        assert contains_cross(tree) is True

    def test_none(self):
        assert contains_cross(None) is False
