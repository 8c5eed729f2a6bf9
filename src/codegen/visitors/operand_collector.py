"""Visitors for extracting operands and crossover usage from condition trees.

OperandCollector flattens every operand reachable from a tree, including
the children of COMPUTED operands. CrossDetector reports whether a tree
compares against the previous bar.
"""

from __future__ import annotations

from collections.abc import Iterator

from src.codegen.ir import (
    AndNode,
    CompareNode,
    ComputedOperand,
    ConditionNode,
    CrossoverNode,
    CrossunderNode,
    IfThenElseNode,
    InRangeNode,
    NotNode,
    Operand,
    OrNode,
)
from src.codegen.visitors.base import ConditionVisitor


def iter_operands(operand: Operand) -> Iterator[Operand]:
    """Yield `operand` and, for COMPUTED operands, every nested operand."""
    yield operand
    if isinstance(operand, ComputedOperand):
        for child in operand.operands:
            yield from iter_operands(child)


class OperandCollector(ConditionVisitor[list[Operand]]):
    """Visitor that collects all operands of a condition tree in source order.

    Usage:
        operands = OperandCollector().visit(tree)
        ids = {op.indicator_id for op in operands if isinstance(op, IndicatorOperand)}
    """

    def visit_default(self, node: ConditionNode) -> list[Operand]:
        return []

    def _flatten(self, *operands: Operand) -> list[Operand]:
        return [found for operand in operands for found in iter_operands(operand)]

    def visit_CompareNode(self, node: CompareNode) -> list[Operand]:
        return self._flatten(node.left, node.right)

    def visit_CrossoverNode(self, node: CrossoverNode) -> list[Operand]:
        return self._flatten(node.series1, node.series2)

    def visit_CrossunderNode(self, node: CrossunderNode) -> list[Operand]:
        return self._flatten(node.series1, node.series2)

    def visit_InRangeNode(self, node: InRangeNode) -> list[Operand]:
        return self._flatten(node.value, node.min, node.max)

    def combine_and(self, original: AndNode, children: list[list[Operand]]) -> list[Operand]:
        return [op for child in children for op in child]

    def combine_or(self, original: OrNode, children: list[list[Operand]]) -> list[Operand]:
        return [op for child in children for op in child]

    def combine_not(self, original: NotNode, child: list[Operand]) -> list[Operand]:
        return child

    def combine_if_then_else(
        self,
        original: IfThenElseNode,
        condition: list[Operand],
        then: list[Operand],
        else_: list[Operand] | None,
    ) -> list[Operand]:
        return condition + then + (else_ or [])


class CrossDetector(ConditionVisitor[bool]):
    """Visitor answering whether a tree contains CROSSOVER or CROSSUNDER."""

    def visit_default(self, node: ConditionNode) -> bool:
        return False

    def visit_CrossoverNode(self, node: CrossoverNode) -> bool:
        return True

    def visit_CrossunderNode(self, node: CrossunderNode) -> bool:
        return True

    def combine_and(self, original: AndNode, children: list[bool]) -> bool:
        return any(children)

    def combine_or(self, original: OrNode, children: list[bool]) -> bool:
        return any(children)

    def combine_not(self, original: NotNode, child: bool) -> bool:
        return child

    def combine_if_then_else(
        self, original: IfThenElseNode, condition: bool, then: bool, else_: bool | None
    ) -> bool:
        return condition or then or bool(else_)


def collect_operands(node: ConditionNode | None) -> list[Operand]:
    if node is None:
        return []
    return OperandCollector().visit(node)


def contains_cross(node: ConditionNode | None) -> bool:
    if node is None:
        return False
    return CrossDetector().visit(node)
