"""MirrorInverter visitor for deriving opposite-direction condition trees.

Clones a condition tree, optionally flipping directional comparisons and
swapping crossovers with crossunders. The input tree is never modified.
"""

from __future__ import annotations

from src.codegen.ir import (
    AndNode,
    ComparisonOperator,
    CompareNode,
    ConditionNode,
    CrossoverNode,
    CrossunderNode,
    IfThenElseNode,
    NotNode,
    OrNode,
)
from src.codegen.visitors.base import ConditionVisitor

# Only ordering operators have a directional opposite
_INVERTED_OPERATORS: dict[ComparisonOperator, ComparisonOperator] = {
    ComparisonOperator.GT: ComparisonOperator.LT,
    ComparisonOperator.LT: ComparisonOperator.GT,
    ComparisonOperator.GTE: ComparisonOperator.LTE,
    ComparisonOperator.LTE: ComparisonOperator.GTE,
}


def invert_operator(operator: ComparisonOperator) -> ComparisonOperator:
    """gt<->lt, gte<->lte; every other operator is returned unchanged."""
    return _INVERTED_OPERATORS.get(operator, operator)


class MirrorInverter(ConditionVisitor[ConditionNode]):
    """Visitor that returns an inverted deep copy of a condition tree.

    Usage:
        inverter = MirrorInverter(invert_comparisons=True, invert_crossovers=True)
        short_entry = inverter.visit(long_entry)
    """

    def __init__(self, invert_comparisons: bool = False, invert_crossovers: bool = False) -> None:
        self.invert_comparisons = invert_comparisons
        self.invert_crossovers = invert_crossovers

    def visit_default(self, node: ConditionNode) -> ConditionNode:
        """Leaves without polarity (IN_RANGE) are copied unchanged."""
        return node.model_copy(deep=True)

    def visit_CompareNode(self, node: CompareNode) -> ConditionNode:
        clone = node.model_copy(deep=True)
        if self.invert_comparisons:
            clone.operator = invert_operator(node.operator)
        return clone

    def visit_CrossoverNode(self, node: CrossoverNode) -> ConditionNode:
        if not self.invert_crossovers:
            return node.model_copy(deep=True)
        return CrossunderNode(**self._swap_payload(node))

    def visit_CrossunderNode(self, node: CrossunderNode) -> ConditionNode:
        if not self.invert_crossovers:
            return node.model_copy(deep=True)
        return CrossoverNode(**self._swap_payload(node))

    @staticmethod
    def _swap_payload(node: CrossoverNode | CrossunderNode) -> dict:
        return {
            "id": node.id,
            "label": node.label,
            "disabled": node.disabled,
            "series1": node.series1.model_copy(deep=True),
            "series2": node.series2.model_copy(deep=True),
        }

    # Composite nodes keep their shape

    def combine_and(self, original: AndNode, children: list[ConditionNode]) -> ConditionNode:
        return original.model_copy(update={"children": children})

    def combine_or(self, original: OrNode, children: list[ConditionNode]) -> ConditionNode:
        return original.model_copy(update={"children": children})

    def combine_not(self, original: NotNode, child: ConditionNode) -> ConditionNode:
        return original.model_copy(update={"child": child})

    def combine_if_then_else(
        self,
        original: IfThenElseNode,
        condition: ConditionNode,
        then: ConditionNode,
        else_: ConditionNode | None,
    ) -> ConditionNode:
        return original.model_copy(update={"condition": condition, "then": then, "else_": else_})
