"""DisabledPruner visitor for removing disabled nodes from condition trees.

Disabled nodes are excluded from generation, not negated. The pruner
returns a new tree without them, or None when nothing remains.
"""

from __future__ import annotations

from src.codegen.ir import AndNode, ConditionNode, IfThenElseNode, NotNode, OrNode
from src.codegen.visitors.base import ConditionVisitor


def _always_false(node_id: str) -> OrNode:
    # OR of zero children renders as the "always false" literal in every scope
    return OrNode(id=node_id)


def _keep_survivors(original: AndNode | OrNode, children: list[ConditionNode | None]) -> AndNode | OrNode | None:
    survivors = [c for c in children if c is not None]
    # A group emptied by pruning is dropped; one authored empty stays the identity
    if original.children and not survivors:
        return None
    return original.model_copy(update={"children": survivors})


class DisabledPruner(ConditionVisitor["ConditionNode | None"]):
    """Visitor that drops disabled nodes.

    Rules:
    - A disabled node (at any depth) is dropped: visiting it returns None
    - AND/OR keep only their surviving children, and are dropped when none survive
    - An AND/OR authored with no children is kept as-is (True / False)
    - NOT and IF_THEN_ELSE are dropped when their operand/condition is dropped
    - A dropped THEN or ELSE branch becomes "always false"

    Usage:
        pruned = DisabledPruner().visit(tree)
        if pruned is None:
            ...  # whole tree disabled
    """

    def visit(self, node: ConditionNode) -> ConditionNode | None:
        if node.disabled:
            return None
        return super().visit(node)

    def visit_default(self, node: ConditionNode) -> ConditionNode | None:
        return node

    def combine_and(self, original: AndNode, children: list[ConditionNode | None]) -> ConditionNode | None:
        return _keep_survivors(original, children)

    def combine_or(self, original: OrNode, children: list[ConditionNode | None]) -> ConditionNode | None:
        return _keep_survivors(original, children)

    def combine_not(self, original: NotNode, child: ConditionNode | None) -> ConditionNode | None:
        if child is None:
            return None
        return original.model_copy(update={"child": child})

    def combine_if_then_else(
        self,
        original: IfThenElseNode,
        condition: ConditionNode | None,
        then: ConditionNode | None,
        else_: ConditionNode | None,
    ) -> ConditionNode | None:
        if condition is None:
            return None
        if then is None:
            then = _always_false(original.then.id)
        if else_ is None and original.else_ is not None:
            else_ = _always_false(original.else_.id)
        return original.model_copy(update={"condition": condition, "then": then, "else_": else_})


def prune_disabled(node: ConditionNode | None) -> ConditionNode | None:
    """Return `node` without its disabled parts, or None if nothing is active."""
    if node is None:
        return None
    return DisabledPruner().visit(node)
