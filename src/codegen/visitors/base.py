"""Base visitor class for condition tree traversal."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from src.codegen.ir import AndNode, ConditionNode, IfThenElseNode, NotNode, OrNode

T = TypeVar("T")


class ConditionVisitor(ABC, Generic[T]):
    """Abstract visitor for condition trees.

    Subclasses implement visit methods for specific node types.
    The base class handles tree traversal for composite nodes
    (AND, OR, NOT, IF_THEN_ELSE).

    Type parameter T is the return type of visit methods.

    Usage:
        class MyVisitor(ConditionVisitor[ConditionNode]):
            def visit_default(self, node):
                return node  # pass through unchanged

            def visit_CompareNode(self, node):
                return flip(node)  # transform
    """

    def visit(self, node: ConditionNode) -> T:
        """Dispatch to the appropriate visit method.

        Looks for visit_{ClassName} method, falls back to visit_default.
        """
        method_name = f"visit_{type(node).__name__}"
        visitor = getattr(self, method_name, self.visit_default)
        return visitor(node)

    @abstractmethod
    def visit_default(self, node: ConditionNode) -> T:
        """Default handler for leaf node types without specific visit methods."""
        ...

    # Composite nodes - traverse children and combine results

    def visit_AndNode(self, node: AndNode) -> T:
        visited_children = [self.visit(c) for c in node.children]
        return self.combine_and(node, visited_children)

    def visit_OrNode(self, node: OrNode) -> T:
        visited_children = [self.visit(c) for c in node.children]
        return self.combine_or(node, visited_children)

    def visit_NotNode(self, node: NotNode) -> T:
        visited_child = self.visit(node.child)
        return self.combine_not(node, visited_child)

    def visit_IfThenElseNode(self, node: IfThenElseNode) -> T:
        """Visit IF_THEN_ELSE: traverse condition and both branches, then combine."""
        visited_condition = self.visit(node.condition)
        visited_then = self.visit(node.then)
        visited_else = self.visit(node.else_) if node.else_ is not None else None
        return self.combine_if_then_else(node, visited_condition, visited_then, visited_else)

    # Combine methods - subclasses override to customize combination logic

    @abstractmethod
    def combine_and(self, original: AndNode, children: list[T]) -> T:
        ...

    @abstractmethod
    def combine_or(self, original: OrNode, children: list[T]) -> T:
        ...

    @abstractmethod
    def combine_not(self, original: NotNode, child: T) -> T:
        ...

    @abstractmethod
    def combine_if_then_else(
        self, original: IfThenElseNode, condition: T, then: T, else_: T | None
    ) -> T:
        """Combine results from IF_THEN_ELSE; else_ is None when the branch is absent."""
        ...
