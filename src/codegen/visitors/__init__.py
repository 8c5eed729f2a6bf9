"""Visitor implementations for condition tree traversal."""

from .base import ConditionVisitor
from .mirror_inverter import MirrorInverter, invert_operator
from .operand_collector import (
    CrossDetector,
    OperandCollector,
    collect_operands,
    contains_cross,
    iter_operands,
)
from .pruner import DisabledPruner, prune_disabled

__all__ = [
    "ConditionVisitor",
    "CrossDetector",
    "DisabledPruner",
    "MirrorInverter",
    "OperandCollector",
    "collect_operands",
    "contains_cross",
    "invert_operator",
    "iter_operands",
    "prune_disabled",
]
