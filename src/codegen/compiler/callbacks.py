"""Shared pieces for rendering strategy callback methods.

Callbacks evaluate conditions against scalars, so any rule that reads an
indicator or price needs the analyzed dataframe and its last candle. This
module decides how much history a set of rules reads and emits the
dataframe preamble for it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from src.codegen.ir import ConditionNode, IndicatorOperand, Operand, PriceOperand
from src.codegen.visitors.operand_collector import collect_operands, contains_cross, iter_operands
from src.codegen.visitors.pruner import prune_disabled

METHOD_INDENT = "    "
BODY_INDENT = METHOD_INDENT * 2


@dataclass(frozen=True)
class MarketDataNeeds:
    """How much analyzed-dataframe history a callback reads."""

    dataframe: bool = False
    previous_candle: bool = False
    min_candles: int = 0


def analyze_market_data(
    conditions: Iterable[ConditionNode | None] = (),
    operands: Iterable[Operand | None] = (),
) -> MarketDataNeeds:
    """Inspect active conditions and bare operands for candle reads.

    INDICATOR and PRICE operands read the dataframe; crossovers also read
    the previous candle; offsets reach further back.
    """
    reads_dataframe = False
    crosses = False
    deepest = 0

    def visit_operand(operand: Operand, cross: bool) -> None:
        nonlocal reads_dataframe, deepest
        for found in iter_operands(operand):
            if isinstance(found, (IndicatorOperand, PriceOperand)):
                reads_dataframe = True
                deepest = max(deepest, found.offset + (1 if cross else 0))

    for condition in conditions:
        pruned = prune_disabled(condition)
        if pruned is None:
            continue
        tree_crosses = contains_cross(pruned)
        crosses = crosses or tree_crosses
        for operand in collect_operands(pruned):
            visit_operand(operand, tree_crosses)

    for operand in operands:
        if operand is not None:
            visit_operand(operand, False)

    if not reads_dataframe:
        return MarketDataNeeds()
    needs_previous = crosses and deepest >= 1
    return MarketDataNeeds(
        dataframe=True,
        previous_candle=needs_previous,
        min_candles=deepest + 1,
    )


def render_market_data_preamble(needs: MarketDataNeeds, fallback: str) -> list[str]:
    """Lines loading the analyzed dataframe and the candles the rules read.

    Args:
        needs: Result of analyze_market_data().
        fallback: Expression returned when there is not enough history.
    """
    if not needs.dataframe:
        return []
    lines = [f"{BODY_INDENT}dataframe, _ = self.dp.get_analyzed_dataframe(pair, self.timeframe)"]
    if needs.min_candles > 1:
        lines.append(f"{BODY_INDENT}if len(dataframe) < {needs.min_candles}:")
    else:
        lines.append(f"{BODY_INDENT}if dataframe.empty:")
    lines.append(f"{BODY_INDENT}{METHOD_INDENT}return {fallback}")
    lines.append(f"{BODY_INDENT}last_candle = dataframe.iloc[-1].squeeze()")
    if needs.previous_candle:
        lines.append(f"{BODY_INDENT}prev_candle = dataframe.iloc[-2].squeeze()")
    return lines


def comment_text(text: str) -> str:
    """Collapse a user label to a single comment-safe line."""
    return " ".join(text.split())
