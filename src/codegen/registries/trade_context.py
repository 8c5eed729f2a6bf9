"""TRADE_CONTEXT field tables.

Each callback scope exposes a closed set of live-position fields, mapped to
the expression that reads them from that callback's arguments. Vectorized
code has no trade, so it has no table.
"""

from __future__ import annotations

from src.codegen.context import GenerationScope

# Market microstructure fields with no per-callback source read as neutral constants
_PLACEHOLDER_FIELDS: dict[str, str] = {
    "volume_ratio": "1.0",
    "spread_pct": "0.0",
}

# custom_stoploss / custom_exit: (pair, trade, current_time, current_rate, current_profit)
_TRADE_FIELDS: dict[str, str] = {
    "current_profit": "current_profit",
    "current_profit_pct": "(current_profit * 100)",
    "entry_rate": "trade.open_rate",
    "current_rate": "current_rate",
    "trade_duration": "((current_time - trade.open_date_utc).total_seconds() / 60)",
    "nr_of_entries": "trade.nr_of_successful_entries",
    "stake_amount": "trade.stake_amount",
    "pair": "pair",
    "is_short": "trade.is_short",
    "side": "('short' if trade.is_short else 'long')",
    **_PLACEHOLDER_FIELDS,
}

# leverage: (pair, current_time, current_rate, proposed_leverage, max_leverage, entry_tag, side)
_LEVERAGE_FIELDS: dict[str, str] = {
    "current_rate": "current_rate",
    "pair": "pair",
    "is_short": "is_short",
    "side": "side",
    "proposed_leverage": "proposed_leverage",
    "entry_tag": "entry_tag",
    **_PLACEHOLDER_FIELDS,
}

# confirm_trade_entry: (pair, order_type, amount, rate, time_in_force, current_time, entry_tag, side)
_CONFIRM_ENTRY_FIELDS: dict[str, str] = {
    "current_rate": "rate",
    "pair": "pair",
    "is_short": "(side == 'short')",
    "side": "side",
    "stake_amount": "(amount * rate)",
    "entry_tag": "entry_tag",
    **_PLACEHOLDER_FIELDS,
}

TRADE_CONTEXT_FIELDS: dict[GenerationScope, dict[str, str]] = {
    GenerationScope.STOPLOSS: _TRADE_FIELDS,
    GenerationScope.CUSTOM_EXIT: _TRADE_FIELDS,
    GenerationScope.LEVERAGE: _LEVERAGE_FIELDS,
    GenerationScope.CONFIRM_ENTRY: _CONFIRM_ENTRY_FIELDS,
}


def trade_context_fields(scope: GenerationScope) -> dict[str, str]:
    """Field table for a scope; empty for vectorized code."""
    return TRADE_CONTEXT_FIELDS.get(scope, {})
