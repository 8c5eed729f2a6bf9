"""Strategy assembly: splice generated fragments into a strategy source file.

Pipeline:
1. normalize     - migrate legacy documents to the per-direction shape
2. mirror        - derive the missing direction when mirroring is enabled
3. signals       - populate_entry_trend() / populate_exit_trend() bodies
4. callbacks     - custom_stoploss, confirm_trade_entry, custom_exit,
                   adjust_trade_position, leverage
5. indicators    - informative_pairs() and populate_indicators(), merging
                   every higher timeframe read by steps 3-4
6. header        - import block from the accumulated import identifiers
"""

from __future__ import annotations

import json
import logging
import os
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any

from src.codegen.compiler.callbacks import (
    BODY_INDENT,
    METHOD_INDENT,
    analyze_market_data,
    comment_text,
    render_market_data_preamble,
)
from src.codegen.compiler.condition_builder import ALWAYS_FALSE, generate_condition
from src.codegen.compiler.operand_builder import format_constant, timeframe_to_minutes
from src.codegen.context import (
    IMPORT_STATEMENTS,
    GenerationContext,
    GenerationScope,
    ImportId,
    IndicatorRegistry,
)
from src.codegen.errors import ConfigLimitError, SchemaError
from src.codegen.ir import (
    CallbacksConfig,
    ConditionNode,
    ConfirmEntryConfig,
    CustomExitConfig,
    CustomStoplossConfig,
    DCAConfig,
    UIBuilderConfig,
    parse_ui_builder_config,
)
from src.codegen.leverage import generate_leverage
from src.codegen.mirror import apply_mirror_config
from src.codegen.normalize import normalize_config, should_generate_long, should_generate_short
from src.codegen.registries.indicators import generate_all_indicators
from src.codegen.validator import validate_config

logger = logging.getLogger(__name__)

DEFAULT_CLASS_NAME = "MyStrategy"
MAX_CLASS_NAME_LENGTH = 100
DEFAULT_MAX_CONFIG_BYTES = 1024 * 1024
DEFAULT_MAX_CONFIG_DEPTH = 64
DEFAULT_TIMEFRAME = "5m"

_CLASS_NAME_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_DOTTED_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_IMPORT_LINE_RE = re.compile(r"^(import|from)\s+[A-Za-z_][\w.]*(\s+import\s+[\w., ]+)?(\s+as\s+\w+)?$")

# Catalog order of the import block
_IMPORT_ORDER = [
    ImportId.DATETIME.value,
    ImportId.NUMPY.value,
    ImportId.PANDAS.value,
    ImportId.TALIB.value,
    ImportId.QTPYLIB.value,
]

_BASE_IMPORTS = [
    "from pandas import DataFrame",
    "from freqtrade.strategy import IStrategy",
]
_INFORMATIVE_IMPORT = "from freqtrade.strategy import IStrategy, merge_informative_pair"


@dataclass
class GeneratedStrategy:
    """Generated strategy code and metadata."""

    code: str
    class_name: str
    imports: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "class_name": self.class_name,
            "imports": self.imports,
            "warnings": self.warnings,
        }


# =============================================================================
# Input checks
# =============================================================================


def validate_class_name(name: str) -> None:
    """Check that a class name is safe to embed in generated code.

    Raises:
        SchemaError: If the name is empty, too long, or not PascalCase.
    """
    if not name:
        raise SchemaError("class name is required")
    if len(name) > MAX_CLASS_NAME_LENGTH:
        raise SchemaError(
            f"class name too long: {len(name)} characters (max {MAX_CLASS_NAME_LENGTH})"
        )
    if not _CLASS_NAME_RE.match(name):
        raise SchemaError(
            "invalid class name: must be PascalCase "
            "(start with uppercase letter, followed by alphanumeric characters)"
        )


def name_to_class_name(name: str) -> str:
    """Convert a strategy name to a PascalCase class name.

    "my strategy" -> "MyStrategy", "NewBuilderStrat" -> "NewBuilderStrat",
    "test-strategy_123" -> "Teststrategy123".
    """
    # Keep ASCII letters, digits and spaces
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    sanitized = "".join(ch for ch in ascii_name if ch.isalnum() or ch == " ")
    if not sanitized.strip():
        return DEFAULT_CLASS_NAME

    if " " not in sanitized:
        result = sanitized[0].upper() + sanitized[1:]
    else:
        result = "".join(word[0].upper() + word[1:].lower() for word in sanitized.split())

    # Class names cannot start with a digit
    if not result[0].isalpha():
        result = f"Strategy{result}"
    return result[:MAX_CLASS_NAME_LENGTH]


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


def _json_depth(document: Any) -> int:
    """Maximum container nesting depth, computed without recursion."""
    deepest = 0
    stack: list[tuple[Any, int]] = [(document, 1)]
    while stack:
        value, depth = stack.pop()
        if isinstance(value, dict):
            deepest = max(deepest, depth)
            stack.extend((child, depth + 1) for child in value.values())
        elif isinstance(value, list):
            deepest = max(deepest, depth)
            stack.extend((child, depth + 1) for child in value)
    return deepest


def validate_config_size(
    document: dict[str, Any],
    max_bytes: int | None = None,
    max_depth: int | None = None,
) -> None:
    """Bound a raw document before decoding.

    Limits default to CODEGEN_MAX_CONFIG_BYTES / CODEGEN_MAX_CONFIG_DEPTH.

    Raises:
        ConfigLimitError: If the serialized size or nesting depth is exceeded.
    """
    if max_bytes is None:
        max_bytes = _env_int("CODEGEN_MAX_CONFIG_BYTES", DEFAULT_MAX_CONFIG_BYTES)
    if max_depth is None:
        max_depth = _env_int("CODEGEN_MAX_CONFIG_DEPTH", DEFAULT_MAX_CONFIG_DEPTH)

    depth = _json_depth(document)
    if depth > max_depth:
        raise ConfigLimitError(f"config nesting too deep: {depth} levels (max {max_depth})")

    size = len(json.dumps(document, separators=(",", ":")).encode("utf-8"))
    if size > max_bytes:
        raise ConfigLimitError(f"config too large: {size} bytes (max {max_bytes})")


# =============================================================================
# Import block
# =============================================================================


def render_import_statements(imports: list[str] | set[str]) -> list[str]:
    """Turn import identifiers into import statements.

    Catalog identifiers map to their fixed statements. Identifiers added by
    CUSTOM indicators may be full import statements or dotted module names.

    Raises:
        SchemaError: If an identifier is neither.
    """
    known = [name for name in _IMPORT_ORDER if name in imports]
    statements = [IMPORT_STATEMENTS[name] for name in known]

    for name in sorted(set(imports) - set(known)):
        text = name.strip()
        if _IMPORT_LINE_RE.match(text):
            statement = text
        elif _DOTTED_NAME_RE.match(text):
            statement = f"import {text}"
        else:
            raise SchemaError(f"invalid import {name!r}")
        if statement not in statements:
            statements.append(statement)
    return statements


# =============================================================================
# Method bodies
# =============================================================================


def _indent(code: str, prefix: str = BODY_INDENT) -> list[str]:
    return [f"{prefix}{line}" if line.strip() else "" for line in code.splitlines()]


def _signal_assignment(column: str, node: ConditionNode | None, ctx: GenerationContext) -> str:
    expr = generate_condition(node, ctx)
    return f"{BODY_INDENT}dataframe['{column}'] = np.where({expr}, 1, 0)"


def _informative_pairs(timeframes: list[str]) -> list[str]:
    listed = ", ".join(format_constant(tf) for tf in timeframes)
    return [
        f"{METHOD_INDENT}def informative_pairs(self):",
        f"{BODY_INDENT}pairs = self.dp.current_whitelist()",
        f"{BODY_INDENT}return [(pair, timeframe) for pair in pairs for timeframe in ({listed},)]",
    ]


def _populate_indicators(config: UIBuilderConfig, ctx: GenerationContext, informative: list[str]) -> list[str]:
    lines = [f"{METHOD_INDENT}def populate_indicators(self, dataframe: DataFrame, metadata: dict) -> DataFrame:"]
    for tf in informative:
        # Higher-timeframe candles arrive as <column>_<timeframe>
        name = f"informative_{tf}"
        lines.append(
            f"{BODY_INDENT}{name} = self.dp.get_pair_dataframe(pair=metadata['pair'], "
            f"timeframe={format_constant(tf)})"
        )
        lines.append(
            f"{BODY_INDENT}dataframe = merge_informative_pair(dataframe, {name}, self.timeframe, "
            f"{format_constant(tf)}, ffill=True)"
        )
    code = generate_all_indicators(config.indicators, ctx)
    if code:
        lines.extend(_indent(code))
    lines.append(f"{BODY_INDENT}return dataframe")
    return lines


def _populate_signals(config: UIBuilderConfig, ctx: GenerationContext, kind: str) -> list[str]:
    """populate_entry_trend() or populate_exit_trend(), kind is "entry" or "exit"."""
    method = "populate_entry_trend" if kind == "entry" else "populate_exit_trend"
    prefix = "enter" if kind == "entry" else "exit"
    attribute = f"{kind}_conditions"

    lines = [f"{METHOD_INDENT}def {method}(self, dataframe: DataFrame, metadata: dict) -> DataFrame:"]
    if should_generate_long(config):
        node = getattr(config.long, attribute) if config.long else None
        lines.append(_signal_assignment(f"{prefix}_long", node, ctx))
    if should_generate_short(config):
        node = getattr(config.short, attribute) if config.short else None
        lines.append(_signal_assignment(f"{prefix}_short", node, ctx))
    lines.append(f"{BODY_INDENT}return dataframe")
    return lines


def _custom_stoploss(cfg: CustomStoplossConfig, ctx: GenerationContext) -> list[str]:
    ctx = ctx.for_scope(GenerationScope.STOPLOSS)
    default = repr(float(cfg.default_stoploss))
    lines = [
        f"{METHOD_INDENT}def custom_stoploss(self, pair: str, trade: Trade, current_time: datetime, "
        "current_rate: float, current_profit: float, after_fill: bool, **kwargs) -> float:"
    ]
    lines.extend(
        render_market_data_preamble(
            analyze_market_data(conditions=[rule.condition for rule in cfg.rules]), default
        )
    )
    for rule in cfg.rules:
        expr = generate_condition(rule.condition, ctx)
        if expr == ALWAYS_FALSE:
            continue
        if rule.id:
            lines.append(f"{BODY_INDENT}# {comment_text(rule.id)}")
        lines.append(f"{BODY_INDENT}if {expr}:")
        lines.append(f"{BODY_INDENT}{METHOD_INDENT}return {float(rule.stoploss)!r}")
    if cfg.trailing is not None and cfg.trailing.enabled:
        lines.append(f"{BODY_INDENT}# Trailing stop")
        lines.append(f"{BODY_INDENT}if current_profit > {float(cfg.trailing.positive_offset)!r}:")
        lines.append(f"{BODY_INDENT}{METHOD_INDENT}return {-abs(float(cfg.trailing.positive))!r}")
    lines.append(f"{BODY_INDENT}return {default}")
    return lines


def _confirm_trade_entry(cfg: ConfirmEntryConfig, ctx: GenerationContext) -> list[str]:
    ctx = ctx.for_scope(GenerationScope.CONFIRM_ENTRY)
    lines = [
        f"{METHOD_INDENT}def confirm_trade_entry(self, pair: str, order_type: str, amount: float, "
        "rate: float, time_in_force: str, current_time: datetime, entry_tag: str | None, "
        "side: str, **kwargs) -> bool:"
    ]
    if cfg.rules is None:
        lines.append(f"{BODY_INDENT}return True")
        return lines
    lines.extend(render_market_data_preamble(analyze_market_data(conditions=[cfg.rules]), "False"))
    lines.append(f"{BODY_INDENT}return bool({generate_condition(cfg.rules, ctx)})")
    return lines


def _custom_exit(cfg: CustomExitConfig, ctx: GenerationContext) -> list[str]:
    ctx = ctx.for_scope(GenerationScope.CUSTOM_EXIT)
    lines = [
        f"{METHOD_INDENT}def custom_exit(self, pair: str, trade: Trade, current_time: datetime, "
        "current_rate: float, current_profit: float, **kwargs) -> str | bool | None:"
    ]
    lines.extend(
        render_market_data_preamble(
            analyze_market_data(conditions=[s.exit_condition for s in cfg.exit_strategies]), "None"
        )
    )
    for strategy in cfg.exit_strategies:
        expr = generate_condition(strategy.exit_condition, ctx)
        if expr == ALWAYS_FALSE:
            continue
        if strategy.entry_tag:
            expr = f"(trade.enter_tag == {format_constant(strategy.entry_tag)}) and ({expr})"
        if strategy.id:
            lines.append(f"{BODY_INDENT}# {comment_text(strategy.id)}")
        lines.append(f"{BODY_INDENT}if {expr}:")
        lines.append(f"{BODY_INDENT}{METHOD_INDENT}return {format_constant(strategy.exit_tag)}")
    lines.append(f"{BODY_INDENT}return None")
    return lines


def _adjust_trade_position(cfg: DCAConfig) -> list[str]:
    thresholds = ", ".join(
        f"({-abs(float(rule.price_drop_percent)) / 100!r}, {float(rule.stake_multiplier)!r})"
        for rule in cfg.rules
    )
    lines = [
        f"{METHOD_INDENT}def adjust_trade_position(self, trade: Trade, current_time: datetime, "
        "current_rate: float, current_profit: float, min_stake: float | None, max_stake: float, "
        "current_entry_rate: float, current_exit_rate: float, current_entry_profit: float, "
        "current_exit_profit: float, **kwargs) -> float | None:",
        f"{BODY_INDENT}count_of_entries = trade.nr_of_successful_entries",
        f"{BODY_INDENT}if count_of_entries >= {cfg.max_entries}:",
        f"{BODY_INDENT}{METHOD_INDENT}return None",
    ]
    if cfg.cooldown_minutes:
        lines.extend(
            [
                f"{BODY_INDENT}last_fill = trade.date_last_filled_utc",
                f"{BODY_INDENT}if last_fill and (current_time - last_fill).total_seconds() < "
                f"{cfg.cooldown_minutes * 60}:",
                f"{BODY_INDENT}{METHOD_INDENT}return None",
            ]
        )
    lines.extend(
        [
            f"{BODY_INDENT}# (profit threshold, stake multiplier) per additional entry",
            f"{BODY_INDENT}dca_rules = [{thresholds}]",
            f"{BODY_INDENT}index = count_of_entries - 1",
            f"{BODY_INDENT}if index >= len(dca_rules):",
            f"{BODY_INDENT}{METHOD_INDENT}return None",
            f"{BODY_INDENT}threshold, multiplier = dca_rules[index]",
            f"{BODY_INDENT}if current_profit > threshold:",
            f"{BODY_INDENT}{METHOD_INDENT}return None",
            f"{BODY_INDENT}filled_entries = trade.select_filled_orders(trade.entry_side)",
            f"{BODY_INDENT}return filled_entries[0].stake_amount_filled * multiplier",
        ]
    )
    return lines


def _callback_methods(callbacks: CallbacksConfig, ctx: GenerationContext) -> tuple[list[str], list[list[str]]]:
    """Class attributes and methods for enabled callbacks."""
    attributes: list[str] = []
    methods: list[list[str]] = []

    if callbacks.custom_stoploss and callbacks.custom_stoploss.enabled:
        attributes.append(f"{METHOD_INDENT}use_custom_stoploss = True")
        methods.append(_custom_stoploss(callbacks.custom_stoploss, ctx))
    if callbacks.confirm_entry and callbacks.confirm_entry.enabled:
        methods.append(_confirm_trade_entry(callbacks.confirm_entry, ctx))
    if callbacks.custom_exit and callbacks.custom_exit.enabled:
        methods.append(_custom_exit(callbacks.custom_exit, ctx))
    if callbacks.dca and callbacks.dca.enabled:
        attributes.append(f"{METHOD_INDENT}position_adjustment_enable = True")
        attributes.append(f"{METHOD_INDENT}max_entry_position_adjustment = {callbacks.dca.max_entries - 1}")
        methods.append(_adjust_trade_position(callbacks.dca))

    leverage = generate_leverage(callbacks.leverage, ctx)
    if leverage:
        methods.append(leverage.splitlines())

    if methods:
        ctx.add_import(ImportId.DATETIME)
    return attributes, methods


def _uses_trade(callbacks: CallbacksConfig) -> bool:
    return any(
        cfg is not None and cfg.enabled
        for cfg in (callbacks.custom_stoploss, callbacks.custom_exit, callbacks.dca)
    )


# =============================================================================
# Public API
# =============================================================================


def generate_strategy(
    config: UIBuilderConfig,
    class_name: str,
    timeframe: str = DEFAULT_TIMEFRAME,
    ctx: GenerationContext | None = None,
) -> GeneratedStrategy:
    """Generate a complete Freqtrade strategy module.

    Args:
        config: Decoded UI builder document (any schema version).
        class_name: PascalCase strategy class name.
        timeframe: Candle timeframe of the strategy.
        ctx: Optional context carrying EXTERNAL/CUSTOM operand handlers.
            Its registry is replaced by the document's indicators.

    Returns:
        GeneratedStrategy with source code, import identifiers and
        validator warnings.

    Raises:
        CodegenError: If the document cannot produce valid code.
    """
    validate_class_name(class_name)

    config = apply_mirror_config(normalize_config(config))
    warnings = [f"{w.path}: {w.message}" for w in validate_config(config).warnings]

    registry = IndicatorRegistry.from_config(config)
    if ctx is None:
        ctx = GenerationContext(registry=registry, timeframe=timeframe)
    else:
        ctx = GenerationContext(
            registry=registry,
            timeframe=timeframe,
            operand_handlers=dict(ctx.operand_handlers),
        )
    ctx.add_import(ImportId.NUMPY)

    can_short = should_generate_short(config)
    params = config.parameters

    # Signals and callbacks go first: they decide which informative timeframes are read
    entry = _populate_signals(config, ctx, "entry")
    exit_ = _populate_signals(config, ctx, "exit")
    callback_attributes, callback_methods = _callback_methods(config.callbacks, ctx)
    informative = sorted(ctx.informative_timeframes, key=lambda tf: (timeframe_to_minutes(tf), tf))

    body: list[list[str]] = []
    if informative:
        body.append(_informative_pairs(informative))
    body.extend([_populate_indicators(config, ctx, informative), entry, exit_])
    body.extend(callback_methods)

    attributes = [
        f"{METHOD_INDENT}INTERFACE_VERSION = 3",
        f"{METHOD_INDENT}timeframe = {format_constant(timeframe)}",
        f"{METHOD_INDENT}can_short = {can_short}",
        f"{METHOD_INDENT}stoploss = {float(params.stoploss)!r}",
        f"{METHOD_INDENT}minimal_roi = {json.dumps({k: float(v) for k, v in params.minimal_roi.items()})}",
        f"{METHOD_INDENT}trailing_stop = {params.trailing_stop}",
    ]
    if params.trailing_stop_positive is not None:
        attributes.append(f"{METHOD_INDENT}trailing_stop_positive = {float(params.trailing_stop_positive)!r}")
    if params.trailing_stop_positive_offset is not None:
        attributes.append(
            f"{METHOD_INDENT}trailing_stop_positive_offset = {float(params.trailing_stop_positive_offset)!r}"
        )
    attributes.append(f"{METHOD_INDENT}use_exit_signal = {params.use_exit_signal}")
    attributes.extend(callback_attributes)

    imports = ctx.required_imports()
    header = render_import_statements(imports) + (
        [_BASE_IMPORTS[0], _INFORMATIVE_IMPORT] if informative else _BASE_IMPORTS
    )
    if _uses_trade(config.callbacks):
        header.append("from freqtrade.persistence import Trade")

    lines = header + ["", "", f"class {class_name}(IStrategy):"]
    lines.append(f'{METHOD_INDENT}"""Generated from a UI builder configuration."""')
    lines.append("")
    lines.extend(attributes)
    for method in body:
        lines.append("")
        lines.extend(method)

    code = "\n".join(lines) + "\n"
    logger.info(f"Generated strategy {class_name} ({len(config.indicators)} indicators, imports={imports})")
    return GeneratedStrategy(code=code, class_name=class_name, imports=imports, warnings=warnings)


def preview_strategy_code(document: dict[str, Any], class_name: str) -> GeneratedStrategy:
    """Bound, decode and generate a raw document.

    Accepts a bare UI builder document or a full strategy config carrying
    it under `ui_builder` (whose `timeframe` is then used).

    Raises:
        ConfigLimitError: Document too large or too deeply nested.
        pydantic.ValidationError: Document does not match the schema.
        CodegenError: Document cannot produce valid code.
    """
    validate_class_name(class_name)
    validate_config_size(document)
    config = parse_ui_builder_config(document)
    timeframe = document.get("timeframe") if "ui_builder" in document else None
    return generate_strategy(config, class_name, timeframe=timeframe or DEFAULT_TIMEFRAME)
