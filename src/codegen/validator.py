"""Config Validator - checks referential integrity of UI builder documents.

Ensures every indicator reference points at a configured indicator, names an
output that indicator has, and that every PRICE, TIME, MARKET and
TRADE_CONTEXT field exists in the scope it is read from. Errors make the
document ungeneratable; warnings mark documents that generate but are not
complete (e.g. CUSTOM indicators without code).

Checks that depend on generation inputs rather than the document (the
strategy timeframe, registered EXTERNAL/CUSTOM operand handlers) are left to
the generator.

Disabled nodes are skipped: they never reach generation.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from src.codegen.compiler.operand_builder import (
    MARKET_FIELDS,
    OHLCV_FIELDS,
    PRICE_COMPOSITES,
    TIME_FIELDS,
    check_computed_arity,
    check_indicator_field,
    timeframe_to_minutes,
)
from src.codegen.context import GenerationScope
from src.codegen.errors import SchemaError, SemanticError
from src.codegen.ir import (
    AndNode,
    ComparisonOperator,
    CompareNode,
    ComputedOperand,
    ConditionNode,
    CrossoverNode,
    CrossunderNode,
    IfThenElseNode,
    IndicatorDefinition,
    IndicatorOperand,
    IndicatorType,
    InRangeNode,
    LeverageExpressionValue,
    MarketOperand,
    NotNode,
    Operand,
    OrNode,
    PositionMode,
    PriceOperand,
    SignalDirection,
    TimeOperand,
    TradeContextOperand,
    UIBuilderConfig,
)
from src.codegen.registries.trade_context import trade_context_fields


@dataclass
class ValidationIssue:
    """A single validation finding."""

    path: str  # Where in the document the issue occurred
    message: str  # What's wrong


@dataclass
class ValidationResult:
    """Result of validating a document."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def is_complete(self) -> bool:
        """Valid and free of soft failures."""
        return self.is_valid and len(self.warnings) == 0

    def add_error(self, path: str, message: str) -> None:
        self.errors.append(ValidationIssue(path=path, message=message))

    def add_warning(self, path: str, message: str) -> None:
        self.warnings.append(ValidationIssue(path=path, message=message))


class ConfigValidator:
    """Validates a UIBuilderConfig for internal consistency."""

    def __init__(self, config: UIBuilderConfig):
        self.config = config
        self.result = ValidationResult()

        # Build lookups for defined indicators; the first definition of an id wins
        self.indicators: dict[str, IndicatorDefinition] = {}
        for ind in config.indicators:
            self.indicators.setdefault(ind.id, ind)
        self.indicator_ids: set[str] = set(self.indicators)

    def validate(self) -> ValidationResult:
        """Run all validations and return result."""
        self._validate_indicators()
        self._validate_position_mode()
        self._validate_mirror()

        # Signal trees (vectorized)
        for direction in ("long", "short"):
            signals = getattr(self.config, direction)
            if signals is None:
                continue
            self._validate_condition(signals.entry_conditions, f"{direction}.entry_conditions")
            self._validate_condition(signals.exit_conditions, f"{direction}.exit_conditions")
        self._validate_condition(self.config.entry_conditions, "entry_conditions")
        self._validate_condition(self.config.exit_conditions, "exit_conditions")

        self._validate_callbacks()
        return self.result

    # =========================================================================
    # Document-level checks
    # =========================================================================

    def _validate_indicators(self) -> None:
        counts = Counter(ind.id for ind in self.config.indicators)
        for ind_id, count in counts.items():
            if count > 1:
                self.result.add_error("indicators", f"Duplicate indicator id '{ind_id}' ({count} times)")

        for i, ind in enumerate(self.config.indicators):
            if ind.type == IndicatorType.CUSTOM and (ind.plugin is None or not ind.plugin.python_code):
                self.result.add_warning(
                    f"indicators[{i}]",
                    f"Custom indicator '{ind.id}' has no code; a placeholder will be generated",
                )

    def _validate_position_mode(self) -> None:
        mode = self.config.position_mode
        if mode and mode not in {m.value for m in PositionMode}:
            self.result.add_warning(
                "position_mode", f"Unknown position mode '{mode}', treated as LONG_ONLY"
            )

    def _validate_mirror(self) -> None:
        mirror = self.config.mirror_config
        if mirror is None or not mirror.enabled:
            return
        source = self.config.long if mirror.source == SignalDirection.LONG else self.config.short
        if source is None:
            self.result.add_error(
                "mirror_config.source",
                f"Mirror source {mirror.source.value} has no conditions defined",
            )

    def _validate_callbacks(self) -> None:
        callbacks = self.config.callbacks

        if callbacks.custom_stoploss and callbacks.custom_stoploss.enabled:
            for i, rule in enumerate(callbacks.custom_stoploss.rules):
                path = f"callbacks.custom_stoploss.rules[{i}].condition"
                self._validate_condition(rule.condition, path, GenerationScope.STOPLOSS)

        if callbacks.confirm_entry and callbacks.confirm_entry.enabled:
            self._validate_condition(
                callbacks.confirm_entry.rules,
                "callbacks.confirm_entry.rules",
                GenerationScope.CONFIRM_ENTRY,
            )

        if callbacks.custom_exit and callbacks.custom_exit.enabled:
            for i, strategy in enumerate(callbacks.custom_exit.exit_strategies):
                path = f"callbacks.custom_exit.exit_strategies[{i}].exit_condition"
                self._validate_condition(strategy.exit_condition, path, GenerationScope.CUSTOM_EXIT)

        leverage = callbacks.leverage
        if leverage and leverage.enabled:
            for i, rule in enumerate(leverage.rules):
                if rule.disabled:
                    continue
                path = f"callbacks.leverage.rules[{i}]"
                self._validate_condition(rule.condition, f"{path}.condition", GenerationScope.LEVERAGE)
                if isinstance(rule.leverage, LeverageExpressionValue):
                    self._validate_operand(
                        rule.leverage.operand, f"{path}.leverage.operand", GenerationScope.LEVERAGE
                    )

    # =========================================================================
    # Tree checks
    # =========================================================================

    def _validate_condition(
        self,
        node: ConditionNode | None,
        path: str,
        scope: GenerationScope = GenerationScope.VECTORIZED,
    ) -> None:
        """Validate a condition and its nested operands."""
        if node is None or node.disabled:
            return

        if isinstance(node, (AndNode, OrNode)):
            for i, child in enumerate(node.children):
                self._validate_condition(child, f"{path}.children[{i}]", scope)
        elif isinstance(node, NotNode):
            self._validate_condition(node.child, f"{path}.child", scope)
        elif isinstance(node, IfThenElseNode):
            self._validate_condition(node.condition, f"{path}.condition", scope)
            self._validate_condition(node.then, f"{path}.then", scope)
            self._validate_condition(node.else_, f"{path}.else", scope)
        elif isinstance(node, CompareNode):
            if node.operator == ComparisonOperator.BETWEEN:
                self.result.add_error(
                    f"{path}.operator",
                    "Operator 'between' is not supported; use an IN_RANGE node",
                )
            self._validate_operand(node.left, f"{path}.left", scope)
            self._validate_operand(node.right, f"{path}.right", scope)
        elif isinstance(node, (CrossoverNode, CrossunderNode)):
            self._validate_operand(node.series1, f"{path}.series1", scope)
            self._validate_operand(node.series2, f"{path}.series2", scope)
        elif isinstance(node, InRangeNode):
            self._validate_operand(node.value, f"{path}.value", scope)
            self._validate_operand(node.min, f"{path}.min", scope)
            self._validate_operand(node.max, f"{path}.max", scope)

    def _validate_operand(self, operand: Operand, path: str, scope: GenerationScope) -> None:
        """Validate an operand reference."""
        if isinstance(operand, IndicatorOperand):
            if operand.indicator_id not in self.indicator_ids:
                self.result.add_error(
                    path,
                    f"References undefined indicator '{operand.indicator_id}'. "
                    f"Defined indicators: {sorted(self.indicator_ids)}",
                )
                return
            try:
                check_indicator_field(operand, self.indicators.get(operand.indicator_id))
            except SemanticError as e:
                self.result.add_error(f"{path}.field", e.message)
        elif isinstance(operand, TradeContextOperand):
            if not scope.is_callback:
                self.result.add_error(
                    path,
                    f"Trade context field '{operand.field}' is only available in callbacks",
                )
            elif operand.field not in trade_context_fields(scope):
                self.result.add_error(
                    f"{path}.field",
                    f"Unknown trade context field '{operand.field}' for {scope.value}. "
                    f"Available: {sorted(trade_context_fields(scope))}",
                )
        elif isinstance(operand, PriceOperand):
            if operand.field not in OHLCV_FIELDS and operand.field not in PRICE_COMPOSITES:
                self.result.add_error(f"{path}.field", f"Unknown price field '{operand.field}'")
            if operand.timeframe is not None:
                try:
                    timeframe_to_minutes(operand.timeframe)
                except SemanticError as e:
                    self.result.add_error(f"{path}.timeframe", e.message)
        elif isinstance(operand, TimeOperand):
            if operand.field not in TIME_FIELDS:
                self.result.add_error(f"{path}.field", f"Unknown time field '{operand.field}'")
        elif isinstance(operand, MarketOperand):
            if operand.field not in MARKET_FIELDS:
                self.result.add_error(f"{path}.field", f"Unknown market field '{operand.field}'")
        elif isinstance(operand, ComputedOperand):
            try:
                check_computed_arity(operand)
            except SchemaError as e:
                self.result.add_error(path, e.message)
            for i, child in enumerate(operand.operands):
                self._validate_operand(child, f"{path}.operands[{i}]", scope)


def validate_config(config: UIBuilderConfig) -> ValidationResult:
    """Validate a document; see ConfigValidator."""
    return ConfigValidator(config).validate()
