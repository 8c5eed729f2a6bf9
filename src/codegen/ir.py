"""Typed model of UI builder strategy documents.

This module defines the document shape that the code generator consumes.
Uses Pydantic for decoding and discriminated unions for polymorphism.

Condition nodes and operands are decoded eagerly at the JSON boundary:
- Every node/operand carries a `type` discriminator
- Unknown discriminators fail decoding (pydantic.ValidationError)
- Generators pattern-match on the concrete classes, never on raw dicts
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter

from .errors import SchemaError

# =============================================================================
# Enums
# =============================================================================


class NodeType(str, Enum):
    """Condition node kinds."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    IF_THEN_ELSE = "IF_THEN_ELSE"
    COMPARE = "COMPARE"
    CROSSOVER = "CROSSOVER"
    CROSSUNDER = "CROSSUNDER"
    IN_RANGE = "IN_RANGE"


class OperandType(str, Enum):
    """Operand kinds."""

    CONSTANT = "CONSTANT"
    INDICATOR = "INDICATOR"
    PRICE = "PRICE"
    TRADE_CONTEXT = "TRADE_CONTEXT"
    TIME = "TIME"
    MARKET = "MARKET"
    EXTERNAL = "EXTERNAL"
    COMPUTED = "COMPUTED"
    CUSTOM = "CUSTOM"


class ComparisonOperator(str, Enum):
    """Comparison operators for COMPARE nodes."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "not_in"


class ComputedOperation(str, Enum):
    """Operations for COMPUTED operands."""

    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    MIN = "min"
    MAX = "max"
    ABS = "abs"
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"
    PERCENT_CHANGE = "percent_change"
    AVERAGE = "average"
    SUM = "sum"


class IndicatorType(str, Enum):
    """Built-in technical indicator kinds."""

    RSI = "RSI"
    SMA = "SMA"
    EMA = "EMA"
    WMA = "WMA"
    DEMA = "DEMA"
    TEMA = "TEMA"
    KAMA = "KAMA"
    MACD = "MACD"
    BB = "BB"
    KC = "KC"
    STOCH = "STOCH"
    STOCH_RSI = "STOCH_RSI"
    ATR = "ATR"
    ADX = "ADX"
    CCI = "CCI"
    WILLR = "WILLR"
    MOM = "MOM"
    ROC = "ROC"
    OBV = "OBV"
    MFI = "MFI"
    VWAP = "VWAP"
    CMF = "CMF"
    AD = "AD"
    ICHIMOKU = "ICHIMOKU"
    SAR = "SAR"
    PIVOT = "PIVOT"
    SUPERTREND = "SUPERTREND"
    CUSTOM = "CUSTOM"


class PositionMode(str, Enum):
    """Which trade directions a strategy takes."""

    LONG_ONLY = "LONG_ONLY"
    SHORT_ONLY = "SHORT_ONLY"
    LONG_AND_SHORT = "LONG_AND_SHORT"


class SignalDirection(str, Enum):
    """Trade direction of a signal set."""

    LONG = "LONG"
    SHORT = "SHORT"


class TradingMode(str, Enum):
    """Exchange trading mode."""

    SPOT = "SPOT"
    MARGIN = "MARGIN"
    FUTURES = "FUTURES"


class LeverageValueType(str, Enum):
    """How a leverage rule expresses its value."""

    CONSTANT = "CONSTANT"
    EXPRESSION = "EXPRESSION"


class _DocumentModel(BaseModel):
    """Base for document models: accept both JSON aliases and field names."""

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Operands (things that resolve to a value)
# =============================================================================

ScalarValue = bool | int | float | str | None


class _BaseOperand(_DocumentModel):
    category: str | None = None
    label: str | None = None


class ConstantOperand(_BaseOperand):
    """A literal value."""

    type: Literal["CONSTANT"] = "CONSTANT"
    value: ScalarValue | list[ScalarValue] = None
    value_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("valueType", "value_type"),
        serialization_alias="valueType",
    )


class IndicatorOperand(_BaseOperand):
    """Reference to a configured indicator's output column."""

    type: Literal["INDICATOR"] = "INDICATOR"
    indicator_id: str = Field(
        validation_alias=AliasChoices("indicatorId", "indicator_id"),
        serialization_alias="indicatorId",
    )
    field: str | None = None  # e.g. "histogram" for MACD
    offset: int = Field(default=0, ge=0)  # bars back


class PriceOperand(_BaseOperand):
    """Reference to OHLCV data or a composite price."""

    type: Literal["PRICE"] = "PRICE"
    field: str  # open, high, low, close, volume, ohlc4, hlc3, hl2
    offset: int = Field(default=0, ge=0)
    timeframe: str | None = None


class TradeContextOperand(_BaseOperand):
    """Reference to live trade/position data (callbacks only)."""

    type: Literal["TRADE_CONTEXT"] = "TRADE_CONTEXT"
    field: str


class TimeOperand(_BaseOperand):
    """Calendar field of the candle (or callback) time."""

    type: Literal["TIME"] = "TIME"
    field: str
    timezone: str | None = None


class MarketOperand(_BaseOperand):
    """Market-wide metric."""

    type: Literal["MARKET"] = "MARKET"
    field: str
    asset: str | None = None


class ComputedOperand(_BaseOperand):
    """An operation over child operands."""

    type: Literal["COMPUTED"] = "COMPUTED"
    operation: ComputedOperation
    operands: list[Operand] = Field(default_factory=list)
    precision: int | None = None


class ExternalOperand(_BaseOperand):
    """Value from a caller-registered external data source."""

    type: Literal["EXTERNAL"] = "EXTERNAL"
    source_id: str = Field(
        validation_alias=AliasChoices("sourceId", "source_id"),
        serialization_alias="sourceId",
    )
    field: str
    cache_ttl: int | None = None


class CustomOperand(_BaseOperand):
    """Value produced by a caller-registered plugin."""

    type: Literal["CUSTOM"] = "CUSTOM"
    plugin_id: str = Field(
        validation_alias=AliasChoices("pluginId", "plugin_id"),
        serialization_alias="pluginId",
    )
    config: dict[str, Any] = Field(default_factory=dict)


# Discriminated union of all operand types
Operand = Annotated[
    ConstantOperand
    | IndicatorOperand
    | PriceOperand
    | TradeContextOperand
    | TimeOperand
    | MarketOperand
    | ComputedOperand
    | ExternalOperand
    | CustomOperand,
    Field(discriminator="type"),
]


# =============================================================================
# Condition nodes (things that evaluate to bool)
# =============================================================================


class _BaseNode(_DocumentModel):
    id: str = ""
    label: str | None = None
    disabled: bool = False


class AndNode(_BaseNode):
    """All children must hold."""

    type: Literal["AND"] = "AND"
    children: list[ConditionNode] = Field(default_factory=list)


class OrNode(_BaseNode):
    """Any child must hold."""

    type: Literal["OR"] = "OR"
    children: list[ConditionNode] = Field(default_factory=list)


class NotNode(_BaseNode):
    """Negate a condition."""

    type: Literal["NOT"] = "NOT"
    child: ConditionNode


class IfThenElseNode(_BaseNode):
    """Select between two conditions."""

    type: Literal["IF_THEN_ELSE"] = "IF_THEN_ELSE"
    condition: ConditionNode
    then: ConditionNode
    else_: ConditionNode | None = Field(default=None, alias="else")


class CompareNode(_BaseNode):
    """Compare two operands."""

    type: Literal["COMPARE"] = "COMPARE"
    left: Operand
    operator: ComparisonOperator
    right: Operand


class CrossoverNode(_BaseNode):
    """series1 crosses above series2."""

    type: Literal["CROSSOVER"] = "CROSSOVER"
    series1: Operand
    series2: Operand


class CrossunderNode(_BaseNode):
    """series1 crosses below series2."""

    type: Literal["CROSSUNDER"] = "CROSSUNDER"
    series1: Operand
    series2: Operand


class InRangeNode(_BaseNode):
    """value lies between min and max."""

    type: Literal["IN_RANGE"] = "IN_RANGE"
    value: Operand
    min: Operand
    max: Operand
    inclusive: bool = False


# Discriminated union of all condition node types
ConditionNode = Annotated[
    AndNode
    | OrNode
    | NotNode
    | IfThenElseNode
    | CompareNode
    | CrossoverNode
    | CrossunderNode
    | InRangeNode,
    Field(discriminator="type"),
]


# =============================================================================
# Indicators
# =============================================================================


class IndicatorPlugin(_DocumentModel):
    """Plugin payload for CUSTOM indicators."""

    source: str = "custom"  # builtin, community, custom
    version: str | None = None
    python_code: str | None = Field(
        default=None,
        validation_alias=AliasChoices("pythonCode", "python_code"),
        serialization_alias="pythonCode",
    )
    required_imports: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("requiredImports", "required_imports"),
        serialization_alias="requiredImports",
    )


class IndicatorDefinition(_DocumentModel):
    """A configured indicator instance."""

    id: str
    type: IndicatorType
    params: dict[str, Any] = Field(default_factory=dict)
    label: str | None = None
    plugin: IndicatorPlugin | None = None


# =============================================================================
# Strategy parameters and callbacks
# =============================================================================


class StrategyParameters(_DocumentModel):
    """Static strategy parameters."""

    stoploss: float = -0.10
    minimal_roi: dict[str, float] = Field(default_factory=lambda: {"0": 0.10})
    trailing_stop: bool = False
    trailing_stop_positive: float | None = None
    trailing_stop_positive_offset: float | None = None
    use_exit_signal: bool = True


class StoplossRule(_DocumentModel):
    id: str = ""
    condition: ConditionNode
    stoploss: float


class TrailingConfig(_DocumentModel):
    enabled: bool = False
    positive: float = 0.0
    positive_offset: float = 0.0


class CustomStoplossConfig(_DocumentModel):
    """Dynamic stoploss rules, first match wins."""

    enabled: bool = False
    rules: list[StoplossRule] = Field(default_factory=list)
    default_stoploss: float = -0.10
    trailing: TrailingConfig | None = None


class ConfirmEntryConfig(_DocumentModel):
    """Entry confirmation rule."""

    enabled: bool = False
    rules: ConditionNode | None = None


class DCARule(_DocumentModel):
    price_drop_percent: float
    stake_multiplier: float = 1.0


class DCAConfig(_DocumentModel):
    """Dollar-cost averaging (position adjustment) rules."""

    enabled: bool = False
    max_entries: int = Field(default=3, ge=1)  # including the initial entry
    rules: list[DCARule] = Field(default_factory=list)
    cooldown_minutes: int = Field(default=0, ge=0)


class ExitStrategy(_DocumentModel):
    id: str = ""
    entry_tag: str = ""
    exit_condition: ConditionNode
    exit_tag: str


class CustomExitConfig(_DocumentModel):
    """Custom exits keyed by entry tag."""

    enabled: bool = False
    exit_strategies: list[ExitStrategy] = Field(default_factory=list)


class LeverageConstantValue(_DocumentModel):
    type: Literal["CONSTANT"] = "CONSTANT"
    value: float


class LeverageExpressionValue(_DocumentModel):
    """Leverage computed from an operand and bounded by min/max."""

    type: Literal["EXPRESSION"] = "EXPRESSION"
    operand: Operand
    min: float | None = None
    max: float | None = None


LeverageValue = Annotated[
    LeverageConstantValue | LeverageExpressionValue,
    Field(discriminator="type"),
]


class LeverageRule(_DocumentModel):
    """A prioritized condition → leverage mapping."""

    id: str = ""
    label: str | None = None
    priority: int = 0
    disabled: bool = False
    condition: ConditionNode | None = None
    leverage: LeverageValue


class LeverageConfig(_DocumentModel):
    """Dynamic leverage policy."""

    enabled: bool = False
    rules: list[LeverageRule] = Field(default_factory=list)
    default_leverage: float = 1.0
    max_leverage: float | None = None


class CallbacksConfig(_DocumentModel):
    custom_stoploss: CustomStoplossConfig | None = None
    confirm_entry: ConfirmEntryConfig | None = None
    dca: DCAConfig | None = None
    custom_exit: CustomExitConfig | None = None
    leverage: LeverageConfig | None = None


# =============================================================================
# Top-level documents
# =============================================================================


class SignalConfig(_DocumentModel):
    """Entry and exit trees for one trade direction."""

    entry_conditions: ConditionNode | None = None
    exit_conditions: ConditionNode | None = None


class MirrorConfig(_DocumentModel):
    """How to derive the missing direction from the authored one."""

    enabled: bool = False
    source: SignalDirection = SignalDirection.LONG
    invert_comparisons: bool = Field(
        default=False,
        validation_alias=AliasChoices("invert_comparisons", "invertComparisons"),
    )
    invert_crossovers: bool = Field(
        default=False,
        validation_alias=AliasChoices("invert_crossovers", "invertCrossovers"),
    )


class UIBuilderConfig(_DocumentModel):
    """The UI builder document.

    `entry_conditions`/`exit_conditions` are the deprecated v1 flat trees;
    normalization moves them under `long`.
    """

    version: int = 1
    schema_version: str | None = None
    indicators: list[IndicatorDefinition] = Field(default_factory=list)
    trading_mode: TradingMode | None = None
    # Unknown modes decode as plain strings and are treated as long-only
    position_mode: PositionMode | str | None = None
    long: SignalConfig | None = None
    short: SignalConfig | None = None
    mirror_config: MirrorConfig | None = None
    entry_conditions: ConditionNode | None = None
    exit_conditions: ConditionNode | None = None
    parameters: StrategyParameters = Field(default_factory=StrategyParameters)
    callbacks: CallbacksConfig = Field(default_factory=CallbacksConfig)


class StrategyConfig(_DocumentModel):
    """Full strategy config carrying the UI builder document."""

    stake_currency: str | None = None
    stake_amount: float | str | None = None
    timeframe: str = "5m"
    ui_builder: UIBuilderConfig | None = None


# Forward refs for the recursive unions
for _model in (
    ComputedOperand,
    AndNode,
    OrNode,
    NotNode,
    IfThenElseNode,
    CompareNode,
    CrossoverNode,
    CrossunderNode,
    InRangeNode,
    StoplossRule,
    ConfirmEntryConfig,
    ExitStrategy,
    LeverageExpressionValue,
    LeverageRule,
    LeverageConfig,
    CallbacksConfig,
    SignalConfig,
    UIBuilderConfig,
    StrategyConfig,
):
    _model.model_rebuild()


# =============================================================================
# Decoding helpers
# =============================================================================

_CONDITION_ADAPTER: TypeAdapter[ConditionNode] = TypeAdapter(ConditionNode)
_OPERAND_ADAPTER: TypeAdapter[Operand] = TypeAdapter(Operand)


def parse_condition(data: dict[str, Any]) -> ConditionNode:
    """Decode a condition tree. Raises pydantic.ValidationError on bad input."""
    return _CONDITION_ADAPTER.validate_python(data)


def parse_operand(data: dict[str, Any]) -> Operand:
    """Decode an operand tree. Raises pydantic.ValidationError on bad input."""
    return _OPERAND_ADAPTER.validate_python(data)


def parse_ui_builder_config(document: dict[str, Any]) -> UIBuilderConfig:
    """Decode a UI builder document.

    Accepts either the bare UI builder document or a full strategy config
    carrying it under `ui_builder`.

    Raises:
        pydantic.ValidationError: If the document does not match the schema.
        SchemaError: If a strategy config has no `ui_builder` section.
    """
    if "ui_builder" in document:
        strategy = StrategyConfig.model_validate(document)
        if strategy.ui_builder is None:
            raise SchemaError("config missing ui_builder section")
        return strategy.ui_builder
    return UIBuilderConfig.model_validate(document)
