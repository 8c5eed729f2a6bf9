"""Generation context for strategy code generation.

Carries the read-only indicator registry, the scope code is generated for,
the strategy timeframe, and what the emitted code turned out to need: import
identifiers and the informative (higher) timeframes whose candles it reads.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.codegen.ir import IndicatorDefinition, Operand, UIBuilderConfig


# =============================================================================
# Import catalog
# =============================================================================


class ImportId(str, Enum):
    """Import identifiers the generators may require."""

    NUMPY = "numpy"
    PANDAS = "pandas"
    TALIB = "talib"
    QTPYLIB = "qtpylib"
    DATETIME = "datetime"


IMPORT_STATEMENTS: dict[str, str] = {
    ImportId.TALIB.value: "import talib.abstract as ta",
    ImportId.QTPYLIB.value: "from technical import qtpylib",
    ImportId.NUMPY.value: "import numpy as np",
    ImportId.PANDAS.value: "import pandas as pd",
    ImportId.DATETIME.value: "from datetime import datetime",
}


class GenerationScope(str, Enum):
    """Where generated code will run.

    VECTORIZED code operates on whole dataframe columns inside the
    populate_* methods. Every other scope is a per-trade callback that
    evaluates scalars from the last candle.
    """

    VECTORIZED = "vectorized"
    LEVERAGE = "leverage"
    STOPLOSS = "stoploss"
    CONFIRM_ENTRY = "confirm_entry"
    CUSTOM_EXIT = "custom_exit"

    @property
    def is_callback(self) -> bool:
        return self is not GenerationScope.VECTORIZED


# =============================================================================
# Indicator registry
# =============================================================================


class IndicatorRegistry(Mapping[str, "IndicatorDefinition"]):
    """Read-only mapping of indicator id to definition.

    The first definition wins when ids repeat; duplicates are reported by
    the config validator, not here.
    """

    def __init__(self, indicators: Iterable[IndicatorDefinition] = ()) -> None:
        self._indicators: dict[str, IndicatorDefinition] = {}
        for indicator in indicators:
            self._indicators.setdefault(indicator.id, indicator)

    @classmethod
    def from_config(cls, config: UIBuilderConfig) -> IndicatorRegistry:
        return cls(config.indicators)

    def __getitem__(self, indicator_id: str) -> IndicatorDefinition:
        return self._indicators[indicator_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._indicators)

    def __len__(self) -> int:
        return len(self._indicators)

    def __repr__(self) -> str:
        return f"IndicatorRegistry({list(self._indicators)})"


# Handler for EXTERNAL / CUSTOM operands: returns the expression text
OperandHandler = Callable[["Operand", "GenerationContext"], str]


# =============================================================================
# Generation context
# =============================================================================


@dataclass
class GenerationContext:
    """Accumulation context for one generator run.

    Import identifiers and informative timeframes are collected as constructs
    are emitted. Contexts derived with `for_scope` share the same sets and
    handler table, so a whole strategy assembles one deduplicated header and
    one informative merge per timeframe.

    Usage:
        ctx = GenerationContext(registry=IndicatorRegistry(config.indicators))
        expr = generate_condition(node, ctx)
        ctx.required_imports()  # ["numpy", "qtpylib"]
    """

    registry: IndicatorRegistry = field(default_factory=IndicatorRegistry)
    scope: GenerationScope = GenerationScope.VECTORIZED
    timeframe: str | None = None
    imports: set[str] = field(default_factory=set)
    informative_timeframes: set[str] = field(default_factory=set)
    operand_handlers: dict[tuple[str, str], OperandHandler] = field(default_factory=dict)

    def add_import(self, name: str | ImportId) -> None:
        """Record an import identifier, deduplicated."""
        self.imports.add(name.value if isinstance(name, ImportId) else name)

    def required_imports(self) -> list[str]:
        """Distinct import identifiers, sorted for deterministic output."""
        return sorted(self.imports)

    def reset_imports(self) -> None:
        self.imports.clear()

    def add_informative_timeframe(self, timeframe: str) -> None:
        """Record a timeframe whose candles must be merged into the dataframe."""
        self.informative_timeframes.add(timeframe)

    def for_scope(self, scope: GenerationScope) -> GenerationContext:
        """Derive a context for another scope sharing imports and handlers."""
        return dataclasses.replace(self, scope=scope)

    def register_operand_handler(self, kind: str, key: str, handler: OperandHandler) -> None:
        """Register a handler for EXTERNAL (by source id) or CUSTOM (by plugin id) operands."""
        self.operand_handlers[(kind, key)] = handler

    def get_operand_handler(self, kind: str, key: str) -> OperandHandler | None:
        return self.operand_handlers.get((kind, key))
