"""Config normalizer.

Migrates legacy (v1) documents, whose entry/exit trees sit at the top level,
into the per-direction (v2) shape, and derives which directions to generate
from the position mode. Normalization never modifies its input and never
raises: malformed documents are rejected earlier, at decode time.
"""

from __future__ import annotations

import logging

from src.codegen.ir import ConditionNode, PositionMode, SignalConfig, UIBuilderConfig

logger = logging.getLogger(__name__)

CURRENT_VERSION = 2


def is_v2_config(config: UIBuilderConfig | None) -> bool:
    """True when the document carries per-direction signal configs."""
    if config is None:
        return False
    return config.long is not None or config.short is not None


def normalize_config(config: UIBuilderConfig) -> UIBuilderConfig:
    """Return the document in its canonical v2 shape.

    - v2 documents come back as-is, with position_mode defaulted to LONG_ONLY
    - v1 documents are migrated: version 2, LONG_ONLY, legacy trees moved
      under `long` and cleared from the top level
    - documents with no trees at all only get the default position mode

    Normalizing twice yields the same result as normalizing once.
    """
    if is_v2_config(config):
        return _with_default_position_mode(config)

    if config.entry_conditions is None and config.exit_conditions is None:
        return _with_default_position_mode(config)

    logger.info(f"Migrating v{config.version} config to v{CURRENT_VERSION} (long-only)")
    return config.model_copy(
        update={
            "version": CURRENT_VERSION,
            "position_mode": PositionMode.LONG_ONLY,
            "long": SignalConfig(
                entry_conditions=config.entry_conditions,
                exit_conditions=config.exit_conditions,
            ),
            "entry_conditions": None,
            "exit_conditions": None,
        }
    )


def _with_default_position_mode(config: UIBuilderConfig) -> UIBuilderConfig:
    if config.position_mode:
        return config.model_copy()
    return config.model_copy(update={"position_mode": PositionMode.LONG_ONLY})


# =============================================================================
# Effective trees
# =============================================================================


def effective_long_entry(config: UIBuilderConfig | None) -> ConditionNode | None:
    if config is None:
        return None
    normalized = normalize_config(config)
    return normalized.long.entry_conditions if normalized.long else None


def effective_long_exit(config: UIBuilderConfig | None) -> ConditionNode | None:
    if config is None:
        return None
    normalized = normalize_config(config)
    return normalized.long.exit_conditions if normalized.long else None


def effective_short_entry(config: UIBuilderConfig | None) -> ConditionNode | None:
    if config is None:
        return None
    normalized = normalize_config(config)
    return normalized.short.entry_conditions if normalized.short else None


def effective_short_exit(config: UIBuilderConfig | None) -> ConditionNode | None:
    if config is None:
        return None
    normalized = normalize_config(config)
    return normalized.short.exit_conditions if normalized.short else None


# =============================================================================
# Position-mode predicates
# =============================================================================


def _position_mode(config: UIBuilderConfig | None) -> PositionMode | None:
    if config is None or config.position_mode is None:
        return None
    try:
        return PositionMode(config.position_mode)
    except ValueError:
        # Unrecognized modes behave like an unset mode
        return None


def should_generate_long(config: UIBuilderConfig | None) -> bool:
    """Long signals are generated unless the mode is SHORT_ONLY."""
    return _position_mode(config) != PositionMode.SHORT_ONLY


def should_generate_short(config: UIBuilderConfig | None) -> bool:
    """Short signals are generated only for SHORT_ONLY and LONG_AND_SHORT."""
    return _position_mode(config) in (PositionMode.SHORT_ONLY, PositionMode.LONG_AND_SHORT)
