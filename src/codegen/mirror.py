"""Mirror transform: derive one trade direction's signals from the other.

Produces a best-effort opposite-direction strategy from a single authored
direction. The result is a starting point for further editing, not a
guaranteed equivalent.
"""

from __future__ import annotations

import logging

from src.codegen.errors import SemanticError
from src.codegen.ir import ConditionNode, SignalConfig, SignalDirection, UIBuilderConfig
from src.codegen.visitors.mirror_inverter import MirrorInverter

logger = logging.getLogger(__name__)


def apply_mirror_config(config: UIBuilderConfig) -> UIBuilderConfig:
    """Populate the target direction from the mirror source.

    Returns the config unchanged when mirroring is absent or disabled.
    Otherwise returns a new config whose target direction (the opposite of
    `mirror_config.source`) is an inverted clone of the source direction.
    The input config is not modified.

    Raises:
        SemanticError: If the source direction has no signal config.
    """
    mirror = config.mirror_config
    if mirror is None or not mirror.enabled:
        return config

    if mirror.source == SignalDirection.LONG:
        source, target_field = config.long, "short"
    else:
        source, target_field = config.short, "long"

    if source is None:
        raise SemanticError(f"mirror source {mirror.source.value} has no conditions defined")

    inverter = MirrorInverter(
        invert_comparisons=mirror.invert_comparisons,
        invert_crossovers=mirror.invert_crossovers,
    )
    logger.info(
        f"Mirroring {mirror.source.value} signals to {target_field.upper()} "
        f"(comparisons={mirror.invert_comparisons}, crossovers={mirror.invert_crossovers})"
    )
    mirrored = SignalConfig(
        entry_conditions=_invert(source.entry_conditions, inverter),
        exit_conditions=_invert(source.exit_conditions, inverter),
    )
    return config.model_copy(update={target_field: mirrored})


def _invert(node: ConditionNode | None, inverter: MirrorInverter) -> ConditionNode | None:
    if node is None:
        return None
    return inverter.visit(node)
