from __future__ import annotations

from typing import List, Sequence

from backend.core.trove_core.constants import (
    DEFAULT_LIQUIDATION_THRESHOLD,
    DEFAULT_REDEMPTION_FEE_BPS,
    MAX_LIQUIDATION_BATCH_SIZE,
    MAX_REDEMPTION_TARGETS,
)
from backend.core.trove_core.errors import InsufficientLiquidity
from backend.core.trove_core.models import Position


def select_liquidatable(
    ordered: Sequence[Position],
    threshold: int = DEFAULT_LIQUIDATION_THRESHOLD,
    max_batch: int = MAX_LIQUIDATION_BATCH_SIZE,
) -> List[Position]:
    """Leading run of ``ordered`` whose health ratio is below ``threshold``."""
    selected: List[Position] = []
    for pos in ordered:
        if len(selected) >= max_batch or pos.health_ratio >= threshold:
            break
        if pos.is_live:
            selected.append(pos)
    return selected


def redemption_net_amount(amount: int, fee_bps: int = DEFAULT_REDEMPTION_FEE_BPS) -> int:
    return amount - amount * fee_bps // 10_000


def select_redemption_targets(
    ordered: Sequence[Position],
    amount: int,
    fee_bps: int = DEFAULT_REDEMPTION_FEE_BPS,
    max_targets: int = MAX_REDEMPTION_TARGETS,
) -> List[Position]:
    """Pick the riskiest positions whose debt covers ``amount`` net of the fee estimate.

    Raises :class:`InsufficientLiquidity` when ``max_targets`` positions
    cannot cover it.
    """
    net = redemption_net_amount(amount, fee_bps)
    remaining = net
    selected: List[Position] = []
    for pos in ordered:
        if len(selected) >= max_targets or remaining <= 0:
            break
        if not pos.is_live:
            continue
        selected.append(pos)
        remaining -= min(remaining, pos.debt_amount)
    if remaining > 0:
        raise InsufficientLiquidity(
            "NotEnoughLiquidityForRedeem",
            f"Insufficient liquidity ({len(selected)} lowest-ratio positions): "
            f"covered {net - remaining}, required {net}",
        )
    return selected


__all__ = ["select_liquidatable", "redemption_net_amount", "select_redemption_targets"]
