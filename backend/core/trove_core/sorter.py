from __future__ import annotations

from typing import Iterable, List, Tuple

from backend.core.trove_core.models import HealthRatio, Position


def sort_key(position: Position) -> Tuple[HealthRatio, int]:
    """Ascending health ratio; on a tie the larger debt sorts first."""
    return (position.health_ratio, -position.debt_amount)


def sort_positions(positions: Iterable[Position]) -> List[Position]:
    """Order live positions riskiest first.

    Closed positions (zero debt) are dropped. ``sorted`` is stable, so
    positions with equal keys keep their input order.
    """
    return sorted((p for p in positions if p.is_live), key=sort_key)


__all__ = ["sort_key", "sort_positions"]
