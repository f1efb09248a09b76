"""
Tier schedule resolution.

Splits a period's net units across a format's tiers. Tiers are progressive
over cumulative units: if 4,800 units were sold before the period and the
first tier ends at 5,000, only the first 200 units of the period earn the
first tier's rate.

Positions are counted as units already sold, so the period covers the
half-open window [cumulative_before, cumulative_before + net_units) and a
tier written ``5001+`` covers [5000, infinity).
"""

import logging
from typing import List, Optional, Sequence

from royalty_engine.errors import InvalidSalesData, TierConfigurationError
from royalty_engine.models.calculation import TierAllocation, TierProjection
from royalty_engine.models.contract import Tier
from royalty_engine.services.money import ensure_units_in_range

logger = logging.getLogger(__name__)


def resolve_tiers(
    tiers: Sequence[Tier],
    cumulative_before: int,
    net_units: int,
    format: Optional[str] = None,
) -> List[TierAllocation]:
    """
    Allocate a period's net units to tiers.

    For each tier overlapping the period window, allocates
    ``min(tier_upper, window_end) - max(tier_lower, window_start)`` units.
    An unbounded last tier absorbs whatever remains.

    Args:
        tiers: The format's tiers, sorted ascending by from_units.
        cumulative_before: Lifetime units sold before this period (0 in
            period mode).
        net_units: Net units sold in this period.
        format: Format name, used only in error details.

    Returns:
        One TierAllocation per tier touched; empty when net_units is 0.

    Raises:
        InvalidSalesData: if either count is negative.
        TierConfigurationError: if the allocations do not account for
            exactly net_units (a gap, an overlap, or a bounded last tier
            that runs out).
    """
    if cumulative_before < 0 or net_units < 0:
        raise InvalidSalesData(
            f"unit counts must be non-negative (cumulative {cumulative_before}, period {net_units})",
            format=format,
            cumulative_before=cumulative_before,
            net_units=net_units,
        )
    window_start = cumulative_before
    window_end = ensure_units_in_range(cumulative_before + net_units, "cumulative units")

    if net_units == 0:
        return []

    allocations: List[TierAllocation] = []
    allocated = 0
    for index, tier in enumerate(tiers):
        lower = tier.lower_bound
        if lower >= window_end:
            break
        upper = tier.upper_bound if tier.upper_bound is not None else window_end
        units = min(upper, window_end) - max(lower, window_start)
        if units <= 0:
            continue
        allocations.append(TierAllocation(
            tier_index=index,
            from_units=tier.from_units,
            to_units=tier.to_units,
            rate=tier.rate,
            units_in_tier=units,
        ))
        allocated += units

    if allocated != net_units:
        logger.warning(
            "Tier schedule for %s allocated %d of %d units (cumulative before %d)",
            format, allocated, net_units, cumulative_before,
        )
        raise TierConfigurationError(
            f"Tier schedule accounts for {allocated} of {net_units} units in the period",
            format=format,
            allocated_units=allocated,
            net_units=net_units,
            cumulative_before=cumulative_before,
        )

    return allocations


def project_tier_crossover(
    tiers: Sequence[Tier],
    lifetime_units: int,
    units_per_month: int = 0,
) -> TierProjection:
    """
    Estimate when a format reaches its next tier.

    The current tier is the one the next unit sold falls into. Months are
    rounded up and only computed when a positive sales velocity is given.

    Raises:
        TierConfigurationError: if tiers is empty.
        InvalidSalesData: if lifetime_units or units_per_month is negative.
    """
    if not tiers:
        raise TierConfigurationError("Cannot project against an empty tier schedule")
    if lifetime_units < 0 or units_per_month < 0:
        raise InvalidSalesData(
            f"lifetime units ({lifetime_units}) and velocity ({units_per_month}) must be non-negative"
        )

    current_index = len(tiers) - 1
    for index, tier in enumerate(tiers):
        if tier.upper_bound is None or lifetime_units < tier.upper_bound:
            current_index = index
            break

    current = tiers[current_index]
    next_tier = tiers[current_index + 1] if current_index + 1 < len(tiers) else None

    threshold = None
    units_to_next = None
    months_to_next = None
    if next_tier is not None:
        threshold = next_tier.from_units
        units_to_next = max(0, next_tier.lower_bound - lifetime_units)
        if units_per_month > 0:
            months_to_next = -(-units_to_next // units_per_month)

    return TierProjection(
        current_tier_index=current_index,
        current_rate=current.rate,
        lifetime_units=lifetime_units,
        next_tier_threshold=threshold,
        units_to_next_tier=units_to_next,
        months_to_next_tier=months_to_next,
    )
