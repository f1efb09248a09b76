"""
Advance recoupment tracking.

An advance is recouped out of earned royalties until it is fully repaid.
The tracker takes a read-only AdvanceState snapshot and returns the delta
for this period; persisting the next snapshot is the caller's job.
"""

import logging
from decimal import Decimal

from royalty_engine.errors import InvalidSalesData
from royalty_engine.models.calculation import AdvanceRecoupment
from royalty_engine.models.contract import AdvanceState
from royalty_engine.services.money import ZERO, ensure_in_range, subtract

logger = logging.getLogger(__name__)


def recoup_advance(total_royalty_earned: Decimal, advance_state: AdvanceState) -> AdvanceRecoupment:
    """
    Recoup as much of the outstanding advance as this period's royalty covers.

    recouped_this_period = max(0, min(earned, total_advance - recouped_to_date))
    remaining_after      = total_advance - recouped_to_date - recouped_this_period

    A fully recouped advance recoups nothing and leaves the whole royalty
    payable.

    Raises:
        InvalidSalesData: if total_royalty_earned is negative.
        ArithmeticOverflow: if earned or either advance amount is outside
            NUMERIC(15,2).
    """
    earned = ensure_in_range(total_royalty_earned, "total royalty earned")
    ensure_in_range(advance_state.total_advance, "total advance")
    ensure_in_range(advance_state.recouped_to_date, "advance recouped to date")
    if earned < 0:
        raise InvalidSalesData(
            f"royalty earned cannot be negative ({earned})",
            total_royalty_earned=earned,
        )

    outstanding = advance_state.outstanding
    recouped = max(ZERO, min(earned, outstanding))
    remaining = subtract(outstanding, recouped)

    if recouped and remaining == 0:
        logger.info("Advance of %s fully recouped this period", advance_state.total_advance)

    return AdvanceRecoupment(
        total_advance=advance_state.total_advance,
        previously_recouped=advance_state.recouped_to_date,
        recouped_this_period=recouped,
        remaining_after=remaining,
    )


def net_payable(total_royalty_earned: Decimal, recoupment: AdvanceRecoupment) -> Decimal:
    """Royalty left for the author after recoupment."""
    return subtract(total_royalty_earned, recoupment.recouped_this_period)
