"""
Calculation assembler: the engine's entry point.

Composes the royalty calculator and the advance tracker into one immutable
RoyaltyCalculation for a (contract, period). Pure: no I/O, no shared state,
identical inputs always give an identical result or an identical error.
"""

import logging
from typing import Mapping, Optional, Sequence

from royalty_engine.errors import ContractNotFound
from royalty_engine.models.calculation import RoyaltyCalculation
from royalty_engine.models.contract import AdvanceState, BookFormat, ContractTerms
from royalty_engine.models.sales import NetSalesByFormat, RoyaltyPeriod
from royalty_engine.services.advance import net_payable, recoup_advance
from royalty_engine.services.royalty_calc import calculate_royalties, total_royalty

logger = logging.getLogger(__name__)


def require_terms(contract_terms: Optional[ContractTerms]) -> ContractTerms:
    """Return contract_terms, or raise ContractNotFound when absent or without schedules."""
    if contract_terms is None:
        raise ContractNotFound()
    if not contract_terms.schedules:
        raise ContractNotFound(contract_terms.contract_id, reason="contract has no royalty schedules")
    return contract_terms


def calculate(
    contract_terms: Optional[ContractTerms],
    advance_state: AdvanceState,
    net_sales_by_format: Sequence[NetSalesByFormat],
    cumulative_units_by_format: Optional[Mapping[BookFormat, int]],
    period: RoyaltyPeriod,
) -> RoyaltyCalculation:
    """
    Calculate royalties and advance recoupment for one contract and period.

    Args:
        contract_terms: Validated contract terms.
        advance_state: Advance snapshot before this period.
        net_sales_by_format: Net sales per format for the period.
        cumulative_units_by_format: Lifetime units already calculated before
            this period; missing formats count as 0.
        period: The period being calculated.

    Returns:
        A RoyaltyCalculation that foots to the cent.

    Raises:
        ContractNotFound: contract_terms is None or has no schedules.
        InvalidSalesData: sales cannot be reconciled.
        TierConfigurationError: a schedule cannot absorb the period's units.
        ArithmeticOverflow: an amount leaves the fixed-point range.
    """
    terms = require_terms(contract_terms)

    per_format = calculate_royalties(terms, net_sales_by_format, cumulative_units_by_format)
    earned = total_royalty(per_format)
    recoupment = recoup_advance(earned, advance_state)
    payable = net_payable(earned, recoupment)

    calculation = RoyaltyCalculation(
        contract_id=terms.contract_id,
        period=period,
        royalty_basis=terms.royalty_basis,
        tier_calculation_mode=terms.tier_calculation_mode,
        per_format=per_format,
        total_royalty_earned=earned,
        advance_recouped_this_period=recoupment.recouped_this_period,
        advance_remaining_after=recoupment.remaining_after,
        net_payable=payable,
        advance=recoupment,
    )

    logger.info(
        "Calculated contract %s for %s: earned %s, recouped %s, payable %s",
        terms.contract_id, period.label, earned, recoupment.recouped_this_period, payable,
    )
    return calculation
