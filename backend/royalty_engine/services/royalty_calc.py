"""
Royalty calculation.

Applies each format's tier rates to the units the tier resolver allocated,
under the contract's royalty basis, and produces an auditable
FormatCalculation per format.

Rounding: each tier row is rounded half-up to the cent. The format total is
the exact format royalty rounded once, i.e. what a single non-tiered
computation would give. Under the net revenue basis it is one division of the
summed row numerators by net units, so per-row division error never reaches
it. Any cent of drift between that total and the sum of the rounded rows is
moved onto the last row(s), so the rows always foot to the format total.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from royalty_engine.errors import InvalidSalesData, TierConfigurationError
from royalty_engine.models.calculation import FormatCalculation, TierAllocation, TierBreakdown
from royalty_engine.models.contract import (
    FORMAT_ORDER,
    BookFormat,
    ContractTerms,
    FormatSchedule,
    RoyaltyBasis,
    TierCalculationMode,
)
from royalty_engine.models.sales import NetSalesByFormat
from royalty_engine.services.money import (
    apply_drift,
    divide,
    ensure_in_range,
    ensure_units_in_range,
    multiply,
    round_cents,
    subtract,
    sum_amounts,
)
from royalty_engine.services.tier_resolver import resolve_tiers

logger = logging.getLogger(__name__)


def exact_tier_royalty(
    allocation: TierAllocation,
    net_sales: NetSalesByFormat,
    basis: RoyaltyBasis,
    reference_price: Optional[Decimal] = None,
) -> Decimal:
    """
    Unrounded royalty for one tier row.

    Under the net revenue basis the tier earns its proportional share of the
    period's net revenue: ``net_revenue * units_in_tier / net_units * rate``.
    The multiplications happen before the division so a row that covers
    every unit reproduces ``net_revenue * rate`` exactly.
    """
    if basis == RoyaltyBasis.REFERENCE_PRICE:
        if reference_price is None:
            raise TierConfigurationError(
                "reference_price basis needs a reference price",
                format=net_sales.format.value,
            )
        return multiply(multiply(allocation.units_in_tier, reference_price), allocation.rate)

    return divide(_revenue_numerator(allocation, net_sales), net_sales.net_units)


def _revenue_numerator(allocation: TierAllocation, net_sales: NetSalesByFormat) -> Decimal:
    return multiply(multiply(net_sales.net_revenue, allocation.units_in_tier), allocation.rate)


def exact_format_royalty(
    allocations: Sequence[TierAllocation],
    net_sales: NetSalesByFormat,
    basis: RoyaltyBasis,
    exact_rows: Sequence[Decimal],
) -> Decimal:
    """Unrounded format total. Net revenue rows share one division by net units."""
    if basis == RoyaltyBasis.REFERENCE_PRICE or not allocations:
        return sum_amounts(exact_rows)
    return divide(
        sum_amounts(_revenue_numerator(a, net_sales) for a in allocations),
        net_sales.net_units,
    )


def calculate_format_royalty(
    schedule: FormatSchedule,
    net_sales: NetSalesByFormat,
    cumulative_before: int = 0,
    basis: RoyaltyBasis = RoyaltyBasis.NET_REVENUE,
    mode: TierCalculationMode = TierCalculationMode.LIFETIME,
) -> FormatCalculation:
    """
    Calculate one format's royalty for a period.

    Args:
        schedule: The format's validated tier schedule.
        net_sales: Net sales for the format in the period.
        cumulative_before: Lifetime units calculated before this period.
            Ignored in period mode.
        basis: What tier rates multiply.
        mode: Whether tiers progress over lifetime units or restart each period.

    Returns:
        FormatCalculation whose tier rows foot to format_royalty_total.

    Raises:
        InvalidSalesData: if net_sales belongs to another format.
        TierConfigurationError: if the schedule cannot absorb every unit.
        ArithmeticOverflow: if an amount leaves the fixed-point range.
    """
    fmt = schedule.format
    if net_sales.format != fmt:
        raise InvalidSalesData(
            f"net sales for {net_sales.format.value} passed with the {fmt.value} schedule",
            format=net_sales.format.value,
        )
    ensure_in_range(net_sales.net_revenue, f"{fmt.value} net revenue")
    ensure_units_in_range(net_sales.net_units, f"{fmt.value} net units")
    start = 0 if mode == TierCalculationMode.PERIOD else cumulative_before

    allocations = resolve_tiers(schedule.tiers, start, net_sales.net_units, format=fmt.value)

    exact = [
        exact_tier_royalty(a, net_sales, basis, schedule.reference_price)
        for a in allocations
    ]
    rounded = [round_cents(amount) for amount in exact]
    format_total = ensure_in_range(
        round_cents(exact_format_royalty(allocations, net_sales, basis, exact)),
        f"{fmt.value} royalty",
    )

    drift = subtract(format_total, sum_amounts(rounded))
    if drift != 0:
        logger.debug("%s: moving %s rounding drift onto the last tier row", fmt.value, drift)
        rounded = apply_drift(rounded, drift)

    rows = tuple(
        TierBreakdown(
            tier_index=a.tier_index,
            from_units=a.from_units,
            to_units=a.to_units,
            units_in_tier=a.units_in_tier,
            rate=a.rate,
            royalty_amount=amount,
        )
        for a, amount in zip(allocations, rounded)
    )

    logger.debug(
        "%s: %d net units from %d, %d tier row(s), royalty %s",
        fmt.value, net_sales.net_units, start, len(rows), format_total,
    )

    return FormatCalculation(
        format=fmt,
        net_units=net_sales.net_units,
        net_revenue=net_sales.net_revenue,
        tier_breakdown=rows,
        format_royalty_total=format_total,
    )


def index_net_sales(net_sales: Iterable[NetSalesByFormat]) -> Dict[BookFormat, NetSalesByFormat]:
    """Key net sales rows by format; a format listed twice raises InvalidSalesData."""
    indexed: Dict[BookFormat, NetSalesByFormat] = {}
    for row in net_sales:
        if row.format in indexed:
            raise InvalidSalesData(
                f"net sales list {row.format.value} more than once",
                format=row.format.value,
            )
        indexed[row.format] = row
    return indexed


def calculate_royalties(
    contract_terms: ContractTerms,
    net_sales_by_format: Sequence[NetSalesByFormat],
    cumulative_units: Optional[Mapping[BookFormat, int]] = None,
) -> Tuple[FormatCalculation, ...]:
    """
    Calculate every format of a contract for one period.

    A format is included when it has a schedule or sales, in BookFormat
    order. Scheduled formats without sales come back with zero units and no
    tier rows.

    Raises:
        InvalidSalesData: duplicate formats in the sales input.
        TierConfigurationError: a format has net units but no schedule.
    """
    sales = index_net_sales(net_sales_by_format)
    cumulative = cumulative_units or {}

    results: List[FormatCalculation] = []
    for fmt in FORMAT_ORDER:
        schedule = contract_terms.schedule_for(fmt)
        row = sales.get(fmt)
        if schedule is None and row is None:
            continue
        if schedule is None:
            if row.net_units > 0:
                raise TierConfigurationError(
                    f"{row.net_units} net {fmt.value} units but the contract has no {fmt.value} schedule",
                    format=fmt.value,
                    net_units=row.net_units,
                )
            continue
        if row is None:
            row = NetSalesByFormat(format=fmt)

        results.append(calculate_format_royalty(
            schedule,
            row,
            cumulative_before=int(cumulative.get(fmt, 0)),
            basis=contract_terms.royalty_basis,
            mode=contract_terms.tier_calculation_mode,
        ))
    return tuple(results)


def total_royalty(calculations: Iterable[FormatCalculation]) -> Decimal:
    """Sum format totals into the period's total royalty earned."""
    return ensure_in_range(
        sum_amounts(c.format_royalty_total for c in calculations),
        "total royalty earned",
    )
