"""
Net sales aggregation.

Turns raw sale/return lines for one (contract, period) into a
NetSalesByFormat row per format. Revenue is summed line by line rather than
derived from units times an average price, because discounts decouple the
two.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List

from royalty_engine.errors import InvalidSalesData
from royalty_engine.models.contract import FORMAT_ORDER, BookFormat
from royalty_engine.models.sales import LineKind, NetSalesByFormat, SalesLine
from royalty_engine.services.money import (
    ZERO,
    add,
    ensure_in_range,
    ensure_units_in_range,
    subtract,
)

logger = logging.getLogger(__name__)


class _FormatTotals:
    __slots__ = ("gross_units", "returned_units", "gross_revenue", "returned_revenue")

    def __init__(self) -> None:
        self.gross_units = 0
        self.returned_units = 0
        self.gross_revenue: Decimal = ZERO
        self.returned_revenue: Decimal = ZERO


def aggregate_net_sales(lines: Iterable[SalesLine]) -> List[NetSalesByFormat]:
    """
    Aggregate raw ledger lines into net sales per format.

    Sale lines add to gross; approved return lines add to returns. Pending
    and rejected returns are skipped. Formats come back in BookFormat order
    and only when at least one line counted for them.

    Raises:
        InvalidSalesData: a line has a negative quantity or amount, returns
            exceed gross units for a format, or net revenue is negative.
            Nothing is clamped.
        ArithmeticOverflow: a total leaves the fixed-point range.
    """
    totals: Dict[BookFormat, _FormatTotals] = {}
    skipped = 0

    for line in lines:
        if line.quantity < 0 or line.amount < 0:
            raise InvalidSalesData(
                f"{line.kind.value} line for {line.format.value} has negative "
                f"quantity ({line.quantity}) or amount ({line.amount})",
                format=line.format.value,
                quantity=line.quantity,
                amount=line.amount,
            )
        if not line.counts_toward_net:
            skipped += 1
            continue

        bucket = totals.setdefault(line.format, _FormatTotals())
        if line.kind == LineKind.SALE:
            bucket.gross_units += line.quantity
            bucket.gross_revenue = add(bucket.gross_revenue, line.amount)
        else:
            bucket.returned_units += line.quantity
            bucket.returned_revenue = add(bucket.returned_revenue, line.amount)

    if skipped:
        logger.debug("Skipped %d unapproved return line(s)", skipped)

    results: List[NetSalesByFormat] = []
    for fmt in FORMAT_ORDER:
        bucket = totals.get(fmt)
        if bucket is None:
            continue
        results.append(build_net_sales(
            fmt,
            gross_units=bucket.gross_units,
            returned_units=bucket.returned_units,
            gross_revenue=bucket.gross_revenue,
            returned_revenue=bucket.returned_revenue,
        ))
    return results


def build_net_sales(
    fmt: BookFormat,
    gross_units: int,
    returned_units: int,
    gross_revenue: Decimal,
    returned_revenue: Decimal,
) -> NetSalesByFormat:
    """
    Build one NetSalesByFormat from ledger totals.

    Raises:
        InvalidSalesData: returns exceed gross units, or returned revenue
            exceeds gross revenue.
    """
    ensure_units_in_range(gross_units, f"{fmt.value} gross units")
    ensure_units_in_range(returned_units, f"{fmt.value} returned units")
    ensure_in_range(gross_revenue, f"{fmt.value} gross revenue")
    ensure_in_range(returned_revenue, f"{fmt.value} returned revenue")

    if returned_units > gross_units:
        raise InvalidSalesData(
            f"{fmt.value}: returned units ({returned_units}) exceed gross units ({gross_units})",
            format=fmt.value,
            gross_units=gross_units,
            returned_units=returned_units,
        )

    net_revenue = subtract(gross_revenue, returned_revenue)
    if net_revenue < 0:
        raise InvalidSalesData(
            f"{fmt.value}: returned revenue ({returned_revenue}) exceeds gross revenue ({gross_revenue})",
            format=fmt.value,
            gross_revenue=gross_revenue,
            returned_revenue=returned_revenue,
        )

    return NetSalesByFormat(
        format=fmt,
        gross_units=gross_units,
        returned_units=returned_units,
        net_units=gross_units - returned_units,
        gross_revenue=gross_revenue,
        returned_revenue=returned_revenue,
        net_revenue=net_revenue,
    )
