"""
Multi-author ownership splits.

A title with several authors earns one royalty, computed once against the
title's tier schedule. That royalty is then divided by ownership percentage
and each author's share is recouped against the author's own advance.
"""

import logging
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

from royalty_engine.errors import ContractNotFound, OwnershipSplitError
from royalty_engine.models.calculation import AuthorShare, AuthorSplit, SplitRoyaltyCalculation
from royalty_engine.models.contract import BookFormat, ContractTerms
from royalty_engine.models.sales import NetSalesByFormat, RoyaltyPeriod
from royalty_engine.services.advance import net_payable, recoup_advance
from royalty_engine.services.engine import require_terms
from royalty_engine.services.money import (
    apply_drift,
    divide,
    multiply,
    round_cents,
    subtract,
    sum_amounts,
)
from royalty_engine.services.royalty_calc import calculate_royalties, total_royalty

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def split_royalty_by_ownership(total: Decimal, shares: Sequence[AuthorShare]) -> List[Decimal]:
    """
    Divide a royalty by ownership percentage.

    Each share is rounded half-up to the cent and the last author takes the
    remainder, so the splits always sum to ``total``.

    Raises:
        OwnershipSplitError: if there are no shares, a contact appears twice,
            or the percentages do not total exactly 100.
    """
    if not shares:
        raise OwnershipSplitError("At least one author share is required", total_percentage="0")

    seen = set()
    for share in shares:
        if share.contact_id in seen:
            raise OwnershipSplitError(f"Author {share.contact_id} is listed more than once")
        seen.add(share.contact_id)

    total_percentage = sum_amounts(s.ownership_percentage for s in shares)
    if total_percentage != HUNDRED:
        raise OwnershipSplitError(
            f"Ownership percentages total {total_percentage}%, expected 100%",
            total_percentage=total_percentage,
        )

    amounts = [
        round_cents(divide(multiply(total, s.ownership_percentage), HUNDRED))
        for s in shares
    ]
    drift = subtract(total, sum_amounts(amounts))
    if drift != 0:
        amounts = apply_drift(amounts, drift)
    return amounts


def calculate_split(
    contract_terms: Optional[ContractTerms],
    authors: Sequence[AuthorShare],
    net_sales: Sequence[NetSalesByFormat],
    cumulative_units: Optional[Mapping[BookFormat, int]],
    period: RoyaltyPeriod,
) -> SplitRoyaltyCalculation:
    """
    Calculate a title's royalty and split it among its authors.

    Raises:
        ContractNotFound: no contract terms, no schedules, or no authors.
        OwnershipSplitError: percentages do not total 100.
        InvalidSalesData, TierConfigurationError, ArithmeticOverflow: as
            for a single-author calculation.
    """
    terms = require_terms(contract_terms)
    if not authors:
        raise ContractNotFound(terms.contract_id, reason="title has no authors")

    per_format = calculate_royalties(terms, net_sales, cumulative_units)
    title_total = total_royalty(per_format)
    amounts = split_royalty_by_ownership(title_total, authors)

    splits: List[AuthorSplit] = []
    for share, amount in zip(authors, amounts):
        recoupment = recoup_advance(amount, share.advance_state)
        splits.append(AuthorSplit(
            contact_id=share.contact_id,
            ownership_percentage=share.ownership_percentage,
            split_amount=amount,
            advance=recoupment,
            net_payable=net_payable(amount, recoupment),
        ))

    logger.info(
        "Split contract %s for %s: %s across %d author(s)",
        terms.contract_id, period.label, title_total, len(splits),
    )

    return SplitRoyaltyCalculation(
        contract_id=terms.contract_id,
        period=period,
        per_format=per_format,
        title_total_royalty=title_total,
        author_splits=tuple(splits),
        total_advance_recouped=sum_amounts(s.advance.recouped_this_period for s in splits),
        total_net_payable=sum_amounts(s.net_payable for s in splits),
    )
