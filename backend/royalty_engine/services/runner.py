"""
Calculation runner: commit and dry-run modes.

Both modes make the same pure ``calculate`` call, so a dry run previews
exactly what a commit would produce. The only difference is that a commit
also hands back the next AdvanceState for the caller to persist; a dry run
never produces one.

Engine errors are caught here and returned as an EngineFailure value, so the
statement generator can branch on ``outcome.success`` instead of wrapping
every call in try/except.
"""

import logging
from typing import List

from royalty_engine.errors import EngineError
from royalty_engine.models.calculation import (
    CalculationMode,
    CalculationOutcome,
    CalculationRequest,
    PreviewWarning,
    PreviewWarningType,
    RoyaltyCalculation,
)
from royalty_engine.services.engine import calculate

logger = logging.getLogger(__name__)


def preview_warnings(calculation: RoyaltyCalculation) -> List[PreviewWarning]:
    """Warnings worth showing before a statement is generated."""
    warnings: List[PreviewWarning] = []
    if calculation.total_net_units == 0:
        warnings.append(PreviewWarning(
            type=PreviewWarningType.NO_SALES,
            message=f"No net sales in any format for {calculation.period.label}",
        ))
    elif calculation.total_royalty_earned > 0 and calculation.net_payable == 0:
        warnings.append(PreviewWarning(
            type=PreviewWarningType.ZERO_NET,
            message=(
                f"Royalty of {calculation.total_royalty_earned} is fully absorbed by the advance; "
                f"{calculation.advance_remaining_after} remains to recoup"
            ),
        ))
    return warnings


def run_calculation(
    request: CalculationRequest,
    mode: CalculationMode = CalculationMode.DRY_RUN,
) -> CalculationOutcome:
    """
    Run one calculation and wrap the result or failure in a CalculationOutcome.

    Only EngineError is converted; anything else is a bug and propagates.
    """
    try:
        calculation = calculate(
            request.contract_terms,
            request.advance_state,
            request.net_sales,
            request.cumulative_units,
            request.period,
        )
    except EngineError as exc:
        logger.warning(
            "%s calculation failed for contract %s: %s %s",
            mode.value, request.contract_terms.contract_id, exc.code, exc.message,
        )
        return CalculationOutcome(success=False, mode=mode, error=exc.to_failure())

    next_state = None
    if mode == CalculationMode.COMMIT:
        next_state = request.advance_state.apply(calculation.advance)

    return CalculationOutcome(
        success=True,
        mode=mode,
        calculation=calculation,
        next_advance_state=next_state,
        warnings=tuple(preview_warnings(calculation)),
    )
