"""
Royalty calculation API endpoints.

Thin layer over the engine: requests carry every snapshot the engine needs
(contract terms, advance state, net sales, cumulative units), so nothing is
read from or written to storage here.
"""

import io
import logging
from typing import List, NoReturn

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from royalty_engine.errors import EngineError
from royalty_engine.models.calculation import (
    CalculationMode,
    CalculationOutcome,
    CalculationRequest,
    EngineFailure,
    ProjectionRequest,
    SplitCalculationRequest,
    SplitRoyaltyCalculation,
    TierProjection,
)
from royalty_engine.models.contract import validate_tier_contiguity
from royalty_engine.models.sales import NetSalesByFormat, SalesLine
from royalty_engine.services.breakdown_export import generate_calculation_workbook
from royalty_engine.services.engine import calculate
from royalty_engine.services.net_sales import aggregate_net_sales
from royalty_engine.services.runner import run_calculation
from royalty_engine.services.splits import calculate_split
from royalty_engine.services.tier_resolver import project_tier_crossover

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_CODE = {
    "CONTRACT_NOT_FOUND": 404,
}

_ERROR_RESPONSES = {
    404: {"description": "Contract terms missing or without royalty schedules"},
    422: {"description": "Sales data, tier configuration, or amounts cannot be calculated"},
}


def _raise_failure(failure: EngineFailure) -> NoReturn:
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(failure.code, 422),
        detail=failure.model_dump(),
    )


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """
    Typed body for engine errors raised while the request is parsed.

    Contract terms and net sales validate on construction, so a tier gap or
    returns above gross surface before the endpoint runs.
    """
    logger.warning("Rejected %s: %s %s", request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=_STATUS_BY_CODE.get(exc.code, 422),
        content={"detail": exc.to_dict()},
    )


@router.post("/calculate", response_model=CalculationOutcome, responses=_ERROR_RESPONSES)
async def calculate_royalties(
    request: CalculationRequest,
    mode: CalculationMode = CalculationMode.DRY_RUN,
) -> CalculationOutcome:
    """
    Calculate royalties for one contract and period.

    ``mode=dry_run`` (the default) previews the calculation. ``mode=commit``
    also returns ``next_advance_state``, the snapshot the caller must persist.
    Both modes produce the same calculation.
    """
    outcome = run_calculation(request, mode)
    if not outcome.success:
        _raise_failure(outcome.error)
    return outcome


@router.post("/calculate/export", responses=_ERROR_RESPONSES)
async def export_calculation(request: CalculationRequest) -> StreamingResponse:
    """Download the audit workbook (.xlsx) for a calculation."""
    try:
        calculation = calculate(
            request.contract_terms,
            request.advance_state,
            request.net_sales,
            request.cumulative_units,
            request.period,
        )
    except EngineError as exc:
        _raise_failure(exc.to_failure())

    xlsx_bytes = generate_calculation_workbook(calculation)
    contract_part = calculation.contract_id or "contract"
    filename = f"royalty-{contract_part}-{calculation.period.end_date.isoformat()}.xlsx"

    return StreamingResponse(
        io.BytesIO(xlsx_bytes),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


@router.post("/net-sales", response_model=List[NetSalesByFormat], responses=_ERROR_RESPONSES)
async def net_sales(lines: List[SalesLine]) -> List[NetSalesByFormat]:
    """Aggregate raw sale and return lines into net sales per format."""
    try:
        return aggregate_net_sales(lines)
    except EngineError as exc:
        _raise_failure(exc.to_failure())


@router.post("/split", response_model=SplitRoyaltyCalculation, responses=_ERROR_RESPONSES)
async def split_royalties(request: SplitCalculationRequest) -> SplitRoyaltyCalculation:
    """Calculate a multi-author title and split the royalty by ownership."""
    try:
        return calculate_split(
            request.contract_terms,
            request.authors,
            request.net_sales,
            request.cumulative_units,
            request.period,
        )
    except EngineError as exc:
        logger.warning("Split calculation failed: %s %s", exc.code, exc.message)
        _raise_failure(exc.to_failure())


@router.post("/projection", response_model=TierProjection, responses=_ERROR_RESPONSES)
async def tier_projection(request: ProjectionRequest) -> TierProjection:
    """Project when a format's lifetime sales reach its next tier."""
    try:
        tiers = validate_tier_contiguity(request.tiers)
        return project_tier_crossover(tiers, request.lifetime_units, request.units_per_month)
    except EngineError as exc:
        _raise_failure(exc.to_failure())
