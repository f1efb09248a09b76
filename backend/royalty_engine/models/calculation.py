"""
Pydantic models for calculation results.

Results are frozen and their collections are tuples, so nothing can change
a calculation after it is assembled. FormatCalculation and
RoyaltyCalculation re-derive their totals from their own rows on
construction: a result that does not foot to the cent cannot exist, and a
stored result can be re-checked with ``verify_totals()`` after loading.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from royalty_engine.models.contract import (
    AdvanceState,
    BookFormat,
    ContractTerms,
    RoyaltyBasis,
    Tier,
    TierCalculationMode,
)
from royalty_engine.models.sales import NetSalesByFormat, RoyaltyPeriod
from royalty_engine.services.money import add, coerce_external, subtract, sum_amounts


class TierAllocation(BaseModel):
    """Units of one period that fall into one tier (resolver output, no money yet)."""
    model_config = ConfigDict(frozen=True)

    tier_index: int
    from_units: int
    to_units: Optional[int]
    rate: Decimal
    units_in_tier: int = Field(gt=0)


class TierBreakdown(BaseModel):
    """One (format, tier) row of a calculation."""
    model_config = ConfigDict(frozen=True)

    tier_index: int
    from_units: int
    to_units: Optional[int]
    units_in_tier: int = Field(gt=0)
    rate: Decimal
    royalty_amount: Decimal


class FormatCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    format: BookFormat
    net_units: int = Field(ge=0)
    net_revenue: Decimal
    tier_breakdown: Tuple[TierBreakdown, ...] = ()
    format_royalty_total: Decimal

    @model_validator(mode="after")
    def check_footing(self) -> "FormatCalculation":
        self.verify_totals()
        return self

    def verify_totals(self) -> None:
        """Raise ValueError unless rows foot to the format total and account for every unit."""
        row_total = sum_amounts(row.royalty_amount for row in self.tier_breakdown)
        if row_total != self.format_royalty_total:
            raise ValueError(
                f"{self.format.value}: tier rows sum to {row_total}, "
                f"format total is {self.format_royalty_total}"
            )
        row_units = sum(row.units_in_tier for row in self.tier_breakdown)
        if self.tier_breakdown and row_units != self.net_units:
            raise ValueError(
                f"{self.format.value}: tier rows hold {row_units} units, net_units is {self.net_units}"
            )


class AdvanceRecoupment(BaseModel):
    """The delta a period applies to an AdvanceState snapshot."""
    model_config = ConfigDict(frozen=True)

    total_advance: Decimal
    previously_recouped: Decimal
    recouped_this_period: Decimal = Field(ge=0)
    remaining_after: Decimal = Field(ge=0)


class RoyaltyCalculation(BaseModel):
    """Complete, auditable royalty result for one (contract, period)."""
    model_config = ConfigDict(frozen=True)

    contract_id: Optional[str] = None
    period: RoyaltyPeriod
    royalty_basis: RoyaltyBasis
    tier_calculation_mode: TierCalculationMode
    per_format: Tuple[FormatCalculation, ...]
    total_royalty_earned: Decimal
    advance_recouped_this_period: Decimal
    advance_remaining_after: Decimal
    net_payable: Decimal
    advance: AdvanceRecoupment

    @model_validator(mode="after")
    def check_footing(self) -> "RoyaltyCalculation":
        self.verify_totals()
        return self

    def verify_totals(self) -> None:
        """
        Re-derive every total from the rows beneath it.

        Raises:
            ValueError: naming the first amount that does not foot.
        """
        for fmt in self.per_format:
            fmt.verify_totals()

        formats_total = sum_amounts(f.format_royalty_total for f in self.per_format)
        if formats_total != self.total_royalty_earned:
            raise ValueError(
                f"format totals sum to {formats_total}, total_royalty_earned is {self.total_royalty_earned}"
            )
        if add(self.advance_recouped_this_period, self.net_payable) != self.total_royalty_earned:
            raise ValueError(
                f"recouped {self.advance_recouped_this_period} + net payable {self.net_payable} "
                f"!= earned {self.total_royalty_earned}"
            )
        if self.advance.recouped_this_period != self.advance_recouped_this_period:
            raise ValueError("advance delta disagrees with advance_recouped_this_period")
        if self.advance.remaining_after != self.advance_remaining_after:
            raise ValueError("advance delta disagrees with advance_remaining_after")
        expected_remaining = subtract(
            subtract(self.advance.total_advance, self.advance.previously_recouped),
            self.advance.recouped_this_period,
        )
        if expected_remaining != self.advance_remaining_after:
            raise ValueError(
                f"advance remaining {self.advance_remaining_after} != "
                f"{self.advance.total_advance} - {self.advance.previously_recouped} "
                f"- {self.advance.recouped_this_period}"
            )

    def format_calculation(self, fmt: BookFormat) -> Optional[FormatCalculation]:
        for calc in self.per_format:
            if calc.format == fmt:
                return calc
        return None

    @computed_field  # type: ignore[misc]
    @property
    def total_net_units(self) -> int:
        return sum(f.net_units for f in self.per_format)


# ---------------------------------------------------------------------------
# Runner (commit / dry-run) results
# ---------------------------------------------------------------------------

class CalculationMode(str, Enum):
    COMMIT = "commit"
    DRY_RUN = "dry_run"


class PreviewWarningType(str, Enum):
    NO_SALES = "no_sales"  # no net units in any format
    ZERO_NET = "zero_net"  # royalty earned, all of it recouped


class PreviewWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: PreviewWarningType
    message: str


class EngineFailure(BaseModel):
    """Typed failure value: what an EngineError looks like once it leaves the engine."""
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CalculationOutcome(BaseModel):
    """Either a calculation or a failure, never both."""
    model_config = ConfigDict(frozen=True)

    success: bool
    mode: CalculationMode
    calculation: Optional[RoyaltyCalculation] = None
    next_advance_state: Optional[AdvanceState] = None
    warnings: Tuple[PreviewWarning, ...] = ()
    error: Optional[EngineFailure] = None

    @model_validator(mode="after")
    def check_exclusive(self) -> "CalculationOutcome":
        if self.success and (self.calculation is None or self.error is not None):
            raise ValueError("successful outcome needs a calculation and no error")
        if not self.success and (self.calculation is not None or self.error is None):
            raise ValueError("failed outcome needs an error and no calculation")
        return self


class CalculationRequest(BaseModel):
    """Everything one calculation needs, as the statement generator sends it."""
    contract_terms: ContractTerms
    advance_state: AdvanceState = Field(default_factory=AdvanceState)
    net_sales: List[NetSalesByFormat] = Field(default_factory=list)
    cumulative_units: Dict[BookFormat, int] = Field(default_factory=dict)
    period: RoyaltyPeriod


# ---------------------------------------------------------------------------
# Multi-author splits
# ---------------------------------------------------------------------------

class AuthorShare(BaseModel):
    """A co-author's ownership of a title and their own advance snapshot."""
    model_config = ConfigDict(frozen=True)

    contact_id: str
    ownership_percentage: Decimal = Field(gt=0, le=100)
    advance_state: AdvanceState = Field(default_factory=AdvanceState)

    @field_validator("ownership_percentage", mode="before")
    @classmethod
    def coerce_percentage(cls, v: Any) -> Decimal:
        return coerce_external(v)


class AuthorSplit(BaseModel):
    model_config = ConfigDict(frozen=True)

    contact_id: str
    ownership_percentage: Decimal
    split_amount: Decimal
    advance: AdvanceRecoupment
    net_payable: Decimal


class SplitRoyaltyCalculation(BaseModel):
    """Title-level calculation with the royalty divided among co-authors."""
    model_config = ConfigDict(frozen=True)

    contract_id: Optional[str] = None
    period: RoyaltyPeriod
    per_format: Tuple[FormatCalculation, ...]
    title_total_royalty: Decimal
    author_splits: Tuple[AuthorSplit, ...]
    total_advance_recouped: Decimal
    total_net_payable: Decimal

    @model_validator(mode="after")
    def check_footing(self) -> "SplitRoyaltyCalculation":
        formats_total = sum_amounts(f.format_royalty_total for f in self.per_format)
        if formats_total != self.title_total_royalty:
            raise ValueError(
                f"format totals sum to {formats_total}, title total is {self.title_total_royalty}"
            )
        splits_total = sum_amounts(s.split_amount for s in self.author_splits)
        if splits_total != self.title_total_royalty:
            raise ValueError(f"author splits sum to {splits_total}, title total is {self.title_total_royalty}")
        return self


class SplitCalculationRequest(BaseModel):
    contract_terms: ContractTerms
    authors: List[AuthorShare]
    net_sales: List[NetSalesByFormat] = Field(default_factory=list)
    cumulative_units: Dict[BookFormat, int] = Field(default_factory=dict)
    period: RoyaltyPeriod


# ---------------------------------------------------------------------------
# Tier projection
# ---------------------------------------------------------------------------

class TierProjection(BaseModel):
    """Where a format's lifetime sales sit in its schedule and when the next tier arrives."""
    model_config = ConfigDict(frozen=True)

    current_tier_index: int
    current_rate: Decimal
    lifetime_units: int
    next_tier_threshold: Optional[int] = None
    units_to_next_tier: Optional[int] = None
    months_to_next_tier: Optional[int] = None


class ProjectionRequest(BaseModel):
    tiers: List[Tier]
    lifetime_units: int = Field(ge=0)
    units_per_month: int = Field(default=0, ge=0)
