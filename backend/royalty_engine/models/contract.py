"""
Pydantic models for contract terms and advance state.

ContractTerms is the validated, immutable form of a contract's royalty
schedule. It is built once at the boundary (usually via
``ContractTerms.from_tier_rows`` on rows from the contract store) and the
engine never re-parses it.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from royalty_engine.errors import TierConfigurationError
from royalty_engine.services.money import add, coerce_external, parse_percentage, subtract


class BookFormat(str, Enum):
    PHYSICAL = "physical"
    EBOOK = "ebook"
    AUDIOBOOK = "audiobook"


# Output ordering for every per-format list the engine produces
FORMAT_ORDER: Tuple[BookFormat, ...] = tuple(BookFormat)


class RoyaltyBasis(str, Enum):
    """What a tier rate is multiplied by."""
    NET_REVENUE = "net_revenue"          # tier's share of actual net revenue
    REFERENCE_PRICE = "reference_price"  # units * fixed per-format reference price


class TierCalculationMode(str, Enum):
    LIFETIME = "lifetime"  # tiers progress over cumulative units sold
    PERIOD = "period"      # tiers restart every period


class Tier(BaseModel):
    """
    Single tier in a format's royalty schedule.

    ``from_units`` and ``to_units`` are inclusive unit numbers over the life of
    the contract, written the way contracts state them: ``0-5000`` covers the
    first 5,000 units, ``5001+`` everything after. ``to_units=None`` is
    unbounded.
    """
    model_config = ConfigDict(frozen=True)

    from_units: int = Field(ge=0)
    to_units: Optional[int] = Field(default=None, ge=1)
    rate: Decimal = Field(ge=0, le=1)

    @field_validator("rate", mode="before")
    @classmethod
    def coerce_rate(cls, v: Any) -> Decimal:
        """Accept fractions (0.10, "0.10") and contract-style percentages ("10%")."""
        if isinstance(v, str) and "%" in v:
            return parse_percentage(v)
        return coerce_external(v)

    @model_validator(mode="after")
    def check_bounds(self) -> "Tier":
        if self.to_units is not None and self.to_units < max(self.from_units, 1):
            raise ValueError(
                f"Tier upper bound {self.to_units} is below its lower bound {self.from_units}"
            )
        return self

    @property
    def lower_bound(self) -> int:
        """Units sold before this tier starts (half-open lower edge)."""
        return max(self.from_units, 1) - 1

    @property
    def upper_bound(self) -> Optional[int]:
        """Units sold when this tier is exhausted, or None if unbounded."""
        return self.to_units

    @property
    def label(self) -> str:
        if self.to_units is None:
            return f"{self.from_units:,}+"
        return f"{self.from_units:,}-{self.to_units:,}"


def validate_tier_contiguity(tiers: Iterable[Tier], format: Optional[str] = None) -> List[Tier]:
    """
    Sort tiers and check they are contiguous and non-overlapping.

    The first tier must start at 0 or 1, each following tier must start one
    unit after the previous tier ends, and only the last tier may be
    unbounded.

    Returns:
        The tiers sorted by from_units.

    Raises:
        TierConfigurationError: on an empty list, a gap, or an overlap.
    """
    ordered = sorted(tiers, key=lambda t: t.from_units)
    if not ordered:
        raise TierConfigurationError("Tier schedule is empty", format=format)

    if ordered[0].from_units > 1:
        raise TierConfigurationError(
            f"First tier starts at {ordered[0].from_units}; units below it have no rate",
            format=format,
            tier_index=0,
        )

    for index in range(1, len(ordered)):
        previous, current = ordered[index - 1], ordered[index]
        if previous.to_units is None:
            raise TierConfigurationError(
                f"Unbounded tier {previous.label} is followed by tier {current.label}",
                format=format,
                tier_index=index,
            )
        expected = previous.to_units + 1
        if current.from_units < expected:
            raise TierConfigurationError(
                f"Tier {current.label} overlaps tier {previous.label}",
                format=format,
                tier_index=index,
            )
        if current.from_units > expected:
            raise TierConfigurationError(
                f"Gap between tier {previous.label} and tier {current.label}",
                format=format,
                tier_index=index,
            )
    return ordered


class FormatSchedule(BaseModel):
    """Tier schedule for one format, plus its reference price when the contract needs one."""
    model_config = ConfigDict(frozen=True)

    format: BookFormat
    tiers: Tuple[Tier, ...]
    reference_price: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("reference_price", mode="before")
    @classmethod
    def coerce_reference_price(cls, v: Any) -> Optional[Decimal]:
        if v is None:
            return None
        return coerce_external(v)

    @field_validator("tiers")
    @classmethod
    def sort_and_check_tiers(cls, v: Tuple[Tier, ...], info: ValidationInfo) -> Tuple[Tier, ...]:
        fmt = info.data.get("format")
        return tuple(validate_tier_contiguity(v, format=fmt.value if fmt else None))


class ContractTerms(BaseModel):
    """
    Royalty terms of one contract: a schedule per format and the per-contract
    choices of royalty basis and tier calculation mode.
    """
    model_config = ConfigDict(frozen=True)

    contract_id: Optional[str] = None
    royalty_basis: RoyaltyBasis = RoyaltyBasis.NET_REVENUE
    tier_calculation_mode: TierCalculationMode = TierCalculationMode.LIFETIME
    schedules: Dict[BookFormat, FormatSchedule] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_schedules(self) -> "ContractTerms":
        for fmt, schedule in self.schedules.items():
            if schedule.format != fmt:
                raise ValueError(
                    f"Schedule keyed as {fmt.value} is for format {schedule.format.value}"
                )
            if self.royalty_basis == RoyaltyBasis.REFERENCE_PRICE and schedule.reference_price is None:
                raise TierConfigurationError(
                    f"Format {fmt.value} needs a reference_price under the reference_price basis",
                    format=fmt.value,
                )
        return self

    def schedule_for(self, fmt: BookFormat) -> Optional[FormatSchedule]:
        return self.schedules.get(fmt)

    @classmethod
    def from_tier_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        contract_id: Optional[str] = None,
        royalty_basis: RoyaltyBasis = RoyaltyBasis.NET_REVENUE,
        tier_calculation_mode: TierCalculationMode = TierCalculationMode.LIFETIME,
        reference_prices: Optional[Mapping[str, Any]] = None,
    ) -> "ContractTerms":
        """
        Build ContractTerms from flat tier rows as the contract store keeps them.

        Each row has ``format`` and ``rate`` plus either
        ``min_quantity``/``max_quantity`` or ``from_units``/``to_units``.
        Rows may arrive in any order and with formats interleaved.

        Raises:
            TierConfigurationError: if any format's tiers have a gap or overlap.
        """
        grouped: Dict[BookFormat, List[Tier]] = {}
        for row in rows:
            fmt = BookFormat(row["format"])
            from_units = row.get("from_units", row.get("min_quantity", 0))
            to_units = row.get("to_units", row.get("max_quantity"))
            grouped.setdefault(fmt, []).append(
                Tier(from_units=int(from_units), to_units=to_units, rate=row["rate"])
            )

        prices = {BookFormat(k): v for k, v in (reference_prices or {}).items()}
        schedules: Dict[BookFormat, FormatSchedule] = {}
        for fmt in FORMAT_ORDER:
            if fmt not in grouped:
                continue
            ordered = validate_tier_contiguity(grouped[fmt], format=fmt.value)
            schedules[fmt] = FormatSchedule(
                format=fmt,
                tiers=tuple(ordered),
                reference_price=prices.get(fmt),
            )

        return cls(
            contract_id=contract_id,
            royalty_basis=royalty_basis,
            tier_calculation_mode=tier_calculation_mode,
            schedules=schedules,
        )


class AdvanceState(BaseModel):
    """
    Snapshot of a contract's advance: the total paid and how much has been
    recouped so far. The engine reads it and returns a delta; it never
    updates it.
    """
    model_config = ConfigDict(frozen=True)

    total_advance: Decimal = Field(default=Decimal("0"), ge=0)
    recouped_to_date: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("total_advance", "recouped_to_date", mode="before")
    @classmethod
    def coerce_amounts(cls, v: Any) -> Decimal:
        return coerce_external(v)

    @model_validator(mode="after")
    def check_recouped_within_advance(self) -> "AdvanceState":
        if self.recouped_to_date > self.total_advance:
            raise ValueError(
                f"recouped_to_date {self.recouped_to_date} exceeds total_advance {self.total_advance}"
            )
        return self

    @property
    def outstanding(self) -> Decimal:
        return subtract(self.total_advance, self.recouped_to_date)

    @property
    def is_fully_recouped(self) -> bool:
        return self.recouped_to_date >= self.total_advance

    def apply(self, recoupment: Any) -> "AdvanceState":
        """
        Return the next snapshot after a period's recoupment.

        ``recoupment`` must have been computed from this exact snapshot;
        applying it to any other state raises ValueError so a stale
        calculation can never recoup the same advance window twice.
        """
        if (
            recoupment.total_advance != self.total_advance
            or recoupment.previously_recouped != self.recouped_to_date
        ):
            raise ValueError(
                "Recoupment was calculated against a different advance snapshot "
                f"(recouped {recoupment.previously_recouped}, now {self.recouped_to_date})"
            )
        return AdvanceState(
            total_advance=self.total_advance,
            recouped_to_date=add(self.recouped_to_date, recoupment.recouped_this_period),
        )
