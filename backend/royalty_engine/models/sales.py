"""
Pydantic models for sales input: raw sale/return lines, the aggregated
net sales per format, and the royalty period.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from royalty_engine.errors import InvalidSalesData
from royalty_engine.models.contract import BookFormat
from royalty_engine.services.money import coerce_external, subtract


class LineKind(str, Enum):
    SALE = "sale"
    RETURN = "return"


class ReturnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RoyaltyPeriod(BaseModel):
    """Inclusive date range a calculation covers."""
    model_config = ConfigDict(frozen=True)

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_order(self) -> "RoyaltyPeriod":
        if self.start_date > self.end_date:
            raise ValueError(
                f"period start_date ({self.start_date}) must be on or before end_date ({self.end_date})"
            )
        return self

    @property
    def label(self) -> str:
        return f"{self.start_date.isoformat()} to {self.end_date.isoformat()}"


class SalesLine(BaseModel):
    """
    One raw line from the sales/returns ledger for a (contract, period).

    ``quantity`` and ``amount`` are always non-negative; the line kind says
    which side of the ledger they land on. Return lines only count once
    approved; sale lines have no status.
    """
    model_config = ConfigDict(frozen=True)

    format: BookFormat
    kind: LineKind = LineKind.SALE
    quantity: int
    amount: Decimal
    status: Optional[ReturnStatus] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return coerce_external(v)

    @property
    def counts_toward_net(self) -> bool:
        if self.kind == LineKind.SALE:
            return True
        # Returns recorded without a status come from ledgers that only export approved ones
        return self.status in (None, ReturnStatus.APPROVED)


class NetSalesByFormat(BaseModel):
    """
    Net sales for one format in one period.

    Built by the net sales aggregator, or supplied directly by a caller that
    already has ledger totals. Construction enforces the arithmetic:
    net_units = gross_units - returned_units and neither net may be negative.
    Nets that do not reconcile raise InvalidSalesData, which pydantic passes
    through as is.
    """
    model_config = ConfigDict(frozen=True)

    format: BookFormat
    gross_units: int = Field(default=0, ge=0)
    returned_units: int = Field(default=0, ge=0)
    net_units: int = 0
    gross_revenue: Optional[Decimal] = None
    returned_revenue: Optional[Decimal] = None
    net_revenue: Decimal = Decimal("0")

    @field_validator("gross_revenue", "returned_revenue", mode="before")
    @classmethod
    def coerce_optional_revenue(cls, v: Any) -> Optional[Decimal]:
        if v is None:
            return None
        return coerce_external(v)

    @field_validator("net_revenue", mode="before")
    @classmethod
    def coerce_net_revenue(cls, v: Any) -> Decimal:
        return coerce_external(v)

    @model_validator(mode="before")
    @classmethod
    def derive_net_units(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("net_units") is None:
            data = dict(data)
            data["net_units"] = int(data.get("gross_units") or 0) - int(data.get("returned_units") or 0)
        return data

    @model_validator(mode="after")
    def check_nets(self) -> "NetSalesByFormat":
        fmt = self.format.value
        if self.returned_units > self.gross_units:
            raise InvalidSalesData(
                f"{fmt}: returned units ({self.returned_units}) exceed gross units ({self.gross_units})",
                format=fmt,
                gross_units=self.gross_units,
                returned_units=self.returned_units,
            )
        if self.net_units != self.gross_units - self.returned_units:
            raise InvalidSalesData(
                f"{fmt}: net_units {self.net_units} != gross_units "
                f"{self.gross_units} - returned_units {self.returned_units}",
                format=fmt,
                net_units=self.net_units,
            )
        if self.net_revenue < 0:
            raise InvalidSalesData(
                f"{fmt}: net revenue ({self.net_revenue}) is negative",
                format=fmt,
                net_revenue=self.net_revenue,
            )
        if self.gross_revenue is not None and self.returned_revenue is not None:
            expected = subtract(self.gross_revenue, self.returned_revenue)
            if expected != self.net_revenue:
                raise InvalidSalesData(
                    f"{fmt}: net_revenue {self.net_revenue} != gross_revenue "
                    f"{self.gross_revenue} - returned_revenue {self.returned_revenue}",
                    format=fmt,
                    net_revenue=self.net_revenue,
                )
        return self
