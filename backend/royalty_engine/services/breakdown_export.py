"""
Audit workbook export.

Renders a RoyaltyCalculation as an .xlsx workbook so a statement can be
checked line by line when an author disputes it: one row per (format, tier),
a total row per format, and the advance summary underneath.

Public API:
  generate_calculation_workbook(calculation: RoyaltyCalculation) -> bytes
"""

import io
import logging
from typing import Dict

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from royalty_engine.models.calculation import FormatCalculation, RoyaltyCalculation

logger = logging.getLogger(__name__)

COLUMNS = [
    "Format",
    "Tier",
    "From Units",
    "To Units",
    "Units in Tier",
    "Rate",
    "Royalty",
]

HEADER_ROW = 5

CURRENCY_FORMAT = '"$"#,##0.00'
RATE_FORMAT = "0.00%"
UNITS_FORMAT = "#,##0"

_HEADER_FONT = Font(bold=True, size=11)
_TITLE_FONT = Font(bold=True, size=13)
_SUBTITLE_FONT = Font(bold=False, size=10, italic=True)
_TOTAL_FONT = Font(bold=True)

_HEADER_FILL = PatternFill(
    start_color="D9E1F2",
    end_color="D9E1F2",
    fill_type="solid",
)

_COLUMN_WIDTHS: Dict[str, int] = {
    "Format": 14,
    "Tier": 8,
    "From Units": 14,
    "To Units": 14,
    "Units in Tier": 14,
    "Rate": 10,
    "Royalty": 18,
}


def _append_format_rows(ws, calc: FormatCalculation) -> None:
    for row in calc.tier_breakdown:
        ws.append([
            calc.format.value,
            row.tier_index + 1,
            row.from_units,
            row.to_units if row.to_units is not None else "unbounded",
            row.units_in_tier,
            row.rate,
            row.royalty_amount,
        ])
        r = ws.max_row
        ws.cell(row=r, column=5).number_format = UNITS_FORMAT
        ws.cell(row=r, column=6).number_format = RATE_FORMAT
        ws.cell(row=r, column=7).number_format = CURRENCY_FORMAT

    ws.append([f"{calc.format.value} total", None, None, None, calc.net_units, None, calc.format_royalty_total])
    r = ws.max_row
    for col in (1, 5, 7):
        ws.cell(row=r, column=col).font = _TOTAL_FONT
    ws.cell(row=r, column=5).number_format = UNITS_FORMAT
    ws.cell(row=r, column=7).number_format = CURRENCY_FORMAT


def generate_calculation_workbook(calculation: RoyaltyCalculation) -> bytes:
    """
    Build the audit workbook for a calculation.

    Amounts and rates are written as numbers (with currency and percentage
    number formats) so the sheet can be re-footed in a spreadsheet.

    Returns:
        Bytes of the generated .xlsx file.
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Royalty Calculation"

    ws.append([f"Royalty Calculation: contract {calculation.contract_id or 'n/a'}"])
    ws.cell(row=1, column=1).font = _TITLE_FONT

    ws.append([f"Period: {calculation.period.label}"])
    ws.cell(row=2, column=1).font = _SUBTITLE_FONT

    ws.append([
        f"Royalty basis: {calculation.royalty_basis.value}  |  "
        f"Tier mode: {calculation.tier_calculation_mode.value}"
    ])
    ws.cell(row=3, column=1).font = _SUBTITLE_FONT

    ws.append([])

    ws.append(COLUMNS)
    for col_idx in range(1, len(COLUMNS) + 1):
        cell = ws.cell(row=HEADER_ROW, column=col_idx)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center")

    for calc in calculation.per_format:
        _append_format_rows(ws, calc)

    ws.append([])
    summary = [
        ("Total Royalty Earned", calculation.total_royalty_earned),
        ("Advance Recouped", calculation.advance_recouped_this_period),
        ("Advance Remaining", calculation.advance_remaining_after),
        ("Net Payable", calculation.net_payable),
    ]
    for label, amount in summary:
        ws.append([label, None, None, None, None, None, amount])
        r = ws.max_row
        ws.cell(row=r, column=1).font = _TOTAL_FONT
        ws.cell(row=r, column=7).number_format = CURRENCY_FORMAT

    for col_idx, col_name in enumerate(COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = _COLUMN_WIDTHS[col_name]
    ws.column_dimensions["A"].width = 24

    ws.freeze_panes = ws.cell(row=HEADER_ROW + 1, column=1)

    logger.debug(
        "Built audit workbook for contract %s with %d format(s)",
        calculation.contract_id, len(calculation.per_format),
    )

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.read()
