"""
GST extraction for inclusive pricing.

Shop prices already contain GST, so the tax is backed out by division:

    taxable = inclusive / (1 + (cgst% + sgst%) / 100)

Each step is rounded to the cent on its own, which means ``total`` may differ
from the inclusive input by up to 0.02. That drift is accepted, not corrected.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from gstpos.domain.money import ZERO, round2, to_decimal

DEFAULT_CGST_PCT = Decimal("2.5")
DEFAULT_SGST_PCT = Decimal("2.5")

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class TaxBreakdown:
    taxable: Decimal
    cgst: Decimal
    sgst: Decimal
    total: Decimal

    @property
    def tax(self) -> Decimal:
        return round2(self.cgst + self.sgst)


def extract_tax(inclusive_amount, cgst_pct=DEFAULT_CGST_PCT, sgst_pct=DEFAULT_SGST_PCT) -> TaxBreakdown:
    amount = to_decimal(inclusive_amount)
    cgst_rate = to_decimal(cgst_pct)
    sgst_rate = to_decimal(sgst_pct)
    if amount == 0:
        return TaxBreakdown(taxable=ZERO, cgst=ZERO, sgst=ZERO, total=ZERO)

    total_rate = cgst_rate + sgst_rate
    taxable = round2(amount / (1 + total_rate / HUNDRED))
    cgst = round2(taxable * cgst_rate / HUNDRED)
    sgst = round2(taxable * sgst_rate / HUNDRED)
    return TaxBreakdown(taxable=taxable, cgst=cgst, sgst=sgst, total=round2(taxable + cgst + sgst))
