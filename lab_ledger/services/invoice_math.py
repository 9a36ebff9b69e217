"""
Invoice arithmetic shared by the billing service, the invoice repository and
the analytics reductions. Everything here is pure.
"""
import math
from typing import Dict, Iterable

PAID = "Paid"
PARTIAL = "Partial"
PENDING = "Pending"


def round_money(value) -> float:
    """Round to paise/cents; None and non-finite values count as zero."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    # +0.0 turns a -0.0 result into 0.0
    return round(number, 2) + 0.0


def compute_invoice_totals(prices: Iterable[float], discount: float = 0, paid_amount: float = 0) -> Dict[str, float]:
    subtotal = round_money(sum(float(price) for price in prices))
    final_amount = round_money(max(0.0, subtotal - float(discount or 0)))
    paid = float(paid_amount or 0)
    return {
        "subtotal": subtotal,
        "finalAmount": final_amount,
        "balance": round_money(max(0.0, final_amount - paid)),
        "profit": round_money(max(0.0, paid - final_amount)),
    }


def derive_status(final_amount: float, paid_amount: float) -> str:
    balance = max(0.0, round_money(final_amount) - round_money(paid_amount))
    if balance <= 0:
        return PAID
    if paid_amount and paid_amount > 0:
        return PARTIAL
    return PENDING
