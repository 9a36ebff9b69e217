import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd

from lab_ledger.core.config import settings
from lab_ledger.core.exceptions import ConcurrencyError, NotFoundError, PersistenceError, ValidationError
from lab_ledger.models.invoice import InvoiceCreate, InvoiceListResponse, InvoiceResponse, PaymentSplit
from lab_ledger.repositories.catalog_repository import CatalogRepository
from lab_ledger.repositories.invoice_repository import InvoiceRepository
from lab_ledger.schemas.analytics import BillingStats, DailyStat
from lab_ledger.services import invoice_math
from lab_ledger.services.invoice_math import round_money

logger = logging.getLogger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)


def day_bounds(start_day: date, end_day: Optional[date] = None):
    """Expand calendar days to [00:00:00.000, 23:59:59.999] local time."""
    return datetime.combine(start_day, time.min), datetime.combine(end_day or start_day, END_OF_DAY)


def _is_amount(value) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value >= 0


class BillingService:

    compute_invoice_totals = staticmethod(invoice_math.compute_invoice_totals)
    derive_status = staticmethod(invoice_math.derive_status)

    @staticmethod
    def _resolve_payments(payload: InvoiceCreate, paid_amount: float) -> Dict[str, Any]:
        """Work out the stored payment mode and split payments."""
        errors = []
        splits: List[PaymentSplit] = payload.payments or []
        allowed = settings.invoice_payment_modes

        # Mixed is derived from the splits, never accepted from the client
        if payload.paymentMode is not None and payload.paymentMode not in allowed:
            raise ValidationError(
                "Validation failed",
                [{"field": "paymentMode", "message": f"paymentMode must be one of {', '.join(allowed)}"}],
            )

        if splits:
            for index, split in enumerate(splits):
                if split.mode not in allowed:
                    errors.append({"field": f"payments[{index}].mode", "message": f"mode must be one of {', '.join(allowed)}"})
                if not _is_amount(split.amount):
                    errors.append({"field": f"payments[{index}].amount", "message": "amount must be a non-negative number"})
            if not errors and round_money(sum(s.amount for s in splits)) != round_money(paid_amount):
                errors.append({"field": "payments", "message": "split payments must add up to paidAmount"})
            if errors:
                raise ValidationError("Validation failed", errors)
            payments = [{"mode": s.mode, "amount": round_money(s.amount)} for s in splits]
            mode = "Mixed" if len(splits) > 1 else splits[0].mode
        else:
            mode = payload.paymentMode or "Cash"
            payments = [{"mode": mode, "amount": paid_amount}] if paid_amount > 0 else []

        return {"payment_mode": mode, "payments": payments}

    @staticmethod
    async def build_invoice_draft(payload: InvoiceCreate) -> Dict[str, Any]:
        """Validate a billing request and price it from the current catalog."""
        errors = []
        if payload.patientId is None:
            errors.append({"field": "patientId", "message": "patientId is required"})
        if not payload.tests:
            errors.append({"field": "tests", "message": "At least one test must be selected"})
        if not _is_amount(payload.discount):
            errors.append({"field": "discount", "message": "discount must be a non-negative number"})
        if not _is_amount(payload.paidAmount):
            errors.append({"field": "paidAmount", "message": "paidAmount must be a non-negative number"})
        if errors:
            raise ValidationError("Validation failed", errors)

        patient = await CatalogRepository.get_patient_by_id(payload.patientId)
        if not patient:
            raise ValidationError("Patient not found", [{"field": "patientId", "message": "Patient not found"}])

        catalog = await CatalogRepository.get_tests_by_ids(payload.tests)
        missing = [test_id for test_id in payload.tests if test_id not in catalog]
        if missing:
            raise ValidationError(
                "One or more tests not found",
                [{"field": "tests", "message": f"Unknown test id {test_id}"} for test_id in missing],
            )

        # Prices are copied now; later catalog changes never reach this invoice
        line_items = [
            {"test_id": test_id, "test_name": catalog[test_id].test_name, "price": round_money(catalog[test_id].price)}
            for test_id in payload.tests
        ]
        subtotal = round_money(sum(item["price"] for item in line_items))
        discount = round_money(payload.discount)
        paid_amount = round_money(payload.paidAmount)
        if discount > subtotal:
            raise ValidationError(
                "Validation failed",
                [{"field": "discount", "message": "discount cannot exceed the invoice subtotal"}],
            )

        totals = invoice_math.compute_invoice_totals([item["price"] for item in line_items], discount, paid_amount)
        draft = {
            "patient_id": patient.id,
            "line_items": line_items,
            "total_amount": totals["subtotal"],
            "discount": discount,
            "final_amount": totals["finalAmount"],
            "paid_amount": paid_amount,
            "balance": totals["balance"],
            "profit": totals["profit"],
            "created_by": payload.createdBy,
            "idempotency_key": payload.idempotencyKey,
        }
        draft.update(BillingService._resolve_payments(payload, paid_amount))
        return draft

    @staticmethod
    async def create_invoice(payload: InvoiceCreate) -> InvoiceResponse:
        draft = await BillingService.build_invoice_draft(payload)

        attempts = max(1, settings.SEQUENCE_MAX_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                invoice = await InvoiceRepository.create_invoice(draft)
                logger.info(
                    f"Invoice {invoice.invoiceId} created for patient {invoice.patient.patientId}: "
                    f"final {invoice.finalAmount}, paid {invoice.paidAmount}, status {invoice.status}"
                )
                return invoice
            except ConcurrencyError as exc:
                logger.warning(f"Invoice number contention (attempt {attempt}/{attempts}): {exc}")

        raise PersistenceError("Could not allocate an invoice number, please try again")

    @staticmethod
    async def get_invoice(identifier: str) -> InvoiceResponse:
        invoice = await InvoiceRepository.get_invoice(identifier)
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    @staticmethod
    async def list_invoices(
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        patient_pk: Optional[int] = None,
    ) -> InvoiceListResponse:
        page = max(1, page)
        limit = max(1, limit)
        start = end = None
        if from_date and to_date:
            start, end = day_bounds(from_date, to_date)

        invoices, total = await InvoiceRepository.list_invoices(
            start=start,
            end=end,
            keyword=keyword.strip() if keyword else None,
            offset=(page - 1) * limit,
            limit=limit,
            patient_pk=patient_pk,
        )
        return InvoiceListResponse(invoices=invoices, page=page, pages=math.ceil(total / limit), total=total)

    @staticmethod
    async def delete_invoice(invoice_pk: int) -> None:
        deleted = await InvoiceRepository.delete_invoice(invoice_pk)
        if not deleted:
            raise NotFoundError("Invoice not found")
        logger.info(f"Invoice {invoice_pk} deleted")

    @staticmethod
    def _invoice_frame(invoices: List[InvoiceResponse]) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "created_at": inv.createdAt,
                    "paid": inv.paidAmount,
                    "final": inv.finalAmount,
                    "discount": inv.discount,
                }
                for inv in invoices
            ]
        )

    @staticmethod
    def summarize_billing(invoices: List[InvoiceResponse]) -> BillingStats:
        """
        Collected revenue, overpayment profit and discount loss.
        Net earnings are profit minus loss.
        """
        if not invoices:
            return BillingStats(totalRevenue=0.0, totalProfit=0.0, totalLoss=0.0, netEarnings=0.0)
        df = BillingService._invoice_frame(invoices)
        profit = (df["paid"] - df["final"]).clip(lower=0).sum()
        loss = df["discount"].sum()
        return BillingStats(
            totalRevenue=round_money(df["paid"].sum()),
            totalProfit=round_money(profit),
            totalLoss=round_money(loss),
            netEarnings=round_money(profit - loss),
        )

    @staticmethod
    def summarize_daily(invoices: List[InvoiceResponse]) -> List[DailyStat]:
        if not invoices:
            return []
        df = BillingService._invoice_frame(invoices)
        df["day"] = pd.to_datetime(df["created_at"]).dt.strftime("%Y-%m-%d")
        df["profit"] = (df["paid"] - df["final"]).clip(lower=0)
        grouped = df.groupby("day").agg(revenue=("paid", "sum"), profit=("profit", "sum"), loss=("discount", "sum"))
        return [
            DailyStat(
                day=day,
                revenue=round_money(row["revenue"]),
                profit=round_money(row["profit"]),
                loss=round_money(row["loss"]),
            )
            for day, row in grouped.sort_index().iterrows()
        ]

    @staticmethod
    async def get_billing_stats(
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        on_date: Optional[date] = None,
    ) -> BillingStats:
        start = end = None
        if from_date and to_date:
            start, end = day_bounds(from_date, to_date)
        elif on_date:
            start, end = day_bounds(on_date)
        invoices, _ = await InvoiceRepository.list_invoices(start=start, end=end)
        return BillingService.summarize_billing(invoices)

    @staticmethod
    async def get_daily_stats(
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        on_date: Optional[date] = None,
    ) -> List[DailyStat]:
        """Per-day figures. Without an explicit range, the week up to on_date (or today)."""
        if from_date and to_date:
            start, end = day_bounds(from_date, to_date)
        else:
            anchor = on_date or date.today()
            start, end = day_bounds(anchor - timedelta(days=7), anchor)
        invoices = await InvoiceRepository.list_invoices_between(start, end)
        return BillingService.summarize_daily(invoices)
