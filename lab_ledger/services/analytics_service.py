import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

import pandas as pd

from lab_ledger.core.exceptions import ValidationError
from lab_ledger.models.invoice import InvoiceResponse
from lab_ledger.repositories.invoice_repository import InvoiceRepository
from lab_ledger.repositories.sample_repository import SampleRepository
from lab_ledger.schemas.analytics import AnalyticsInvoiceRow, AnalyticsResponse, CollectionRow, PaymentBreakdownItem
from lab_ledger.services.billing_service import day_bounds
from lab_ledger.services.invoice_math import round_money

logger = logging.getLogger(__name__)

RANGE_DAYS = {"today": 0, "7days": 7, "30days": 30}


class AnalyticsService:
    """
    Date-range reporting over stored invoices and sample collections.
    Read only: nothing here writes to the database.
    """

    @staticmethod
    def resolve_range(
        range_name: Optional[str] = "today",
        on_date: Optional[date] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> Tuple[datetime, datetime]:
        """An explicit from/to wins, then a single date, then the named preset."""
        today = today or date.today()
        if from_date and to_date:
            if from_date > to_date:
                raise ValidationError(
                    "Validation failed",
                    [{"field": "from", "message": "from must not be after to"}],
                )
            return day_bounds(from_date, to_date)
        if on_date:
            return day_bounds(on_date)

        range_name = range_name or "today"
        if range_name not in RANGE_DAYS:
            raise ValidationError(
                "Validation failed",
                [{"field": "range", "message": f"range must be one of {', '.join(RANGE_DAYS)}"}],
            )
        return day_bounds(today - timedelta(days=RANGE_DAYS[range_name]), today)

    @staticmethod
    def _invoice_row(invoice: InvoiceResponse) -> AnalyticsInvoiceRow:
        return AnalyticsInvoiceRow(
            invoiceId=invoice.invoiceId,
            date=invoice.createdAt,
            patient=invoice.patient.name,
            patientId=invoice.patient.patientId,
            mobile=invoice.patient.mobile,
            tests=", ".join(test.testName for test in invoice.tests) or "N/A",
            amount=invoice.finalAmount,
            paid=invoice.paidAmount,
            balance=invoice.balance,
            status=invoice.status,
            paymentMode=invoice.paymentMode,
        )

    @staticmethod
    def payment_breakdown(invoices: List[InvoiceResponse]) -> List[PaymentBreakdownItem]:
        """Invoice count and money received (paidAmount) per payment mode."""
        if not invoices:
            return []
        df = pd.DataFrame([{"method": inv.paymentMode, "amount": inv.paidAmount} for inv in invoices])
        grouped = df.groupby("method")["amount"].agg(["count", "sum"])
        return [
            PaymentBreakdownItem(method=str(method), count=int(row["count"]), amount=round_money(row["sum"]))
            for method, row in grouped.iterrows()
        ]

    @staticmethod
    def summarize(
        invoices: List[InvoiceResponse],
        collections: List[CollectionRow],
        today_invoices: List[InvoiceResponse],
        today_collections: int,
    ) -> AnalyticsResponse:
        """Pure reduction behind aggregate(); empty inputs give zeros and empty lists."""
        return AnalyticsResponse(
            todayRevenue=round_money(sum(inv.finalAmount for inv in today_invoices)),
            totalRevenue=round_money(sum(inv.finalAmount for inv in invoices)),
            todayCollections=int(today_collections),
            totalTests=sum(len(inv.tests) for inv in invoices),
            paymentBreakdown=AnalyticsService.payment_breakdown(invoices),
            invoices=[AnalyticsService._invoice_row(inv) for inv in invoices],
            collections=collections,
        )

    @staticmethod
    async def aggregate(from_date: date, to_date: date, today: Optional[date] = None) -> AnalyticsResponse:
        start, end = day_bounds(from_date, to_date)
        return await AnalyticsService.aggregate_window(start, end, today=today)

    @staticmethod
    async def aggregate_window(start: datetime, end: datetime, today: Optional[date] = None) -> AnalyticsResponse:
        today_start, today_end = day_bounds(today or date.today())

        invoices = await InvoiceRepository.list_invoices_between(start, end)
        collections = await SampleRepository.list_collected_between(start, end)
        today_invoices = await InvoiceRepository.list_invoices_between(today_start, today_end)
        today_collections = await SampleRepository.count_collected_between(today_start, today_end)

        logger.info(
            f"Analytics window {start.isoformat()} - {end.isoformat()}: "
            f"{len(invoices)} invoices, {len(collections)} collections"
        )

        result = AnalyticsService.summarize(invoices, collections, today_invoices, today_collections)
        result.fromDate = start
        result.toDate = end
        return result
