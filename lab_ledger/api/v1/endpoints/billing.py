import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from lab_ledger.core.exceptions import LedgerError
from lab_ledger.models.invoice import InvoiceCreate, InvoiceDeleteResponse, InvoiceListResponse, InvoiceResponse
from lab_ledger.schemas.analytics import BillingStats, DailyStat
from lab_ledger.services.billing_service import BillingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])


@router.get("", response_model=InvoiceListResponse, summary="List invoices")
async def list_invoices(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    keyword: Optional[str] = Query(None, description="Patient name or mobile"),
    patient_id: Optional[str] = Query(None, alias="patientId", description="Patient storage id, or a keyword"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
):
    """
    Paginated invoices, newest first.

    - **from** / **to**: inclusive creation date range (whole days)
    - **keyword**: case-insensitive match on patient name or mobile
    - **patientId**: a numeric value selects one patient's invoices, anything else is searched like keyword
    """
    patient_pk = None
    if patient_id and patient_id.strip().isdigit():
        patient_pk = int(patient_id.strip())
    elif patient_id and not keyword:
        keyword = patient_id

    return await BillingService.list_invoices(
        from_date=from_date,
        to_date=to_date,
        keyword=keyword,
        page=page,
        limit=limit,
        patient_pk=patient_pk,
    )


@router.get("/stats", response_model=BillingStats, summary="Revenue, profit and discount totals")
async def billing_stats(
    on_date: Optional[date] = Query(None, alias="date"),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
):
    return await BillingService.get_billing_stats(from_date=from_date, to_date=to_date, on_date=on_date)


@router.get("/daily-stats", response_model=List[DailyStat], summary="Per-day billing figures")
async def daily_stats(
    on_date: Optional[date] = Query(None, alias="date"),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
):
    return await BillingService.get_daily_stats(from_date=from_date, to_date=to_date, on_date=on_date)


@router.post("/create", response_model=InvoiceResponse, status_code=201, summary="Bill tests for a patient")
async def create_invoice(payload: InvoiceCreate):
    try:
        return await BillingService.create_invoice(payload)
    except LedgerError:
        raise
    except Exception as exc:
        logger.error(f"Unexpected error creating invoice: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error while creating invoice")


@router.get("/{identifier}", response_model=InvoiceResponse, summary="Fetch one invoice")
async def get_invoice(identifier: str):
    """Accepts either the numeric id or the printed invoice number (INV000123)."""
    return await BillingService.get_invoice(identifier)


@router.delete("/{invoice_id}", response_model=InvoiceDeleteResponse, summary="Delete an invoice")
async def delete_invoice(invoice_id: int):
    await BillingService.delete_invoice(invoice_id)
    return InvoiceDeleteResponse(message="Invoice deleted successfully")
