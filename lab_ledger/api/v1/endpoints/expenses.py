import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from lab_ledger.core.exceptions import LedgerError
from lab_ledger.models.expense import ExpenseCreate, ExpenseDeleteResponse, ExpenseResponse, ExpenseSummary
from lab_ledger.services.expense_service import ExpenseService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Expenses"])


@router.get("", response_model=List[ExpenseResponse], summary="List expenses")
async def list_expenses(
    search: Optional[str] = Query(None, description="Match description, vendor or category"),
    date_filter: Optional[date] = Query(None, alias="date", description="Only entries dated this day"),
):
    """All expense entries, most recent date first."""
    return await ExpenseService.list_expenses(search=search, on_date=date_filter)


@router.get("/summary", response_model=ExpenseSummary, summary="Expense dashboard figures")
async def expense_summary():
    return await ExpenseService.get_summary()


@router.post("", response_model=ExpenseResponse, status_code=201, summary="Record an expense")
async def create_expense(payload: ExpenseCreate):
    try:
        return await ExpenseService.create_expense(payload)
    except LedgerError:
        raise
    except Exception as exc:
        logger.error(f"Unexpected error creating expense: {exc}")
        raise HTTPException(status_code=500, detail="Internal server error while saving expense")


@router.delete("/{expense_id}", response_model=ExpenseDeleteResponse, summary="Delete an expense")
async def delete_expense(expense_id: int):
    await ExpenseService.delete_expense(expense_id)
    return ExpenseDeleteResponse(message="Expense removed")
