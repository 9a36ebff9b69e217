import logging
import math
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from lab_ledger.core.config import settings
from lab_ledger.core.exceptions import NotFoundError, ValidationError
from lab_ledger.models.expense import ExpenseCreate, ExpenseResponse, ExpenseSummary, TopCategory
from lab_ledger.repositories.expense_repository import ExpenseRepository
from lab_ledger.services.invoice_math import round_money

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["category", "subCategory", "description", "amount", "date", "enteredBy"]


class ExpenseService:

    @staticmethod
    def validate_expense(payload: ExpenseCreate) -> Dict[str, Any]:
        """Check an expense entry and return the normalized field dict."""
        fields = payload.model_dump()
        errors = []

        for name in REQUIRED_FIELDS:
            value = fields.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append({"field": name, "message": f"{name} is required"})

        amount = fields.get("amount")
        if amount is not None:
            if not math.isfinite(amount) or amount < 0:
                errors.append({"field": "amount", "message": "amount must be a non-negative number"})

        fields["paymentMode"] = fields.get("paymentMode") or "Cash"
        if fields["paymentMode"] not in settings.expense_payment_modes:
            errors.append({
                "field": "paymentMode",
                "message": f"paymentMode must be one of {', '.join(settings.expense_payment_modes)}",
            })

        fields["status"] = fields.get("status") or "Paid"
        if fields["status"] not in settings.expense_statuses:
            errors.append({"field": "status", "message": "status must be Paid or Pending"})

        if errors:
            raise ValidationError("Validation failed", errors)

        for name in ("category", "subCategory", "description", "enteredBy"):
            fields[name] = fields[name].strip()
        fields["amount"] = round_money(amount)
        return fields

    @staticmethod
    async def create_expense(payload: ExpenseCreate) -> ExpenseResponse:
        fields = ExpenseService.validate_expense(payload)
        expense = await ExpenseRepository.create_expense(fields)
        logger.info(f"Expense {expense.id} recorded: {expense.category}/{expense.subCategory} {expense.amount} by {expense.enteredBy}")
        return expense

    @staticmethod
    async def list_expenses(search: Optional[str] = None, on_date: Optional[date] = None) -> List[ExpenseResponse]:
        return await ExpenseRepository.list_expenses(search=search, on_date=on_date)

    @staticmethod
    async def delete_expense(expense_id: int) -> None:
        deleted = await ExpenseRepository.delete_expense(expense_id)
        if not deleted:
            raise NotFoundError("Expense not found")
        logger.info(f"Expense {expense_id} deleted")

    @staticmethod
    def summarize(expenses: List[ExpenseResponse], today: Optional[date] = None) -> ExpenseSummary:
        """
        Dashboard figures for the expense ledger.

        - todayAmount / monthAmount: entries dated today / in today's month
        - pendingAmount / pendingCount: entries still marked Pending
        - topCategory: category with the largest total, ties go to the
          alphabetically first name
        """
        today = today or date.today()
        if not expenses:
            return ExpenseSummary(
                todayAmount=0.0,
                monthAmount=0.0,
                pendingAmount=0.0,
                pendingCount=0,
                topCategory=TopCategory(name="N/A", amount=0.0),
            )

        df = pd.DataFrame(
            [
                {"category": e.category, "amount": e.amount, "status": e.status, "date": e.date}
                for e in expenses
            ]
        )
        df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0)
        dates = pd.to_datetime(df["date"])

        today_mask = dates.dt.date == today
        month_mask = (dates.dt.year == today.year) & (dates.dt.month == today.month)
        pending = df[df["status"] == "Pending"]

        # groupby sorts keys, so idxmax lands on the alphabetically first of equal totals
        by_category = df.groupby("category")["amount"].sum()
        top_name = by_category.idxmax()

        return ExpenseSummary(
            todayAmount=round_money(df.loc[today_mask, "amount"].sum()),
            monthAmount=round_money(df.loc[month_mask, "amount"].sum()),
            pendingAmount=round_money(pending["amount"].sum()),
            pendingCount=int(len(pending)),
            topCategory=TopCategory(name=str(top_name), amount=round_money(by_category[top_name])),
        )

    @staticmethod
    async def get_summary(today: Optional[date] = None) -> ExpenseSummary:
        expenses = await ExpenseRepository.list_expenses()
        return ExpenseService.summarize(expenses, today=today)
