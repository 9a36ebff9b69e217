import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lab_ledger.core.database import SessionLocal
from lab_ledger.core.exceptions import PersistenceError
from lab_ledger.models.expense import Expense, ExpenseResponse

logger = logging.getLogger(__name__)


class ExpenseRepository:
    @staticmethod
    def _to_response(expense: Expense) -> ExpenseResponse:
        return ExpenseResponse(
            id=expense.id,
            category=expense.category,
            subCategory=expense.sub_category,
            description=expense.description,
            amount=expense.amount,
            paymentMode=expense.payment_mode,
            status=expense.status,
            vendor=expense.vendor,
            invoiceNumber=expense.invoice_number,
            date=expense.date,
            remarks=expense.remarks,
            enteredBy=expense.entered_by,
            createdAt=expense.created_at,
        )

    @staticmethod
    async def create_expense(fields: Dict[str, Any]) -> ExpenseResponse:
        db: Session = SessionLocal()
        try:
            expense = Expense(
                category=fields["category"],
                sub_category=fields["subCategory"],
                description=fields["description"],
                amount=fields["amount"],
                payment_mode=fields["paymentMode"],
                status=fields["status"],
                vendor=fields.get("vendor"),
                invoice_number=fields.get("invoiceNumber"),
                date=fields["date"],
                remarks=fields.get("remarks"),
                entered_by=fields["enteredBy"],
            )
            db.add(expense)
            db.commit()
            db.refresh(expense)
            return ExpenseRepository._to_response(expense)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Failed to store expense: {exc}")
            raise PersistenceError("Could not save expense") from exc
        finally:
            db.close()

    @staticmethod
    async def list_expenses(search: Optional[str] = None, on_date: Optional[date] = None) -> List[ExpenseResponse]:
        db: Session = SessionLocal()
        try:
            query = db.query(Expense)
            if on_date:
                query = query.filter(Expense.date == on_date)
            if search:
                pattern = f"%{search}%"
                query = query.filter(
                    or_(
                        Expense.description.ilike(pattern),
                        Expense.vendor.ilike(pattern),
                        Expense.category.ilike(pattern),
                    )
                )
            # Same-day entries keep the order they were entered in
            expenses = query.order_by(Expense.date.desc(), Expense.id.asc()).all()
            return [ExpenseRepository._to_response(expense) for expense in expenses]
        except SQLAlchemyError as exc:
            logger.error(f"Failed to list expenses: {exc}")
            raise PersistenceError("Could not load expenses") from exc
        finally:
            db.close()

    @staticmethod
    async def delete_expense(expense_id: int) -> bool:
        db: Session = SessionLocal()
        try:
            expense = db.query(Expense).filter(Expense.id == expense_id).first()
            if not expense:
                return False
            db.delete(expense)
            db.commit()
            return True
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Failed to delete expense {expense_id}: {exc}")
            raise PersistenceError("Could not delete expense") from exc
        finally:
            db.close()
