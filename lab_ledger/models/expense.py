from datetime import date as date_type, datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import Column, Date, DateTime, Float, Integer, String

from lab_ledger.core.database import Base


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String, nullable=False, index=True)
    sub_category = Column(String, nullable=False)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    payment_mode = Column(String, nullable=False, default="Cash")
    status = Column(String, nullable=False, default="Paid", index=True)
    vendor = Column(String, nullable=True)
    invoice_number = Column(String, nullable=True)
    date = Column(Date, nullable=False, index=True)
    remarks = Column(String, nullable=True)
    entered_by = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.now)


class ExpenseCreate(BaseModel):
    # Everything is optional here so missing fields reach the service and
    # come back as a ValidationError listing every problem at once.
    category: Optional[str] = None
    subCategory: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    paymentMode: Optional[str] = None
    status: Optional[str] = None
    vendor: Optional[str] = None
    invoiceNumber: Optional[str] = None
    date: Optional[date_type] = None
    remarks: Optional[str] = None
    enteredBy: Optional[str] = None


class ExpenseResponse(BaseModel):
    id: int
    category: str
    subCategory: str
    description: str
    amount: float
    paymentMode: str
    status: str
    vendor: Optional[str] = None
    invoiceNumber: Optional[str] = None
    date: date_type
    remarks: Optional[str] = None
    enteredBy: str
    createdAt: Optional[datetime] = None


class TopCategory(BaseModel):
    name: str
    amount: float


class ExpenseSummary(BaseModel):
    todayAmount: float
    monthAmount: float
    pendingAmount: float
    pendingCount: int
    topCategory: TopCategory


class ExpenseDeleteResponse(BaseModel):
    message: str
