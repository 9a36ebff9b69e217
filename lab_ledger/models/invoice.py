from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from lab_ledger.core.database import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(String, unique=True, index=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    total_amount = Column(Float, nullable=False)
    discount = Column(Float, nullable=False, default=0)
    final_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, nullable=False, default=0)
    balance = Column(Float, nullable=False, default=0)
    profit = Column(Float, nullable=False, default=0)  # overpayment
    payment_mode = Column(String, nullable=False, default="Cash", index=True)
    idempotency_key = Column(String, unique=True, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now, index=True)

    patient = relationship("Patient")
    line_items = relationship(
        "InvoiceLineItem",
        order_by="InvoiceLineItem.position",
        cascade="all, delete-orphan",
    )
    payments = relationship(
        "InvoicePayment",
        order_by="InvoicePayment.id",
        cascade="all, delete-orphan",
    )


class InvoiceLineItem(Base):
    """A test billed on an invoice, with its price as it was at billing time."""

    __tablename__ = "invoice_line_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_pk = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    test_id = Column(Integer, nullable=False)  # no FK: catalog edits never touch history
    test_name = Column(String, nullable=False)
    price = Column(Float, nullable=False)


class InvoicePayment(Base):
    __tablename__ = "invoice_payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_pk = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    mode = Column(String, nullable=False)
    amount = Column(Float, nullable=False)


class InvoiceCounter(Base):
    __tablename__ = "invoice_counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class PaymentSplit(BaseModel):
    mode: str
    amount: float


class InvoiceCreate(BaseModel):
    patientId: Optional[int] = None
    tests: List[int] = []
    discount: float = 0
    paidAmount: float = 0
    paymentMode: Optional[str] = None
    payments: Optional[List[PaymentSplit]] = None
    createdBy: Optional[str] = None
    idempotencyKey: Optional[str] = None


class InvoiceTestItem(BaseModel):
    testId: int
    testName: str
    price: float


class InvoicePatient(BaseModel):
    id: int
    patientId: str
    name: str
    mobile: str


class InvoiceResponse(BaseModel):
    id: int
    invoiceId: str
    patient: InvoicePatient
    tests: List[InvoiceTestItem]
    totalAmount: float
    discount: float
    finalAmount: float
    paidAmount: float
    balance: float
    profit: float
    status: str
    paymentMode: str
    payments: List[PaymentSplit]
    createdBy: Optional[str] = None
    createdAt: datetime


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceResponse]
    page: int
    pages: int
    total: int


class InvoiceDeleteResponse(BaseModel):
    message: str
