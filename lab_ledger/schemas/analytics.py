from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

class PaymentBreakdownItem(BaseModel):
    method: str
    count: int
    amount: float

class AnalyticsInvoiceRow(BaseModel):
    """Flattened invoice row for the analytics table and CSV export"""
    invoiceId: str
    date: datetime
    patient: str
    patientId: str
    mobile: str
    tests: str
    amount: float
    paid: float
    balance: float
    status: str
    paymentMode: str

class CollectionRow(BaseModel):
    sampleId: str
    date: Optional[datetime] = None
    patient: str
    patientId: str
    tests: str
    status: str

class AnalyticsResponse(BaseModel):
    todayRevenue: float = 0.0
    totalRevenue: float = 0.0
    todayCollections: int = 0
    totalTests: int = 0
    paymentBreakdown: List[PaymentBreakdownItem] = []
    invoices: List[AnalyticsInvoiceRow] = []
    collections: List[CollectionRow] = []
    # Resolved window, echoed back so the client can label the report
    fromDate: Optional[datetime] = None
    toDate: Optional[datetime] = None

class BillingStats(BaseModel):
    totalRevenue: float
    totalProfit: float
    totalLoss: float
    netEarnings: float

class DailyStat(BaseModel):
    day: str = Field(..., alias="_id")  # YYYY-MM-DD
    revenue: float
    profit: float
    loss: float

    class Config:
        populate_by_name = True
