from lab_ledger.models.expense import Expense
from lab_ledger.models.invoice import Invoice, InvoiceCounter, InvoiceLineItem, InvoicePayment
from lab_ledger.models.lab_test import LabTest
from lab_ledger.models.patient import Patient
from lab_ledger.models.sample import Sample

__all__ = [
    "Expense",
    "Invoice",
    "InvoiceCounter",
    "InvoiceLineItem",
    "InvoicePayment",
    "LabTest",
    "Patient",
    "Sample",
]
