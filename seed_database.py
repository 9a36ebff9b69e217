#!/usr/bin/env python3
"""
Script to seed the database with demo lab data for local testing.
Run with: python3 seed_database.py
"""

import asyncio
from datetime import date, datetime, timedelta

from lab_ledger.core.database import SessionLocal, engine, Base
from lab_ledger.models import (
    Expense,
    Invoice,
    InvoiceCounter,
    InvoiceLineItem,
    InvoicePayment,
    LabTest,
    Patient,
    Sample,
)
from lab_ledger.models.expense import ExpenseCreate
from lab_ledger.models.invoice import InvoiceCreate
from lab_ledger.models.sample import sample_tests
from lab_ledger.services.billing_service import BillingService
from lab_ledger.services.expense_service import ExpenseService

# Create tables if they don't exist
Base.metadata.create_all(bind=engine)

# Initialize database session
db = SessionLocal()

def clear_database():
    """Clear existing data from all tables"""
    print("Clearing existing data...")
    db.execute(sample_tests.delete())
    db.query(Sample).delete()
    db.query(InvoicePayment).delete()
    db.query(InvoiceLineItem).delete()
    db.query(Invoice).delete()
    db.query(InvoiceCounter).delete()
    db.query(Expense).delete()
    db.query(LabTest).delete()
    db.query(Patient).delete()
    db.commit()
    print("Database cleared.")

def seed_catalog():
    """Seed the test catalog"""
    print("Seeding test catalog...")
    tests = [
        LabTest(test_name="Complete Blood Count", sample_type="EDTA", price=350),
        LabTest(test_name="Liver Function Test", sample_type="Serum", price=650),
        LabTest(test_name="Kidney Function Test", sample_type="Serum", price=600),
        LabTest(test_name="Lipid Profile", sample_type="Serum", price=500),
        LabTest(test_name="Thyroid Profile", sample_type="Serum", price=550),
        LabTest(test_name="HbA1c", sample_type="EDTA", price=400),
        LabTest(test_name="Urine Routine", sample_type="Urine", price=150),
        LabTest(test_name="Blood Sugar Fasting", sample_type="Fluoride", price=80),
    ]
    db.add_all(tests)
    db.flush()
    test_ids = [t.id for t in tests]
    db.commit()
    print(f"✓ Added {len(tests)} tests")
    return test_ids

def seed_patients():
    """Seed patients"""
    print("Seeding patients...")
    names = [
        "Aarav Sharma", "Diya Patel", "Vivaan Reddy", "Ananya Iyer", "Kabir Singh",
        "Meera Nair", "Rohan Gupta", "Saanvi Joshi", "Arjun Menon", "Isha Verma",
    ]
    patients = [
        Patient(
            patient_id=f"LAB{1001 + i}",
            name=name,
            age=str(22 + i * 4),
            gender="Female" if i % 2 else "Male",
            mobile=f"98450{10000 + i * 137}",
        )
        for i, name in enumerate(names)
    ]
    db.add_all(patients)
    db.flush()
    patient_ids = [p.id for p in patients]
    db.commit()
    print(f"✓ Added {len(patients)} patients")
    return patient_ids

def seed_invoices(patient_ids, test_ids):
    """Bill through the service so invoice numbers come from the counter"""
    print("Seeding invoices...")
    modes = ["Cash", "UPI", "Card"]
    count = 0
    for i, patient_id in enumerate(patient_ids):
        tests = test_ids[i % 3: i % 3 + 1 + i % 3]
        payload = InvoiceCreate(
            patientId=patient_id,
            tests=tests,
            discount=50 if i % 4 == 0 else 0,
            paidAmount=[0, 300, 2000][i % 3],
            paymentMode=modes[i % 3],
            createdBy="seed",
        )
        invoice = asyncio.run(BillingService.create_invoice(payload))
        count += 1

        # Spread invoices over the last days so the analytics ranges have data
        row = db.query(Invoice).filter(Invoice.id == invoice.id).one()
        row.created_at = datetime.now() - timedelta(days=i)
        db.add(Sample(
            sample_id=f"SMP-G-{invoice.invoiceId}",
            patient_id=patient_id,
            invoice_ref=invoice.invoiceId,
            sample_type="Serum",
            status="Collected",
            collection_date=row.created_at,
            tests=db.query(LabTest).filter(LabTest.id.in_(tests)).all(),
        ))
        db.commit()
    print(f"✓ Added {count} invoices")

def seed_expenses():
    """Seed expense ledger"""
    print("Seeding expenses...")
    entries = [
        ("Test-Related", "Reagents & Chemicals", "CBC reagent pack", 4200, "Paid"),
        ("Operational", "Electricity Bill", "Monthly electricity", 3100, "Paid"),
        ("Staff", "Lab Technician Salary", "Technician salary", 18000, "Paid"),
        ("Equipment", "AMC (Annual Maintenance)", "Analyzer AMC", 12000, "Pending"),
        ("Administrative", "Printing & Stationery", "Report paper", 650, "Paid"),
        ("External Services", "Referral Lab Payments", "Outsourced histopathology", 2500, "Pending"),
    ]
    today = date.today()
    for i, (category, sub_category, description, amount, status) in enumerate(entries):
        asyncio.run(ExpenseService.create_expense(ExpenseCreate(
            category=category,
            subCategory=sub_category,
            description=description,
            amount=amount,
            paymentMode="Cash" if i % 2 else "UPI",
            status=status,
            date=today - timedelta(days=i * 3),
            enteredBy="seed",
        )))
    print(f"✓ Added {len(entries)} expenses")

def main():
    """Main function to seed all tables"""
    try:
        print("=" * 50)
        print("Starting database seeding...")
        print("=" * 50)

        clear_database()
        test_ids = seed_catalog()
        patient_ids = seed_patients()
        seed_invoices(patient_ids, test_ids)
        seed_expenses()

        print("=" * 50)
        print("✓ Database seeding completed successfully!")
        print("=" * 50)
    except Exception as e:
        print(f"✗ Error seeding database: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    main()
