import os
import tempfile

# Point the app at a throwaway SQLite file before anything imports settings
_DB_DIR = tempfile.mkdtemp(prefix="lab_ledger_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'ledger.db')}"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

import lab_ledger.models  # noqa: F401  registers tables
from lab_ledger.core.database import Base, SessionLocal, engine
from lab_ledger.models.invoice import Invoice
from lab_ledger.models.lab_test import LabTest
from lab_ledger.models.patient import Patient
from lab_ledger.models.sample import Sample


def _insert(obj) -> int:
    # Commit and close straight away: an open SQLite transaction here would
    # hold the write lock the code under test needs.
    session = SessionLocal()
    try:
        session.add(obj)
        session.flush()
        pk = obj.id
        session.commit()
        return pk
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def make_patient():
    counter = {"n": 0}

    def _make(name: str = "Aarav Sharma", mobile: str = "9845012345") -> int:
        counter["n"] += 1
        return _insert(Patient(
            patient_id=f"LAB{1000 + counter['n']}",
            name=name,
            age="34",
            gender="Male",
            mobile=mobile,
        ))

    return _make


@pytest.fixture
def make_test():
    def _make(name: str, price: float, deleted: bool = False) -> int:
        return _insert(LabTest(test_name=name, sample_type="Serum", price=price, is_deleted=deleted))

    return _make


@pytest.fixture
def patient_id(make_patient) -> int:
    return make_patient()


@pytest.fixture
def catalog_ids(make_test) -> List[int]:
    """Three catalog tests priced 500, 300 and 200."""
    return [
        make_test("Liver Function Test", 500),
        make_test("Lipid Profile", 300),
        make_test("Complete Blood Count", 200),
    ]


@pytest.fixture
def make_sample():
    def _make(patient_pk: int, test_pks: List[int], collected_at: Optional[datetime], sample_id: str = "SMP-G-0001") -> int:
        session = SessionLocal()
        try:
            sample = Sample(
                sample_id=sample_id,
                patient_id=patient_pk,
                sample_type="Serum",
                status="Collected",
                collection_date=collected_at,
                tests=session.query(LabTest).filter(LabTest.id.in_(test_pks)).all(),
            )
            session.add(sample)
            session.flush()
            pk = sample.id
            session.commit()
            return pk
        finally:
            session.close()

    return _make


@pytest.fixture
def set_invoice_created_at():
    def _set(invoice_pk: int, created_at: datetime) -> None:
        session = SessionLocal()
        try:
            session.query(Invoice).filter(Invoice.id == invoice_pk).update({"created_at": created_at})
            session.commit()
        finally:
            session.close()

    return _set


@pytest.fixture
def set_test_price():
    def _set(test_pk: int, price: float) -> None:
        session = SessionLocal()
        try:
            session.query(LabTest).filter(LabTest.id == test_pk).update({"price": price})
            session.commit()
        finally:
            session.close()

    return _set


@pytest.fixture
def client():
    from lab_ledger.main import app

    with TestClient(app) as test_client:
        yield test_client
