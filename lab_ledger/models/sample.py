from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import relationship

from lab_ledger.core.database import Base


sample_tests = Table(
    "sample_tests",
    Base.metadata,
    Column("sample_id", Integer, ForeignKey("samples.id", ondelete="CASCADE"), primary_key=True),
    Column("test_id", Integer, ForeignKey("lab_tests.id"), primary_key=True),
)


class Sample(Base):
    """Sample collection record. The ledger only ever reads these."""

    __tablename__ = "samples"

    id = Column(Integer, primary_key=True, index=True)
    sample_id = Column(String, unique=True, index=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    # Human readable invoice number; deleting an invoice leaves samples alone.
    invoice_ref = Column(String, nullable=True, index=True)
    sample_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default="Pending")
    collection_date = Column(DateTime, nullable=True, index=True)
    remarks = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    patient = relationship("Patient")
    tests = relationship("LabTest", secondary=sample_tests, order_by="LabTest.id")
