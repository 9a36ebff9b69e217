from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from lab_ledger.core.database import Base


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String, unique=True, index=True, nullable=False)  # UHID / lab id
    name = Column(String, nullable=False, index=True)
    age = Column(String, nullable=False)
    gender = Column(String, nullable=False)
    mobile = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    address = Column(String, nullable=True)
    referring_doctor = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
