from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lab_ledger.core.database import SessionLocal
from lab_ledger.core.exceptions import PersistenceError
from lab_ledger.models.lab_test import LabTest
from lab_ledger.models.patient import Patient


class CatalogRepository:
    """Read access to the patient directory and the test catalog."""

    @staticmethod
    async def get_patient_by_id(patient_id: int) -> Optional[Patient]:
        db: Session = SessionLocal()
        try:
            return db.query(Patient).filter(Patient.id == patient_id).first()
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not load patient") from exc
        finally:
            db.close()

    @staticmethod
    async def get_tests_by_ids(test_ids: List[int]) -> Dict[int, LabTest]:
        db: Session = SessionLocal()
        try:
            if not test_ids:
                return {}
            rows = (
                db.query(LabTest)
                .filter(LabTest.id.in_(list(set(test_ids))), LabTest.is_deleted.is_(False))
                .all()
            )
            return {row.id: row for row in rows}
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not load tests") from exc
        finally:
            db.close()
