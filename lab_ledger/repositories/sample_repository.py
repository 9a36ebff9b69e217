from datetime import datetime
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from lab_ledger.core.database import SessionLocal
from lab_ledger.core.exceptions import PersistenceError
from lab_ledger.models.sample import Sample
from lab_ledger.schemas.analytics import CollectionRow


class SampleRepository:
    @staticmethod
    def _to_row(sample: Sample) -> CollectionRow:
        return CollectionRow(
            sampleId=sample.sample_id,
            date=sample.collection_date,
            patient=sample.patient.name if sample.patient else "N/A",
            patientId=sample.patient.patient_id if sample.patient else "N/A",
            tests=", ".join(test.test_name for test in sample.tests) or "N/A",
            status=sample.status,
        )

    @staticmethod
    async def list_collected_between(start: datetime, end: datetime) -> List[CollectionRow]:
        db: Session = SessionLocal()
        try:
            samples = (
                db.query(Sample)
                .options(joinedload(Sample.patient), selectinload(Sample.tests))
                .filter(Sample.collection_date >= start, Sample.collection_date <= end)
                .order_by(Sample.collection_date.desc())
                .all()
            )
            return [SampleRepository._to_row(sample) for sample in samples]
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not load collections") from exc
        finally:
            db.close()

    @staticmethod
    async def count_collected_between(start: datetime, end: datetime) -> int:
        db: Session = SessionLocal()
        try:
            return (
                db.query(Sample)
                .filter(Sample.collection_date >= start, Sample.collection_date <= end)
                .count()
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not count collections") from exc
        finally:
            db.close()
