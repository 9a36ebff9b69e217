import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from lab_ledger.core.config import settings
from lab_ledger.core.database import SessionLocal
from lab_ledger.core.exceptions import ConcurrencyError, PersistenceError
from lab_ledger.models.invoice import (
    Invoice,
    InvoiceCounter,
    InvoiceLineItem,
    InvoicePatient,
    InvoicePayment,
    InvoiceResponse,
    InvoiceTestItem,
    PaymentSplit,
)
from lab_ledger.models.patient import Patient
from lab_ledger.services.invoice_math import derive_status

logger = logging.getLogger(__name__)


class InvoiceRepository:
    @staticmethod
    def _to_response(invoice: Invoice) -> InvoiceResponse:
        return InvoiceResponse(
            id=invoice.id,
            invoiceId=invoice.invoice_id,
            patient=InvoicePatient(
                id=invoice.patient.id,
                patientId=invoice.patient.patient_id,
                name=invoice.patient.name,
                mobile=invoice.patient.mobile,
            ),
            tests=[
                InvoiceTestItem(testId=item.test_id, testName=item.test_name, price=item.price)
                for item in invoice.line_items
            ],
            totalAmount=invoice.total_amount,
            discount=invoice.discount,
            finalAmount=invoice.final_amount,
            paidAmount=invoice.paid_amount,
            balance=invoice.balance,
            profit=invoice.profit,
            status=derive_status(invoice.final_amount, invoice.paid_amount),
            paymentMode=invoice.payment_mode,
            payments=[PaymentSplit(mode=payment.mode, amount=payment.amount) for payment in invoice.payments],
            createdBy=invoice.created_by,
            createdAt=invoice.created_at,
        )

    @staticmethod
    def _with_details(query: Query) -> Query:
        return query.options(
            joinedload(Invoice.patient),
            selectinload(Invoice.line_items),
            selectinload(Invoice.payments),
        )

    @staticmethod
    def format_invoice_id(sequence: int) -> str:
        return f"{settings.INVOICE_ID_PREFIX}{sequence:0{settings.INVOICE_ID_DIGITS}d}"

    @staticmethod
    def _next_sequence(db: Session, name: str) -> int:
        """
        Atomically bump the named counter inside the caller's transaction.

        The UPDATE takes a row lock, so concurrent writers queue behind each
        other and a rolled back invoice hands its number back.
        """
        table = InvoiceCounter.__table__
        value = db.execute(
            update(table)
            .where(table.c.name == name)
            .values(value=table.c.value + 1)
            .returning(table.c.value)
        ).scalar_one_or_none()
        if value is None:
            # First invoice ever. A concurrent first insert fails on the
            # primary key and the caller retries through the UPDATE path.
            db.add(InvoiceCounter(name=name, value=1))
            db.flush()
            value = 1
        return value

    @staticmethod
    async def create_invoice(draft: Dict[str, Any]) -> InvoiceResponse:
        """
        Persist an invoice with its line items, payments and a freshly
        allocated invoice number as a single transaction.
        """
        db: Session = SessionLocal()
        try:
            key = draft.get("idempotency_key")
            if key:
                existing = InvoiceRepository._with_details(db.query(Invoice)).filter(Invoice.idempotency_key == key).first()
                if existing:
                    logger.info(f"Idempotency key {key} already used by {existing.invoice_id}")
                    return InvoiceRepository._to_response(existing)

            sequence = InvoiceRepository._next_sequence(db, settings.INVOICE_SEQUENCE_NAME)
            invoice = Invoice(
                invoice_id=InvoiceRepository.format_invoice_id(sequence),
                patient_id=draft["patient_id"],
                total_amount=draft["total_amount"],
                discount=draft["discount"],
                final_amount=draft["final_amount"],
                paid_amount=draft["paid_amount"],
                balance=draft["balance"],
                profit=draft["profit"],
                payment_mode=draft["payment_mode"],
                idempotency_key=key,
                created_by=draft.get("created_by"),
                line_items=[
                    InvoiceLineItem(
                        position=position,
                        test_id=item["test_id"],
                        test_name=item["test_name"],
                        price=item["price"],
                    )
                    for position, item in enumerate(draft["line_items"])
                ],
                payments=[
                    InvoicePayment(mode=payment["mode"], amount=payment["amount"])
                    for payment in draft["payments"]
                ],
            )
            db.add(invoice)
            db.commit()

            created = InvoiceRepository._with_details(db.query(Invoice)).filter(Invoice.id == invoice.id).one()
            return InvoiceRepository._to_response(created)
        except IntegrityError as exc:
            db.rollback()
            raise ConcurrencyError("Invoice number allocation collided with another writer") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Failed to store invoice: {exc}")
            raise PersistenceError("Could not save invoice") from exc
        finally:
            db.close()

    @staticmethod
    async def get_invoice(identifier: str) -> Optional[InvoiceResponse]:
        """Look up by storage id first, then by the printed invoice number."""
        db: Session = SessionLocal()
        try:
            invoice = None
            if str(identifier).isdigit():
                invoice = InvoiceRepository._with_details(db.query(Invoice)).filter(Invoice.id == int(identifier)).first()
            if not invoice:
                invoice = InvoiceRepository._with_details(db.query(Invoice)).filter(Invoice.invoice_id == str(identifier)).first()
            if not invoice:
                return None
            return InvoiceRepository._to_response(invoice)
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not load invoice") from exc
        finally:
            db.close()

    @staticmethod
    async def list_invoices(
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        keyword: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        patient_pk: Optional[int] = None,
    ) -> Tuple[List[InvoiceResponse], int]:
        db: Session = SessionLocal()
        try:
            query = db.query(Invoice)
            if patient_pk is not None:
                query = query.filter(Invoice.patient_id == patient_pk)
            if start is not None:
                query = query.filter(Invoice.created_at >= start)
            if end is not None:
                query = query.filter(Invoice.created_at <= end)
            if keyword:
                pattern = f"%{keyword}%"
                query = query.join(Invoice.patient).filter(
                    or_(Patient.name.ilike(pattern), Patient.mobile.ilike(pattern))
                )
            total = query.count()
            query = InvoiceRepository._with_details(query).order_by(Invoice.created_at.desc(), Invoice.id.desc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [InvoiceRepository._to_response(invoice) for invoice in query.all()], total
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not load invoices") from exc
        finally:
            db.close()

    @staticmethod
    async def list_invoices_between(start: datetime, end: datetime) -> List[InvoiceResponse]:
        invoices, _ = await InvoiceRepository.list_invoices(start=start, end=end)
        return invoices

    @staticmethod
    async def delete_invoice(invoice_pk: int) -> bool:
        db: Session = SessionLocal()
        try:
            invoice = db.query(Invoice).filter(Invoice.id == invoice_pk).first()
            if not invoice:
                return False
            db.delete(invoice)
            db.commit()
            return True
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Failed to delete invoice {invoice_pk}: {exc}")
            raise PersistenceError("Could not delete invoice") from exc
        finally:
            db.close()
