import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lab_ledger.core.database import SessionLocal
from lab_ledger.core.exceptions import ConcurrencyError, NotFoundError, PersistenceError, ValidationError
from lab_ledger.models.invoice import Invoice, InvoiceCounter, InvoiceCreate, PaymentSplit
from lab_ledger.models.lab_test import LabTest
from lab_ledger.models.patient import Patient
from lab_ledger.repositories.invoice_repository import InvoiceRepository
from lab_ledger.services.billing_service import BillingService


def _bill(patient_pk, tests, **kwargs):
    payload = InvoiceCreate(patientId=patient_pk, tests=tests, **kwargs)
    return asyncio.run(BillingService.create_invoice(payload))


def test_create_fully_paid_invoice(patient_id, catalog_ids):
    invoice = _bill(patient_id, catalog_ids, discount=100, paidAmount=900, paymentMode="Cash")

    assert invoice.invoiceId == "INV000001"
    assert invoice.totalAmount == 1000
    assert invoice.finalAmount == 900
    assert invoice.balance == 0
    assert invoice.status == "Paid"
    assert [t.price for t in invoice.tests] == [500, 300, 200]
    assert invoice.payments == [PaymentSplit(mode="Cash", amount=900)]


def test_discounted_underpayment_is_partial(patient_id, catalog_ids):
    invoice = _bill(patient_id, catalog_ids, discount=100, paidAmount=700, paymentMode="Cash")
    assert invoice.balance == 200
    assert invoice.status == "Partial"


def test_create_partial_and_pending_invoices(patient_id, catalog_ids):
    partial = _bill(patient_id, catalog_ids, paidAmount=400, paymentMode="UPI")
    pending = _bill(patient_id, catalog_ids)

    assert partial.finalAmount == 1000
    assert partial.balance == 600
    assert partial.status == "Partial"
    assert pending.status == "Pending"
    assert pending.balance == 1000
    assert pending.payments == []


def test_overpayment_is_recorded_as_profit(patient_id, catalog_ids):
    invoice = _bill(patient_id, catalog_ids[:1], paidAmount=600)
    assert invoice.balance == 0
    assert invoice.profit == 100
    assert invoice.status == "Paid"


def test_invoice_ids_are_sequential(patient_id, catalog_ids):
    ids = [_bill(patient_id, catalog_ids[:1]).invoiceId for _ in range(3)]
    assert ids == ["INV000001", "INV000002", "INV000003"]


def test_prices_are_snapshotted(patient_id, catalog_ids, set_test_price):
    invoice = _bill(patient_id, catalog_ids[:1])
    set_test_price(catalog_ids[0], 9999)

    stored = asyncio.run(BillingService.get_invoice(invoice.invoiceId))
    assert stored.tests[0].price == 500
    assert stored.totalAmount == 500


def test_repeated_test_counts_each_time(patient_id, catalog_ids):
    invoice = _bill(patient_id, [catalog_ids[2], catalog_ids[2]])
    assert invoice.totalAmount == 400
    assert len(invoice.tests) == 2


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"patientId": None}, "patientId"),
        ({"tests": []}, "tests"),
        ({"discount": -5}, "discount"),
        ({"paidAmount": -1}, "paidAmount"),
        ({"discount": 1500}, "discount"),
        ({"paymentMode": "Bitcoin", "paidAmount": 10}, "paymentMode"),
    ],
)
def test_invalid_requests(patient_id, catalog_ids, kwargs, field):
    payload = {"patientId": patient_id, "tests": catalog_ids}
    payload.update(kwargs)
    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(BillingService.create_invoice(InvoiceCreate(**payload)))
    assert field in {error["field"] for error in exc_info.value.errors}


def test_unknown_patient_or_test(patient_id, catalog_ids, make_test):
    with pytest.raises(ValidationError):
        _bill(patient_id + 100, catalog_ids)
    with pytest.raises(ValidationError):
        _bill(patient_id, [catalog_ids[0], 4242])

    retired = make_test("Retired Test", 100, deleted=True)
    with pytest.raises(ValidationError):
        _bill(patient_id, [retired])


def test_split_payments(patient_id, catalog_ids):
    invoice = _bill(
        patient_id,
        catalog_ids,
        paidAmount=1000,
        payments=[{"mode": "Cash", "amount": 600}, {"mode": "UPI", "amount": 400}],
    )
    assert invoice.paymentMode == "Mixed"
    assert [p.mode for p in invoice.payments] == ["Cash", "UPI"]
    assert invoice.status == "Paid"


def test_single_split_keeps_its_own_mode(patient_id, catalog_ids):
    invoice = _bill(patient_id, catalog_ids, paidAmount=300, payments=[{"mode": "Card", "amount": 300}])
    assert invoice.paymentMode == "Card"
    assert invoice.payments == [PaymentSplit(mode="Card", amount=300)]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"paidAmount": 300, "paymentMode": "Mixed"},
        {"paidAmount": 300, "paymentMode": "Mixed", "payments": [{"mode": "Cash", "amount": 300}]},
        {"paidAmount": 300, "payments": [{"mode": "Mixed", "amount": 300}]},
    ],
)
def test_mixed_is_not_accepted_from_the_caller(patient_id, catalog_ids, kwargs):
    with pytest.raises(ValidationError):
        _bill(patient_id, catalog_ids, **kwargs)

    session = SessionLocal()
    try:
        assert session.query(Invoice).count() == 0
    finally:
        session.close()


def test_split_payments_must_match_paid_amount(patient_id, catalog_ids):
    with pytest.raises(ValidationError):
        _bill(
            patient_id,
            catalog_ids,
            paidAmount=1000,
            payments=[{"mode": "Cash", "amount": 100}, {"mode": "UPI", "amount": 100}],
        )


def test_idempotency_key_returns_existing_invoice(patient_id, catalog_ids):
    first = _bill(patient_id, catalog_ids, idempotencyKey="counter-7-0001")
    again = _bill(patient_id, catalog_ids, idempotencyKey="counter-7-0001")

    assert again.id == first.id
    assert again.invoiceId == first.invoiceId
    listed = asyncio.run(BillingService.list_invoices())
    assert listed.total == 1


def test_concurrent_creation_allocates_distinct_ids(patient_id, catalog_ids):
    def worker(_):
        return _bill(patient_id, catalog_ids[:1]).invoiceId

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(worker, range(16)))

    assert len(set(ids)) == 16
    assert sorted(ids) == [f"INV{n:06d}" for n in range(1, 17)]


def test_contention_is_retried_internally(patient_id, catalog_ids):
    created = MagicMock(invoiceId="INV000009")
    mock_create = AsyncMock(side_effect=[ConcurrencyError("busy"), ConcurrencyError("busy"), created])

    with patch.object(InvoiceRepository, "create_invoice", mock_create):
        result = _bill(patient_id, catalog_ids)

    assert result is created
    assert mock_create.await_count == 3


def test_contention_gives_up_after_bounded_retries(patient_id, catalog_ids):
    mock_create = AsyncMock(side_effect=ConcurrencyError("busy"))

    with patch.object(InvoiceRepository, "create_invoice", mock_create):
        with pytest.raises(PersistenceError):
            _bill(patient_id, catalog_ids)

    assert mock_create.await_count == 5


def test_failed_allocation_leaves_nothing_behind(patient_id, catalog_ids):
    # An invoice number that the counter does not know about yet
    session = SessionLocal()
    try:
        session.add(Invoice(
            invoice_id="INV000001",
            patient_id=patient_id,
            total_amount=0,
            final_amount=0,
        ))
        session.commit()
    finally:
        session.close()

    with pytest.raises(PersistenceError):
        _bill(patient_id, catalog_ids)

    session = SessionLocal()
    try:
        assert session.query(Invoice).count() == 1
        assert session.query(InvoiceCounter).count() == 0
    finally:
        session.close()


def test_get_invoice_by_storage_id_or_number(patient_id, catalog_ids):
    invoice = _bill(patient_id, catalog_ids)
    assert asyncio.run(BillingService.get_invoice(str(invoice.id))).invoiceId == invoice.invoiceId
    assert asyncio.run(BillingService.get_invoice(invoice.invoiceId)).id == invoice.id
    with pytest.raises(NotFoundError):
        asyncio.run(BillingService.get_invoice("INV999999"))


def test_delete_invoice_keeps_patient_and_catalog(patient_id, catalog_ids):
    invoice = _bill(patient_id, catalog_ids, paidAmount=200, payments=[{"mode": "Card", "amount": 200}])
    asyncio.run(BillingService.delete_invoice(invoice.id))

    with pytest.raises(NotFoundError):
        asyncio.run(BillingService.delete_invoice(invoice.id))

    session = SessionLocal()
    try:
        assert session.query(Patient).filter(Patient.id == patient_id).count() == 1
        assert session.query(LabTest).count() == 3
        assert session.query(Invoice).count() == 0
    finally:
        session.close()


def test_list_invoices_filters_and_pages(make_patient, catalog_ids, set_invoice_created_at):
    meera = make_patient(name="Meera Nair", mobile="9000000001")
    rohan = make_patient(name="Rohan Gupta", mobile="9000000002")
    old = _bill(meera, catalog_ids[:1])
    set_invoice_created_at(old.id, datetime(2026, 1, 5, 10, 30))
    for _ in range(3):
        _bill(rohan, catalog_ids[:1])

    by_name = asyncio.run(BillingService.list_invoices(keyword="meera"))
    assert [inv.id for inv in by_name.invoices] == [old.id]

    by_mobile = asyncio.run(BillingService.list_invoices(keyword="0002"))
    assert by_mobile.total == 3

    in_january = asyncio.run(BillingService.list_invoices(from_date=date(2026, 1, 5), to_date=date(2026, 1, 5)))
    assert in_january.total == 1

    paged = asyncio.run(BillingService.list_invoices(page=2, limit=3))
    assert paged.total == 4
    assert paged.pages == 2
    assert [inv.id for inv in paged.invoices] == [old.id]

    by_patient = asyncio.run(BillingService.list_invoices(patient_pk=meera))
    assert [inv.id for inv in by_patient.invoices] == [old.id]


def test_billing_stats(patient_id, catalog_ids):
    _bill(patient_id, catalog_ids[:1], discount=50, paidAmount=500)  # final 450, overpaid 50
    _bill(patient_id, catalog_ids[1:2], paidAmount=100)

    stats = asyncio.run(BillingService.get_billing_stats(on_date=date.today()))
    assert stats.totalRevenue == 600
    assert stats.totalProfit == 50
    assert stats.totalLoss == 50
    assert stats.netEarnings == 0


def test_billing_stats_empty_range_is_zeroed():
    stats = asyncio.run(BillingService.get_billing_stats(from_date=date(2020, 1, 1), to_date=date(2020, 1, 31)))
    assert stats.model_dump() == {"totalRevenue": 0, "totalProfit": 0, "totalLoss": 0, "netEarnings": 0}


def test_daily_stats_group_by_day(patient_id, catalog_ids, set_invoice_created_at):
    today = date.today()
    yesterday = today - timedelta(days=1)
    first = _bill(patient_id, catalog_ids[:1], paidAmount=500)
    second = _bill(patient_id, catalog_ids[1:2], paidAmount=300)
    _bill(patient_id, catalog_ids[2:], discount=20, paidAmount=100)
    set_invoice_created_at(first.id, datetime.combine(yesterday, datetime.min.time()) + timedelta(hours=9))
    set_invoice_created_at(second.id, datetime.combine(yesterday, datetime.min.time()) + timedelta(hours=18))

    stats = asyncio.run(BillingService.get_daily_stats(on_date=today))
    assert [s.day for s in stats] == [yesterday.isoformat(), today.isoformat()]
    assert stats[0].revenue == 800
    assert stats[1].revenue == 100
    assert stats[1].loss == 20
