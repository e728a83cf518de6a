import pytest

from facturacion.services import ledger
from facturacion.services.errors import (
    AlreadySettled,
    ConcurrencyConflict,
    CurrencyMismatch,
    InvalidAmount,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from facturacion.services.money import round_currency
from facturacion.tests.conftest import (
    OTHER_USER_ID,
    USER_ID,
    invoice_data,
    payment_payload,
    seed_invoice,
)


def _payment(amount, currency="DOP"):
    payment = {"id": "pay_1", "amount": amount, "paymentDate": "2026-10-10", "method": "efectivo"}
    if currency:
        payment["currency"] = currency
    return payment


class TestApplyPayment:
    def test_partial_payment(self):
        update = ledger.apply_payment(invoice_data(id="inv-1"), _payment(400))
        assert update.balanceDue == 600.0
        assert update.status == "parcial"
        assert len(update.payments) == 1
        assert update.overpayment == 0.0

    def test_settling_payment(self):
        invoice = invoice_data(id="inv-1", balanceDue=600.0, status="parcial", payments=[_payment(400)])
        update = ledger.apply_payment(invoice, _payment(600))
        assert update.balanceDue == 0.0
        assert update.status == "pagada"
        assert [p["amount"] for p in update.payments] == [400, 600]

    def test_overpayment_is_recorded_but_balance_stops_at_zero(self):
        invoice = invoice_data(id="inv-1", balanceDue=600.0, status="parcial", payments=[_payment(400)])
        update = ledger.apply_payment(invoice, _payment(700))
        assert update.balanceDue == 0.0
        assert update.status == "pagada"
        assert update.payments[-1]["amount"] == 700
        assert update.overpayment == 100.0

    def test_float_residue_counts_as_settled(self):
        invoice = invoice_data(id="inv-1", total=0.3, balanceDue=0.3)
        update = ledger.apply_payment(invoice, _payment(0.1 + 0.2))
        assert update.balanceDue == 0.0
        assert update.status == "pagada"

    def test_missing_balance_falls_back_to_total(self):
        invoice = invoice_data(id="inv-1")
        del invoice["balanceDue"]
        update = ledger.apply_payment(invoice, _payment(250))
        assert update.balanceDue == 750.0

    @pytest.mark.parametrize("amount", [0, -5, None, "100", True])
    def test_invalid_amounts(self, amount):
        with pytest.raises(InvalidAmount):
            ledger.apply_payment(invoice_data(id="inv-1"), _payment(amount))

    def test_settled_invoice_rejects_payments(self):
        invoice = invoice_data(id="inv-1", balanceDue=0.0, status="pagada")
        with pytest.raises(AlreadySettled) as exc_info:
            ledger.apply_payment(invoice, _payment(10))
        assert exc_info.value.context["invoiceId"] == "inv-1"

    def test_currency_mismatch(self):
        with pytest.raises(CurrencyMismatch) as exc_info:
            ledger.apply_payment(invoice_data(id="inv-1", currency="DOP"), _payment(100, "USD"))
        assert exc_info.value.context["expected"] == "DOP"
        assert exc_info.value.context["actual"] == "USD"

    def test_unknown_stored_currency_is_a_mismatch(self):
        with pytest.raises(CurrencyMismatch) as exc_info:
            ledger.apply_payment(invoice_data(id="inv-1", currency="EUR"), _payment(100, "EUR"))
        assert exc_info.value.context["expected"] == "EUR"

    def test_invoice_without_currency_is_dop(self):
        update = ledger.apply_payment(invoice_data(id="inv-1", currency=None), _payment(100, None))
        assert update.balanceDue == 900.0

    def test_input_invoice_is_not_mutated(self):
        invoice = invoice_data(id="inv-1")
        ledger.apply_payment(invoice, _payment(400))
        assert invoice["balanceDue"] == 1000.0
        assert invoice["payments"] == []


class TestDeriveStatus:
    def test_untouched_invoice_is_pending(self):
        assert ledger.derive_status(1000.0, 1000.0, 0).value == "pendiente"

    def test_zero_total_is_paid(self):
        assert ledger.derive_status(0.0, 0.0, 0).value == "pagada"

    def test_partially_paid(self):
        assert ledger.derive_status(10.0, 1000.0, 2).value == "parcial"


@pytest.mark.asyncio
async def test_record_payment_then_overpay(fake_firestore, observer):
    seed_invoice(fake_firestore, "inv-1")

    first = await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1", amount=400), observer=observer)
    assert first.invoice["balanceDue"] == 600.0
    assert first.invoice["status"] == "parcial"
    assert first.payment["currency"] == "DOP"
    assert first.payment["status"] == "pagado"
    assert first.payment["receiptNumber"].startswith("REC-")
    assert len(first.payment["receiptNumber"]) == 12

    second = await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1", amount=700), observer=observer)
    assert second.overpayment == 100.0

    exists, stored = fake_firestore.client().get_document(("invoices", "inv-1"))
    assert exists
    assert stored["balanceDue"] == 0.0
    assert stored["status"] == "pagada"
    assert [p["amount"] for p in stored["payments"]] == [400, 700]
    assert "ledger.overpayment_recorded" in observer.names()

    with pytest.raises(AlreadySettled):
        await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1", amount=1), observer=observer)
    assert observer.failures[-1][0] == "ledger.payment_rejected"


@pytest.mark.asyncio
async def test_record_payment_currency_mismatch_leaves_invoice_untouched(fake_firestore):
    seed_invoice(fake_firestore, "inv-1", currency="USD")
    with pytest.raises(CurrencyMismatch):
        await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1", currency="DOP"))

    _, stored = fake_firestore.client().get_document(("invoices", "inv-1"))
    assert stored["balanceDue"] == 1000.0
    assert stored["payments"] == []


@pytest.mark.asyncio
async def test_invoice_with_unknown_stored_currency(fake_firestore):
    seed_invoice(fake_firestore, "inv-1", currency="EUR")
    with pytest.raises(CurrencyMismatch) as exc_info:
        await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1"))
    assert exc_info.value.context == {"expected": "EUR", "actual": "EUR", "invoiceId": "inv-1", "amount": 400.0}

    _, stored = fake_firestore.client().get_document(("invoices", "inv-1"))
    assert stored["payments"] == []


PAYMENT_SEQUENCES = [
    (1000.0, [1000]),
    (1000.0, [100] * 10),
    (1000.0, [333.33, 333.33, 333.34]),
    (0.3, [0.1, 0.1, 0.1]),
    (99.99, [33.33, 33.33, 33.33]),
    (1000.0, [0.01] * 7),
    (1000.0, [250, 250]),
    (1000.0, [500, 600]),
    (1000.0, [999.99, 5]),
]


@pytest.mark.asyncio
@pytest.mark.parametrize("total,amounts", PAYMENT_SEQUENCES)
async def test_payment_sequences_keep_balance_and_status_consistent(fake_firestore, total, amounts):
    seed_invoice(fake_firestore, "inv-1", subtotal=total, total=total, balanceDue=total)

    paid = 0.0
    previous_balance = total
    for count, amount in enumerate(amounts, start=1):
        result = await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1", amount=amount))
        paid += amount
        expected_balance = max(0.0, round_currency(total - paid))
        balance = result.invoice["balanceDue"]

        assert balance == pytest.approx(expected_balance, abs=0.005)
        assert 0.0 <= balance <= previous_balance
        assert result.invoice["status"] == ("pagada" if expected_balance == 0 else "parcial")
        assert len(result.invoice["payments"]) == count
        assert result.overpayment == pytest.approx(max(0.0, round_currency(amount - previous_balance)), abs=0.005)
        previous_balance = balance

    _, stored = fake_firestore.client().get_document(("invoices", "inv-1"))
    assert stored["balanceDue"] == previous_balance
    assert ledger.paid_amount(stored) == pytest.approx(round_currency(paid), abs=0.005)

    if previous_balance == 0:
        with pytest.raises(AlreadySettled):
            await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1", amount=1))


@pytest.mark.asyncio
async def test_record_payment_validates_payload(fake_firestore):
    seed_invoice(fake_firestore, "inv-1")
    with pytest.raises(ValidationError):
        await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1", amount=-10))
    assert fake_firestore.client().commit_attempts == 0


@pytest.mark.asyncio
async def test_record_payment_unknown_invoice(fake_firestore):
    with pytest.raises(NotFound):
        await ledger.record_payment(fake_firestore, USER_ID, payment_payload("missing"))


@pytest.mark.asyncio
async def test_record_payment_on_someone_elses_invoice(fake_firestore):
    seed_invoice(fake_firestore, "inv-1", userId=OTHER_USER_ID)
    with pytest.raises(PermissionDenied):
        await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1"))


@pytest.mark.asyncio
async def test_concurrent_payment_is_not_lost(fake_firestore, observer):
    seed_invoice(fake_firestore, "inv-1")

    def competing_payment(client):
        # Another writer commits between our read and our commit.
        _, current = client.get_document(("invoices", "inv-1"))
        update = ledger.apply_payment({**current, "id": "inv-1"}, _payment(300))
        client.seed_document(("invoices", "inv-1"), {**current, **update.fields()})

    fake_firestore.client().on_transactional_read(("invoices", "inv-1"), competing_payment)

    result = await ledger.record_payment(
        fake_firestore, USER_ID, payment_payload("inv-1", amount=400), observer=observer, base_delay=0.001
    )
    assert result.attempts == 2

    _, stored = fake_firestore.client().get_document(("invoices", "inv-1"))
    assert stored["balanceDue"] == 300.0
    assert [p["amount"] for p in stored["payments"]] == [300, 400]
    assert [name for name, _, _ in observer.failures] == ["ledger.txn_aborted"]


@pytest.mark.asyncio
async def test_abort_retries_and_succeeds(fake_firestore):
    seed_invoice(fake_firestore, "inv-1")
    fake_firestore.client().plan_abort([True, False])
    result = await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1"), base_delay=0.001)
    assert result.attempts == 2
    assert result.invoice["balanceDue"] == 600.0


@pytest.mark.asyncio
async def test_persistent_contention_raises_concurrency_conflict(fake_firestore, observer):
    seed_invoice(fake_firestore, "inv-1")
    fake_firestore.client().plan_abort([True, True, True])

    with pytest.raises(ConcurrencyConflict) as exc_info:
        await ledger.record_payment(
            fake_firestore, USER_ID, payment_payload("inv-1"), observer=observer, base_delay=0.001
        )
    assert exc_info.value.context["attempts"] == 3
    assert fake_firestore.client().commit_attempts == 3

    _, stored = fake_firestore.client().get_document(("invoices", "inv-1"))
    assert stored["balanceDue"] == 1000.0
    assert stored["payments"] == []
    assert [name for name, _, _ in observer.failures].count("ledger.txn_aborted") == 3


@pytest.mark.asyncio
async def test_store_calls_receive_the_timeout(fake_firestore):
    seed_invoice(fake_firestore, "inv-1")
    await ledger.record_payment(fake_firestore, USER_ID, payment_payload("inv-1"), timeout=2.5)
    assert fake_firestore.client().timeouts == [2.5]
