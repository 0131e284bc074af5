from decimal import Decimal

import pytest

from conftest import BUYER_EMAIL, create_transaction
from core.errors import DuplicateTransaction, InvalidTransition, TransactionNotFound
from core.gateway import GatewayEvent
from core.ledger import CustomerInfo, TransactionLedger
from core.pricing import compute_price
from models.transaction import Transaction


def _quote(link, currency="EUR", rate="0.85"):
    return compute_price(link.base_price, "USD", currency, link.owner.plan_type, Decimal(rate))


def test_create_pending_persists_priced_transaction(db, make_link):
    link = make_link()
    txn = TransactionLedger(db).create_pending(
        link, CustomerInfo(email=" buyer@example.com ", name="Bea"), _quote(link), "tx_ref_0001",
    )

    assert txn.status == "pending"
    assert txn.customer_email == BUYER_EMAIL
    assert txn.converted_amount == Decimal("42.50")
    assert txn.fee_amount == Decimal("1.28")
    assert txn.charged_amount == Decimal("43.78")
    assert txn.charged_currency == "EUR"
    assert txn.net_amount == Decimal("42.50")
    assert txn.exchange_rate == Decimal("0.85")
    assert txn.plan_tier == "professional"
    assert txn.download_counted is False


def test_duplicate_reference_keeps_a_single_row(db, make_link):
    link = make_link()
    ledger = TransactionLedger(db)
    first = ledger.create_pending(link, CustomerInfo(email=BUYER_EMAIL), _quote(link), "tx_ref_dup")

    with pytest.raises(DuplicateTransaction) as exc:
        ledger.create_pending(link, CustomerInfo(email="other@example.com"), _quote(link, "USD", "1"), "tx_ref_dup")

    assert exc.value.existing.id == first.id
    assert db.query(Transaction).filter_by(external_reference="tx_ref_dup").count() == 1


def test_create_or_get_returns_the_first_row(db, make_link):
    link = make_link()
    ledger = TransactionLedger(db)

    first, created = ledger.create_or_get(link, CustomerInfo(email=BUYER_EMAIL), _quote(link), "tx_ref_cog")
    again, created_again = ledger.create_or_get(link, CustomerInfo(email=BUYER_EMAIL), _quote(link), "tx_ref_cog")

    assert created is True
    assert created_again is False
    assert again.id == first.id


def test_mark_completed_then_repeat_is_a_no_op(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_done")
    ledger = TransactionLedger(db)

    txn = ledger.mark_completed("tx_ref_done", "flw-1")
    again = ledger.mark_completed("tx_ref_done", "flw-2")

    assert txn.status == again.status == "completed"
    assert again.gateway_tx_id == "flw-1"


def test_terminal_states_cannot_flip(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_flip", status="completed")

    with pytest.raises(InvalidTransition) as exc:
        TransactionLedger(db).mark_failed("tx_ref_flip", "late failure")

    assert exc.value.context["current"] == "completed"
    assert TransactionLedger(db).get_by_reference("tx_ref_flip").status == "completed"


def test_failed_is_terminal_too(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_failed", status="failed")

    with pytest.raises(InvalidTransition):
        TransactionLedger(db).mark_completed("tx_ref_failed")


def test_unknown_reference(db):
    with pytest.raises(TransactionNotFound):
        TransactionLedger(db).mark_completed("tx_ref_nope")


def test_settle_successful_event(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_ok", currency="EUR", rate="0.85")
    event = GatewayEvent("tx_ref_ok", "9001", "successful", Decimal("43.78"), "EUR")

    txn = TransactionLedger(db).settle_from_gateway(event)

    assert txn.status == "completed"
    assert txn.gateway_tx_id == "9001"


def test_settle_underpaid_event_fails_the_transaction(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_short", currency="EUR", rate="0.85")
    event = GatewayEvent("tx_ref_short", "9002", "successful", Decimal("40.00"), "EUR")

    txn = TransactionLedger(db).settle_from_gateway(event)

    assert txn.status == "failed"
    assert txn.failure_reason == "amount_mismatch"


def test_settle_wrong_currency_fails_the_transaction(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_ccy", currency="EUR", rate="0.85")
    event = GatewayEvent("tx_ref_ccy", "9003", "successful", Decimal("43.78"), "USD")

    assert TransactionLedger(db).settle_from_gateway(event).status == "failed"


def test_settle_failed_and_unknown_outcomes(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_cancel")
    create_transaction(db, link, "tx_ref_wait")
    ledger = TransactionLedger(db)

    cancelled = ledger.settle_from_gateway(GatewayEvent("tx_ref_cancel", None, "cancelled"))
    waiting = ledger.settle_from_gateway(GatewayEvent("tx_ref_wait", None, "pending"))

    assert cancelled.status == "failed"
    assert cancelled.failure_reason == "gateway_cancelled"
    assert waiting.status == "pending"


def test_redelivered_success_keeps_completed(db, make_link):
    link = make_link()
    create_transaction(db, link, "tx_ref_twice")
    ledger = TransactionLedger(db)
    event = GatewayEvent("tx_ref_twice", "9004", "successful", Decimal("51.50"), "USD")

    ledger.settle_from_gateway(event)
    txn = ledger.settle_from_gateway(event)

    assert txn.status == "completed"
    assert db.query(Transaction).filter_by(external_reference="tx_ref_twice").count() == 1


def test_transition_seen_by_other_session(session_factory, make_link):
    other = session_factory()
    try:
        link = make_link()
        create_transaction(other, link, "tx_ref_shared")
        reader = TransactionLedger(other)
        assert reader.get_by_reference("tx_ref_shared").status == "pending"

        writer = session_factory()
        TransactionLedger(writer).mark_completed("tx_ref_shared")
        writer.close()

        assert reader.get_by_reference("tx_ref_shared").status == "completed"
    finally:
        other.close()
