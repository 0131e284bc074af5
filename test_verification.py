import asyncio

import pytest

from conftest import create_transaction
from core.errors import TransactionNotFound, VerificationTimeout
from core.ledger import TransactionLedger
from core.verification import VerificationController


class RecordingSleep:
    def __init__(self, on_sleep=None):
        self.calls = []
        self.on_sleep = on_sleep

    async def __call__(self, delay: float):
        self.calls.append(delay)
        if self.on_sleep:
            self.on_sleep(len(self.calls))


def test_completed_transaction_returns_immediately(db, make_link):
    create_transaction(db, make_link(), "tx_ref_vc_done", status="completed")
    sleep = RecordingSleep()

    txn = asyncio.run(VerificationController(TransactionLedger(db), sleep=sleep).verify("tx_ref_vc_done"))

    assert txn.status == "completed"
    assert sleep.calls == []


def test_failed_transaction_is_returned_not_retried(db, make_link):
    create_transaction(db, make_link(), "tx_ref_vc_fail", status="failed")
    sleep = RecordingSleep()

    txn = asyncio.run(VerificationController(TransactionLedger(db), sleep=sleep).verify("tx_ref_vc_fail"))

    assert txn.status == "failed"
    assert sleep.calls == []


def test_times_out_after_five_attempts_and_leaves_pending(db, make_link):
    create_transaction(db, make_link(), "tx_ref_vc_slow")
    sleep = RecordingSleep()
    controller = VerificationController(TransactionLedger(db), sleep=sleep)

    with pytest.raises(VerificationTimeout) as exc:
        asyncio.run(controller.verify("tx_ref_vc_slow"))

    assert exc.value.context["attempts"] == 5
    assert sleep.calls == [3.0, 3.0, 3.0, 3.0]
    assert TransactionLedger(db).get_by_reference("tx_ref_vc_slow").status == "pending"


def test_picks_up_settlement_from_another_writer(db, session_factory, make_link):
    create_transaction(db, make_link(), "tx_ref_vc_hook")

    def webhook_arrives(n):
        if n == 2:
            writer = session_factory()
            TransactionLedger(writer).mark_completed("tx_ref_vc_hook", "flw-77")
            writer.close()

    sleep = RecordingSleep(on_sleep=webhook_arrives)
    txn = asyncio.run(VerificationController(TransactionLedger(db), sleep=sleep).verify("tx_ref_vc_hook"))

    assert txn.status == "completed"
    assert len(sleep.calls) == 2


def test_settles_from_gateway_verify(db, make_link, flutterwave):
    create_transaction(db, make_link(), "tx_ref_vc_gw")
    flutterwave.verify_status["tx_ref_vc_gw"] = ("successful", "51.50", "USD")
    sleep = RecordingSleep()

    controller = VerificationController(TransactionLedger(db), flutterwave.gateway(), sleep=sleep)
    txn = asyncio.run(controller.verify("tx_ref_vc_gw"))

    assert txn.status == "completed"
    assert txn.gateway_tx_id == "4242"
    assert sleep.calls == []


def test_gateway_pending_keeps_polling(db, make_link, flutterwave):
    create_transaction(db, make_link(), "tx_ref_vc_gwp")
    flutterwave.verify_status["tx_ref_vc_gwp"] = ("pending", "51.50", "USD")

    controller = VerificationController(
        TransactionLedger(db), flutterwave.gateway(), attempts=3, delay=0.5, sleep=RecordingSleep(),
    )
    with pytest.raises(VerificationTimeout):
        asyncio.run(controller.verify("tx_ref_vc_gwp"))

    verify_calls = [r for r in flutterwave.requests if r.url.path.endswith("verify_by_reference")]
    assert len(verify_calls) == 3


def test_unknown_reference(db):
    with pytest.raises(TransactionNotFound):
        asyncio.run(VerificationController(TransactionLedger(db), sleep=RecordingSleep()).verify("tx_ref_none"))


def test_cancel_stops_before_next_attempt(db, make_link):
    create_transaction(db, make_link(), "tx_ref_vc_cancel")

    async def run():
        cancel = asyncio.Event()
        sleep = RecordingSleep(on_sleep=lambda n: cancel.set())
        controller = VerificationController(TransactionLedger(db), sleep=sleep)
        try:
            await controller.verify("tx_ref_vc_cancel", cancel=cancel)
        finally:
            assert len(sleep.calls) == 1

    with pytest.raises(VerificationTimeout) as exc:
        asyncio.run(run())
    assert exc.value.context["cancelled"] is True
    assert exc.value.context["attempts"] == 1


def test_attempts_must_be_positive(db):
    with pytest.raises(ValueError):
        VerificationController(TransactionLedger(db), attempts=0)
