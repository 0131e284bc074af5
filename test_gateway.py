import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from conftest import WEBHOOK_HASH
from core.errors import GatewayError
from core.gateway import FlutterwaveGateway, PaymentInitRequest


def _request(ref="tx_ref_gw_0001"):
    return PaymentInitRequest(
        payment_link_id=7,
        file_id=3,
        file_title="Design Kit",
        amount=Decimal("43.78"),
        currency="EUR",
        base_amount=Decimal("50.00"),
        base_currency="USD",
        platform_fee=Decimal("1.28"),
        customer_email="buyer@example.com",
        customer_name="Bea Buyer",
        customer_phone=None,
        external_reference=ref,
    )


def test_initialize_posts_payment_and_returns_link(flutterwave):
    link = asyncio.run(flutterwave.gateway().initialize(_request()))

    assert link.startswith("https://checkout.flutterwave.test/pay/")
    sent = flutterwave.requests[0]
    assert sent.headers["Authorization"] == "Bearer FLWSECK_TEST-xxx"
    body = json.loads(sent.content)
    assert body["tx_ref"] == "tx_ref_gw_0001"
    assert body["amount"] == "43.78"
    assert body["currency"] == "EUR"
    assert body["redirect_url"] == "http://localhost:3000/payment-success"
    assert body["meta"]["platform_fee"] == "1.28"


def test_initialize_raises_gateway_error_on_http_failure(flutterwave):
    flutterwave.fail_initialize = True

    with pytest.raises(GatewayError) as exc:
        asyncio.run(flutterwave.gateway().initialize(_request()))
    assert exc.value.context["external_reference"] == "tx_ref_gw_0001"


def test_initialize_raises_gateway_error_on_transport_failure():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    gateway = FlutterwaveGateway(
        secret_key="k", base_url="https://api.flutterwave.test",
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(GatewayError):
        asyncio.run(gateway.initialize(_request()))


def test_initialize_without_link_is_an_error():
    gateway = FlutterwaveGateway(
        secret_key="k", base_url="https://api.flutterwave.test",
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"status": "error", "data": None})
        )),
    )
    with pytest.raises(GatewayError):
        asyncio.run(gateway.initialize(_request()))


def test_verify_by_reference(flutterwave):
    flutterwave.verify_status["tx_ref_v1"] = ("successful", 43.78, "EUR")
    gateway = flutterwave.gateway()

    event = asyncio.run(gateway.verify_by_reference("tx_ref_v1"))
    missing = asyncio.run(gateway.verify_by_reference("tx_ref_unknown"))

    assert event.is_successful
    assert event.gateway_tx_id == "4242"
    assert event.amount == Decimal("43.78")
    assert event.currency == "EUR"
    assert missing is None


def test_webhook_hash_check(flutterwave):
    gateway = flutterwave.gateway()

    assert gateway.verify_webhook({"verif-hash": WEBHOOK_HASH})
    assert not gateway.verify_webhook({"verif-hash": "wrong"})
    assert not gateway.verify_webhook({})


def test_webhook_rejected_when_hash_not_configured():
    gateway = FlutterwaveGateway(secret_key="k", webhook_hash="")

    assert not gateway.verify_webhook({"verif-hash": ""})


def test_parse_webhook(flutterwave):
    gateway = flutterwave.gateway()
    body = {
        "event": "charge.completed",
        "data": {"id": 77, "tx_ref": "tx_ref_w1", "status": "SUCCESSFUL", "amount": 51.5, "currency": "USD"},
    }

    event = gateway.parse_webhook(body)

    assert event.external_reference == "tx_ref_w1"
    assert event.outcome == "successful"
    assert event.gateway_tx_id == "77"
    assert gateway.parse_webhook({"event": "transfer.completed", "data": {}}) is None
    assert gateway.parse_webhook({"event": "charge.completed", "data": {"status": "failed"}}) is None


@pytest.mark.parametrize("body", [
    [{"event": "charge.completed"}],
    "charge.completed",
    None,
    {"event": "charge.completed", "data": ["tx_ref_w1"]},
])
def test_parse_webhook_ignores_bodies_that_are_not_objects(flutterwave, body):
    assert flutterwave.gateway().parse_webhook(body) is None
