from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
import logging

from api.deps import get_checkout, get_gateway, get_verifier
from core.checkout import CheckoutService
from core.errors import InvalidTransition, TransactionNotFound
from core.gateway import FlutterwaveGateway
from core.ledger import CustomerInfo, TransactionLedger
from core.verification import VerificationController
from db.session import get_db
from models.transaction import Transaction
from schemas.payment import InitializePaymentIn, VerifyPaymentIn
from schemas.transaction import QuoteResponse, TransactionResponse
from utilities.response import success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])

def _quote_of(txn: Transaction) -> dict:
    return QuoteResponse(
        base_amount=txn.base_amount,
        base_currency=txn.base_currency,
        exchange_rate=txn.exchange_rate,
        converted_amount=txn.converted_amount,
        plan_tier=txn.plan_tier,
        fee_amount=txn.fee_amount,
        total_amount=txn.charged_amount,
        currency=txn.charged_currency,
    ).model_dump(mode="json")

def _settlement_of(txn: Transaction) -> dict:
    return {
        "transaction_id": txn.id,
        "tx_ref": txn.external_reference,
        "status": txn.status,
        "amount": str(txn.charged_amount),
        "currency": txn.charged_currency,
        "customer_email": txn.customer_email,
        "customer_name": txn.customer_name,
        "file_title": txn.file.title if txn.file else None,
    }

@router.post("/initialize", summary="Price a payment link and open a hosted checkout")
async def initialize_payment(
    body: InitializePaymentIn,
    checkout: CheckoutService = Depends(get_checkout),
):
    customer = CustomerInfo(
        email=str(body.customer_email),
        name=body.customer_name,
        phone=body.customer_phone,
    )
    result = await checkout.start(body.link_code, customer, body.currency, body.tx_ref)
    txn = result.transaction
    return success_response(
        data={
            "transaction_id": txn.id,
            "tx_ref": txn.external_reference,
            "status": txn.status,
            "payment_url": result.payment_url,
            "replayed": result.replayed,
            "quote": _quote_of(txn),
        },
        message="Payment already initialized" if result.replayed else "Payment initialized successfully",
    )

@router.post("/verify", summary="Confirm settlement after returning from the gateway")
async def verify_payment(
    body: VerifyPaymentIn,
    verifier: VerificationController = Depends(get_verifier),
):
    # VerificationTimeout / TransactionNotFound are rendered by the app's PaylinkError handler
    txn = await verifier.verify(body.tx_ref)
    return success_response(
        data=_settlement_of(txn),
        message="Payment verified" if txn.status == "completed" else "Payment failed",
    )

@router.get("/status/{tx_ref}", summary="Current ledger status without polling")
async def payment_status(tx_ref: str, db: Session = Depends(get_db)):
    txn = TransactionLedger(db).get_by_reference(tx_ref)
    if txn is None:
        raise TransactionNotFound(external_reference=tx_ref)
    return success_response(data=TransactionResponse.model_validate(txn).model_dump(mode="json"))

@router.post("/webhook", summary="Flutterwave webhook (at-least-once delivery)")
async def flutterwave_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: FlutterwaveGateway = Depends(get_gateway),
):
    """Handle Flutterwave webhook events"""
    if not gateway.verify_webhook(request.headers):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature"
        )
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook body")

    event = gateway.parse_webhook(payload)
    if event is None:
        return success_response(message="Webhook ignored")

    ledger = TransactionLedger(db)
    try:
        txn = ledger.settle_from_gateway(event)
    except TransactionNotFound:
        logger.warning(f"Webhook for unknown tx_ref {event.external_reference}")
        return success_response(message="Transaction not found")
    except InvalidTransition as e:
        # Acknowledge so the gateway stops redelivering; the ledger keeps its first outcome
        logger.warning(f"Webhook conflicts with settled transaction {event.external_reference}: {e.context}")
        return success_response(message="Transaction already settled")

    logger.info(f"Webhook processed for {event.external_reference}: {txn.status}")
    return success_response(
        data={"transaction_id": txn.id, "status": txn.status},
        message="Webhook processed successfully",
    )
