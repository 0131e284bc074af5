import hmac
import httpx
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional

from config.settings import settings
from core.errors import GatewayError

logger = logging.getLogger(__name__)

SUCCESS_OUTCOMES = ("successful", "completed", "succeeded")
FAILURE_OUTCOMES = ("failed", "cancelled")

@dataclass(frozen=True)
class PaymentInitRequest:
    payment_link_id: int
    file_id: int
    file_title: str
    amount: Decimal
    currency: str
    base_amount: Decimal
    base_currency: str
    platform_fee: Decimal
    customer_email: str
    customer_name: Optional[str]
    customer_phone: Optional[str]
    external_reference: str

@dataclass(frozen=True)
class GatewayEvent:
    """A settlement outcome reported by the gateway for one external reference"""
    external_reference: str
    gateway_tx_id: Optional[str]
    outcome: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES

    @property
    def is_failed(self) -> bool:
        return self.outcome in FAILURE_OUTCOMES

def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None

def _event_from_payload(data: Mapping[str, Any]) -> Optional[GatewayEvent]:
    tx_ref = data.get("tx_ref")
    if not tx_ref:
        return None
    gateway_id = data.get("id")
    return GatewayEvent(
        external_reference=str(tx_ref),
        gateway_tx_id=str(gateway_id) if gateway_id is not None else None,
        outcome=str(data.get("status") or "").lower(),
        amount=_to_decimal(data.get("amount")),
        currency=data.get("currency"),
    )

class FlutterwaveGateway:
    """Hosted-checkout client for Flutterwave v3"""

    def __init__(
        self,
        secret_key: str = None,
        base_url: str = None,
        webhook_hash: str = None,
        redirect_url: str = None,
        client_factory: Callable[[], httpx.AsyncClient] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.FLUTTERWAVE_SECRET_KEY
        self.base_url = (base_url or settings.FLUTTERWAVE_BASE_URL).rstrip("/")
        self.webhook_hash = webhook_hash if webhook_hash is not None else settings.FLUTTERWAVE_WEBHOOK_HASH
        self.redirect_url = redirect_url or settings.PAYMENT_REDIRECT_URL
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=settings.GATEWAY_TIMEOUT_SECONDS)
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.secret_key}",
        }

    async def initialize(self, request: PaymentInitRequest) -> str:
        """Create a hosted payment session and return its redirect URL"""
        payload = {
            "tx_ref": request.external_reference,
            "amount": str(request.amount),
            "currency": request.currency,
            "redirect_url": self.redirect_url,
            "customer": {
                "email": request.customer_email,
                "name": request.customer_name or request.customer_email,
                "phonenumber": request.customer_phone or "",
            },
            "meta": {
                "payment_link_id": request.payment_link_id,
                "file_id": request.file_id,
                "base_amount": str(request.base_amount),
                "base_currency": request.base_currency,
                "platform_fee": str(request.platform_fee),
            },
            "customizations": {
                "title": settings.BRAND_NAME,
                "description": f"Purchase: {request.file_title}",
            },
        }

        try:
            async with self._client_factory() as client:
                response = await client.post(
                    f"{self.base_url}/v3/payments",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.error(f"Flutterwave initialize transport error for {request.external_reference}: {e}")
            raise GatewayError(external_reference=request.external_reference)

        if response.status_code not in (200, 201):
            logger.error(f"Flutterwave payment creation failed: {response.status_code} {response.text[:500]}")
            raise GatewayError(external_reference=request.external_reference)

        body = response.json()
        link = (body.get("data") or {}).get("link")
        if body.get("status") != "success" or not link:
            logger.error(f"Flutterwave returned no payment link: {body}")
            raise GatewayError(external_reference=request.external_reference)

        logger.info(f"Flutterwave session created for {request.external_reference}")
        return link

    async def verify_by_reference(self, external_reference: str) -> Optional[GatewayEvent]:
        """Ask the gateway for the settlement state; None when it cannot say yet"""
        try:
            async with self._client_factory() as client:
                response = await client.get(
                    f"{self.base_url}/v3/transactions/verify_by_reference",
                    params={"tx_ref": external_reference},
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.warning(f"Flutterwave verify transport error for {external_reference}: {e}")
            return None

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.warning(f"Flutterwave verify failed: {response.status_code} {response.text[:300]}")
            return None

        data = response.json().get("data") or {}
        event = _event_from_payload(data)
        if event is None or event.external_reference != external_reference:
            logger.warning(f"Flutterwave verify returned unexpected payload for {external_reference}")
            return None
        return event

    def verify_webhook(self, headers: Mapping[str, str]) -> bool:
        """Check the ``verif-hash`` header against the configured secret hash"""
        if not self.webhook_hash:
            logger.error("FLUTTERWAVE_WEBHOOK_HASH not configured; rejecting webhook")
            return False
        received = headers.get("verif-hash") or headers.get("Verif-Hash") or ""
        return hmac.compare_digest(received.encode(), self.webhook_hash.encode())

    def parse_webhook(self, body: Any) -> Optional[GatewayEvent]:
        if not isinstance(body, Mapping):
            logger.warning(f"Ignoring Flutterwave webhook with {type(body).__name__} body")
            return None
        event_type = body.get("event")
        if event_type != "charge.completed":
            logger.info(f"Ignoring Flutterwave webhook event {event_type}")
            return None
        data = body.get("data")
        if not isinstance(data, Mapping):
            logger.warning("Ignoring charge.completed webhook without a data object")
            return None
        return _event_from_payload(data)
