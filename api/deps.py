from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config.settings import settings
from core.checkout import CheckoutService
from core.gateway import FlutterwaveGateway
from core.grants import DownloadGrantIssuer
from core.ledger import TransactionLedger
from core.pricing import PricingEngine
from core.rates import RateCache
from core.verification import VerificationController
from db.session import get_db

# Long-lived collaborators are created in main.lifespan and kept on app.state

def get_rate_cache(request: Request) -> RateCache:
    return request.app.state.rate_cache

def get_gateway(request: Request) -> FlutterwaveGateway:
    return request.app.state.gateway

def get_pricing(rate_cache: RateCache = Depends(get_rate_cache)) -> PricingEngine:
    return PricingEngine(rate_cache)

def get_checkout(
    db: Session = Depends(get_db),
    pricing: PricingEngine = Depends(get_pricing),
    gateway: FlutterwaveGateway = Depends(get_gateway),
) -> CheckoutService:
    return CheckoutService(db, pricing, gateway)

def get_verifier(
    db: Session = Depends(get_db),
    gateway: FlutterwaveGateway = Depends(get_gateway),
) -> VerificationController:
    return VerificationController(
        TransactionLedger(db),
        gateway,
        attempts=settings.VERIFY_MAX_ATTEMPTS,
        delay=settings.VERIFY_DELAY_SECONDS,
    )

def get_grant_issuer(db: Session = Depends(get_db)) -> DownloadGrantIssuer:
    return DownloadGrantIssuer(db)
