from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from core.links import LinkResolver
from core.rates import SUPPORTED_CURRENCIES
from db.session import get_db
from utilities.response import success_response

logger = logging.getLogger(__name__)
router = APIRouter(tags=["links"])

@router.get("/links/{link_code}", summary="Payment page lookup")
async def get_payment_link(link_code: str, db: Session = Depends(get_db)):
    """Link metadata plus file summary; LinkError kinds map to 404/410"""
    link = LinkResolver(db).resolve(link_code)
    return success_response(
        data=LinkResolver.describe(link),
        message="Payment link retrieved successfully",
    )

@router.get("/currencies", summary="Currencies a buyer can pay in")
async def list_currencies():
    return success_response(data=SUPPORTED_CURRENCIES)
