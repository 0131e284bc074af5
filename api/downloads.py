from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse, RedirectResponse
from pathlib import Path
import logging

from api.deps import get_grant_issuer
from config.settings import settings
from core.grants import DownloadGrantIssuer
from schemas.download import DownloadGrantResponse, DownloadRequestIn
from utilities.response import success_response
from utilities.supabase_client import create_signed_download_url
from utilities.timeutils import as_utc

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/downloads", tags=["downloads"])

@router.post("", summary="Issue a short-lived download grant for a paid transaction")
async def request_download(
    body: DownloadRequestIn,
    issuer: DownloadGrantIssuer = Depends(get_grant_issuer),
):
    grant = issuer.issue(body.transaction_id, str(body.customer_email))
    file = grant.transaction.file
    data = DownloadGrantResponse(
        download_url=grant.url,
        file_name=file.download_name,
        issued_at=as_utc(grant.issued_at),
        expires_at=as_utc(grant.expires_at),
    )
    return success_response(data=data.model_dump(mode="json"), message="Download link generated")

@router.get("/{token}", summary="Redeem a download grant")
async def redeem_download(
    token: str,
    issuer: DownloadGrantIssuer = Depends(get_grant_issuer),
):
    grant, file = issuer.authorize(token)

    # The grant is only used up once there is something to deliver
    signed_url = create_signed_download_url(file.file_path)
    if signed_url:
        response = RedirectResponse(signed_url, status_code=status.HTTP_302_FOUND)
    else:
        storage_root = Path(settings.FILE_STORAGE_DIR).resolve()
        path = (storage_root / file.file_path).resolve()
        if storage_root not in path.parents or not path.is_file():
            logger.error(f"Stored file missing for file {file.id}: {file.file_path}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
        response = FileResponse(str(path), filename=file.download_name)

    issuer.consume(grant)
    logger.info(f"Grant for transaction {grant.transaction_id} redeemed")
    return response
