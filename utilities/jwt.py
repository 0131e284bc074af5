from jose import jwt, JWTError
from datetime import datetime
from typing import Optional
from config.settings import settings

DOWNLOAD_AUDIENCE = "download"

def create_download_token(transaction_id: int, file_id: int, token_id: str, expires_at: datetime) -> str:
    """Create a signed, short-lived download token for one transaction's file"""
    to_encode = {
        "sub": str(transaction_id),
        "file": file_id,
        "jti": token_id,
        "aud": DOWNLOAD_AUDIENCE,
        "exp": expires_at,
    }
    return jwt.encode(to_encode, settings.DOWNLOAD_TOKEN_SECRET, algorithm=settings.JWT_ALGORITHM)

def verify_download_token(token: str) -> Optional[dict]:
    """Verify a download token; None if tampered with or expired"""
    try:
        return jwt.decode(
            token,
            settings.DOWNLOAD_TOKEN_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=DOWNLOAD_AUDIENCE,
        )
    except JWTError:
        return None
