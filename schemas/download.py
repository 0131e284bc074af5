from pydantic import BaseModel, EmailStr
from datetime import datetime

class DownloadRequestIn(BaseModel):
    transaction_id: int
    customer_email: EmailStr

class DownloadGrantResponse(BaseModel):
    download_url: str
    file_name: str
    issued_at: datetime
    expires_at: datetime
