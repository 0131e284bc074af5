from typing import Any, Dict, Optional
from pydantic import BaseModel

class Envelope(BaseModel):
    """Body shape shared by every endpoint"""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None

def success_response(data: Any = None, message: str = None) -> Dict:
    return Envelope(success=True, data=data, message=message).model_dump()

def error_response(message: str, data: Any = None) -> Dict:
    return Envelope(success=False, data=data, message=message).model_dump()

def domain_error_response(exc) -> Dict:
    """Envelope for a PaylinkError: its kind and context travel in ``data``"""
    return error_response(exc.message, exc.to_dict())
