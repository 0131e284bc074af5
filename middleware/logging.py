import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Paths carrying bearer-like secrets in the URL
SENSITIVE_PREFIXES = ("/api/downloads/",)

class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests and responses"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        path = request.url.path
        if any(path.startswith(p) for p in SENSITIVE_PREFIXES):
            path = path.rsplit("/", 1)[0] + "/[REDACTED]"

        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"Request: {request.method} {path} from {client_ip}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"Response: {request.method} {path} "
            f"status={response.status_code} time={process_time:.4f}s"
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response

class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging errors"""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                f"Error processing {request.method} {request.url.path}: {str(e)}",
                exc_info=True
            )
            # Re-raise the exception to be handled by FastAPI
            raise
