import os
import logging
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from the backend .env explicitly (works regardless of cwd)
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    """Application settings"""

    # Database (fallback to local SQLite if not provided)
    DATABASE_URL: str = os.getenv("DATABASE_URL") or "sqlite:///./paylink.db"

    # Public URLs
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
    BRAND_NAME: str = os.getenv("BRAND_NAME", "PayLockr")

    # Flutterwave
    FLUTTERWAVE_SECRET_KEY: str = os.getenv("FLUTTERWAVE_SECRET_KEY", "")
    FLUTTERWAVE_BASE_URL: str = os.getenv("FLUTTERWAVE_BASE_URL", "https://api.flutterwave.com")
    FLUTTERWAVE_WEBHOOK_HASH: str = os.getenv("FLUTTERWAVE_WEBHOOK_HASH", "")
    # Buyer lands here after the hosted checkout, with ?tx_ref=...
    PAYMENT_REDIRECT_PATH: str = os.getenv("PAYMENT_REDIRECT_PATH", "/payment-success")
    GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "15"))

    @property
    def PAYMENT_REDIRECT_URL(self) -> str:
        return f"{self.FRONTEND_URL.rstrip('/')}{self.PAYMENT_REDIRECT_PATH}"

    # Exchange rates
    RATES_API_URL: str = os.getenv("RATES_API_URL", "https://api.exchangerate-api.com/v4/latest/USD")
    RATE_CACHE_TTL_SECONDS: int = int(os.getenv("RATE_CACHE_TTL_SECONDS", "3600"))  # 1 hour
    BASE_CURRENCY: str = "USD"

    # Verification polling
    VERIFY_MAX_ATTEMPTS: int = int(os.getenv("VERIFY_MAX_ATTEMPTS", "5"))
    VERIFY_DELAY_SECONDS: float = float(os.getenv("VERIFY_DELAY_SECONDS", "3"))

    # Download grants (JWT signed)
    DOWNLOAD_TOKEN_SECRET: str = os.getenv("DOWNLOAD_TOKEN_SECRET", "change-this-secret")
    JWT_ALGORITHM: str = "HS256"
    DOWNLOAD_GRANT_TTL_SECONDS: int = int(os.getenv("DOWNLOAD_GRANT_TTL_SECONDS", "3600"))  # 1 hour
    FILE_STORAGE_DIR: Path = Path(os.getenv("FILE_STORAGE_DIR", "storage"))

    # Supabase Storage (optional; signed URLs for protected files)
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    SUPABASE_STORAGE_BUCKET: str = os.getenv("SUPABASE_STORAGE_BUCKET", "protected-files")
    SUPABASE_SIGNED_URL_SECONDS: int = int(os.getenv("SUPABASE_SIGNED_URL_SECONDS", "60"))

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://vercel.app",
        "https://*.vercel.app",
    ]

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Pending transaction reconciliation (gateway verify-by-reference sweep)
    RECON_ENABLED: bool = os.getenv("RECON_ENABLED", "false").lower() in ("1", "true", "yes", "on")
    RECON_INTERVAL_SECONDS: int = int(os.getenv("RECON_INTERVAL_SECONDS", "120"))
    RECON_LOOKBACK_MINUTES: int = int(os.getenv("RECON_LOOKBACK_MINUTES", "1440"))
    RECON_MIN_AGE_SECONDS: int = int(os.getenv("RECON_MIN_AGE_SECONDS", "300"))

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "from_attributes": True,
    }

# Create global settings instance
settings = Settings()

def configure_logging(level: str = None):
    """Configure root logging for the API process"""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

def validate_env_variables() -> bool:
    """Report missing gateway and token secrets (non-fatal)"""
    required_vars = {
        "FLUTTERWAVE_SECRET_KEY": settings.FLUTTERWAVE_SECRET_KEY,
        "FLUTTERWAVE_WEBHOOK_HASH": settings.FLUTTERWAVE_WEBHOOK_HASH,
    }
    missing_vars = [name for name, value in required_vars.items() if not value]
    if settings.DOWNLOAD_TOKEN_SECRET == "change-this-secret":
        missing_vars.append("DOWNLOAD_TOKEN_SECRET")

    if missing_vars:
        logger.warning(f"Missing required environment variables: {', '.join(missing_vars)}")
        return False

    logger.info("All required environment variables are set")
    return True
