"""
Reconciler configuration with automatic environment detection
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    """Reconciler settings read from the environment"""

    # Environment detection
    ENV = os.getenv("ENV", "DEV").upper()
    IS_PRODUCTION = ENV == "PROD" or ENV == "PRODUCTION"
    IS_DEVELOPMENT = not IS_PRODUCTION

    # Server configuration
    HOST = os.getenv("HOST", "127.0.0.1")
    PORT = int(os.getenv("PORT", 8000))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./reconciler.db")

    # Delhivery tracking
    DELHIVERY_API_KEY = os.getenv("DELHIVERY_API_KEY", "")
    DELHIVERY_TRACKING_BASE_URL = os.getenv("DELHIVERY_TRACKING_BASE_URL", "https://track.delhivery.com")

    # HDFC SmartGateway (order status API)
    HDFC_API_KEY = os.getenv("HDFC_API_KEY", "")
    HDFC_MERCHANT_ID = os.getenv("HDFC_MERCHANT_ID", "")
    HDFC_BASE_URL = os.getenv("HDFC_BASE_URL", "https://smartgateway.hdfcuat.bank.in")

    # External calls: one attempt per item per run, bounded by this timeout
    EXTERNAL_CALL_TIMEOUT_SECONDS = float(os.getenv("EXTERNAL_CALL_TIMEOUT_SECONDS", "15"))

    # Batch pacing (milliseconds between items)
    TRACKING_SYNC_DELAY_MS = int(os.getenv("TRACKING_SYNC_DELAY_MS", "500"))
    PAYMENT_RECONCILE_DELAY_MS = int(os.getenv("PAYMENT_RECONCILE_DELAY_MS", "200"))
    MAX_BACKOFF_DELAY_MS = int(os.getenv("MAX_BACKOFF_DELAY_MS", "8000"))

    # Summaries carry only the first N error messages
    SUMMARY_ERROR_LIMIT = int(os.getenv("SUMMARY_ERROR_LIMIT", "20"))

    # Background workers
    SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED")
    TRACKING_SYNC_INTERVAL_SECONDS = int(os.getenv("TRACKING_SYNC_INTERVAL_SECONDS", "1800"))
    PAYMENT_RECONCILE_INTERVAL_SECONDS = int(os.getenv("PAYMENT_RECONCILE_INTERVAL_SECONDS", "900"))
    PAYMENT_RECONCILE_SCHEDULED_EXECUTE = _flag("PAYMENT_RECONCILE_SCHEDULED_EXECUTE")

    # Operator endpoints are refused when no token is configured
    OPERATOR_API_TOKEN = os.getenv("OPERATOR_API_TOKEN", "")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG").upper()

    # API Configuration
    API_PREFIX = "/api"

    def __str__(self):
        return f"Settings(ENV={self.ENV}, IS_PRODUCTION={self.IS_PRODUCTION})"

# Global settings instance
settings = Settings()
