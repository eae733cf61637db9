# services/reconciler/app/config.py

from pydantic_settings import BaseSettings

class ReconcilerSettings(BaseSettings):
    """Reconciler service configuration"""

    # Service Configuration
    SERVICE_NAME: str = "reconciler"
    SERVICE_VERSION: str = "1.0.0"

    # API Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Zoho OAuth Credentials
    ZOHO_ACCESS_TOKEN: str
    ZOHO_REFRESH_TOKEN: str
    ZOHO_CLIENT_ID: str
    ZOHO_CLIENT_SECRET: str
    ZOHO_ORGANIZATION_ID: str

    # Zoho Endpoints
    ZOHO_API_BASE_URL: str = "https://www.zohoapis.com/books/v3"
    ZOHO_ACCOUNTS_URL: str = "https://accounts.zoho.com"

    # Zoho error code for an invalid or expired OAuth token
    ZOHO_INVALID_TOKEN_CODE: int = 57
    ZOHO_REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Payment Defaults
    DEFAULT_PAYMENT_MODE: str = "Cash"
    PAYMENT_DATE_FORMAT: str = "%Y-%m-%d"

    # Query existing payments with the same reference before submitting
    PAYMENT_DEDUPE_CHECK: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # .env also carries LOG_LEVEL / LOG_FORMAT
