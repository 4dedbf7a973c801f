from pydantic_settings import BaseSettings
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    SECRET_KEY: str = "your-secret-key-change-in-production"
    JWT_SECRET: Optional[str] = None
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 300
    DEBUG: bool = False

    @property
    def secret_key(self) -> str:
        return self.JWT_SECRET or self.SECRET_KEY

    # DATABASE_URL is normally the Supabase/Postgres URL. SQLite is accepted
    # for local development and the test-suite.
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")

    ALLOWED_ORIGINS: str = "http://localhost:3000"
    APP_URL: str = "http://localhost:3000"

    # Pricing. TAX_RATE is a flat, process-wide rate applied to the
    # discounted subtotal; it is not computed per jurisdiction.
    TAX_RATE: float = 0.0825
    CURRENCY: str = "usd"

    ORDER_NUMBER_PREFIX: str = "3T"
    ORDER_NUMBER_MAX_ATTEMPTS: int = 5

    # Orders still unpaid after this many hours are cancelled by the
    # reconciliation endpoint.
    PENDING_ORDER_TTL_HOURS: int = 24

    # Stripe hosted checkout
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_TIMEOUT_SECONDS: int = 20

    # SendGrid transactional email
    SENDGRID_API_KEY: Optional[str] = None
    SENDGRID_FROM_EMAIL: str = "noreply@3tekdesign.com"
    SENDGRID_FROM_NAME: str = "3TEK Design"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    # FedEx carrier API. FEDEX_API_URL defaults to the sandbox host.
    FEDEX_API_URL: str = "https://apis-sandbox.fedex.com"
    FEDEX_CLIENT_ID: Optional[str] = None
    FEDEX_CLIENT_SECRET: Optional[str] = None
    FEDEX_ACCOUNT_NUMBER: Optional[str] = None
    FEDEX_TIMEOUT_SECONDS: float = 20.0
    FEDEX_READ_RETRIES: int = 2

    # Ship-from address used for carrier rates and labels.
    STORE_NAME: str = "3TEK Design"
    STORE_ADDRESS_LINE1: str = "123 Main St"
    STORE_CITY: str = "Austin"
    STORE_STATE: str = "TX"
    STORE_POSTAL_CODE: str = "78701"
    STORE_COUNTRY: str = "US"
    STORE_PHONE: str = "5125551234"

    # Supabase API Configuration (object storage for product images)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None  # Anon key
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None  # Service role key
    STORAGE_BUCKET: str = "images"

    # Comma-separated list of emails that are promoted to admin on register.
    ADMIN_EMAIL_ALLOWLIST: Optional[str] = None

    class Config:
        env_file = None
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def stripe_configured(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)

    @property
    def email_configured(self) -> bool:
        return bool(self.SENDGRID_API_KEY)

    @property
    def fedex_configured(self) -> bool:
        return bool(self.FEDEX_CLIENT_ID and self.FEDEX_CLIENT_SECRET and self.FEDEX_ACCOUNT_NUMBER)

    @property
    def admin_emails(self) -> list[str]:
        if not self.ADMIN_EMAIL_ALLOWLIST:
            return []
        return [e.strip().lower() for e in self.ADMIN_EMAIL_ALLOWLIST.split(",") if e.strip()]

    @property
    def store_origin(self) -> dict:
        return {
            "streetLines": [self.STORE_ADDRESS_LINE1],
            "city": self.STORE_CITY,
            "stateOrProvinceCode": self.STORE_STATE,
            "postalCode": self.STORE_POSTAL_CODE,
            "countryCode": self.STORE_COUNTRY,
        }


settings = Settings()
