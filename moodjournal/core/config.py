import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    ENVIRONMENT: str = "dev"  # "dev" | "test" | "prod"

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # User auth
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    ALLOW_USER_ID_HEADER: bool = False  # X-User-Id fallback for dev/tests; never honored in production

    # Admin access (hybrid auth)
    ADMIN_KEY: Optional[str] = None  # Legacy shared key
    ADMIN_AUTH_MODE: str = "hybrid"  # "jwt" | "legacy" | "hybrid"

    # PayOS
    PAYOS_CLIENT_ID: Optional[str] = None
    PAYOS_API_KEY: Optional[str] = None
    PAYOS_CHECKSUM_KEY: Optional[str] = None
    PAYOS_API_URL: str = "https://api-merchant.payos.vn"
    PAYOS_RETURN_URL: str = "http://localhost:3000/payment/success"
    PAYOS_CANCEL_URL: str = "http://localhost:3000/payment/cancel"

    # VNPay
    VNPAY_TMN_CODE: Optional[str] = None
    VNPAY_HASH_SECRET: Optional[str] = None
    VNPAY_PAYMENT_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNPAY_API_URL: str = "https://sandbox.vnpayment.vn/merchant_webapi/api/transaction"
    VNPAY_RETURN_URL: str = "http://localhost:8000/v1/payments/vnpay/return"

    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # Premium pricing
    PREMIUM_PRICE_VND: int = 41000
    PREMIUM_DURATION_DAYS: int = 30
    PAYMENT_TIMEOUT_MINUTES: int = 15

    # Free tier daily quotas
    FREE_DAILY_JOURNAL_LIMIT: int = 2
    FREE_DAILY_SUGGESTION_LIMIT: int = 3
    QUOTA_TIMEZONE: Optional[str] = None  # IANA name; None = server local time

    # Expiry sweeper
    SWEEPER_ENABLED: bool = False
    SWEEPER_INTERVAL_SECONDS: Optional[int] = None  # None = 86400 (300 in development)
    SWEEPER_EXPIRED_LOOKBACK_HOURS: int = 24
    SWEEPER_RUN_ON_START: bool = True

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def is_production(self) -> bool:
        return self.ENV.lower() == "production" or self.ENVIRONMENT.lower() == "prod"

    def sweeper_interval_seconds(self) -> int:
        if self.SWEEPER_INTERVAL_SECONDS:
            return self.SWEEPER_INTERVAL_SECONDS
        return 300 if self.ENV.lower() == "development" else 86400


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("moodjournal")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "JWT_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    gateways = []
    if cfg.PAYOS_CLIENT_ID and cfg.PAYOS_API_KEY and cfg.PAYOS_CHECKSUM_KEY:
        gateways.append("payos")
    if cfg.VNPAY_TMN_CODE and cfg.VNPAY_HASH_SECRET:
        gateways.append("vnpay")
    if not gateways:
        log.warning("No payment gateway configured; premium checkout disabled")

    return True
