from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "bidledger-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Partner Ads")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/bidledger_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    settlement_queue: str = os.getenv("SETTLEMENT_QUEUE", "settlement")

    # Identity (tokens are issued by the external auth provider)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me-please-32-bytes")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))

    # Auction
    auction_timezone: str = os.getenv("AUCTION_TIMEZONE", "Asia/Seoul")
    min_bid_points: int = int(os.getenv("MIN_BID_POINTS", "10000"))
    auction_slots: int = int(os.getenv("AUCTION_SLOTS", "5"))
    bid_cutoff_hour: int = int(os.getenv("BID_CUTOFF_HOUR", "22"))  # Sunday, auction tz
    settlement_batch_size: int = int(os.getenv("SETTLEMENT_BATCH_SIZE", "400"))

    # Billing
    quote_fee_points: int = int(os.getenv("QUOTE_FEE_POINTS", "500"))
    low_balance_threshold: int = int(os.getenv("LOW_BALANCE_THRESHOLD", "500"))
    subscription_period_days: int = int(os.getenv("SUBSCRIPTION_PERIOD_DAYS", "30"))

    # Stripe configuration
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")

settings = Settings()
