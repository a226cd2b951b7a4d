from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./orders.db"
    ORDER_STORE: str = "sql"  # 'sql' | 'memory'
    COMPANY_NAME: str = "Steel Embeds & Gates Fabrication"
    COMPANY_EMAIL: str = "orders@example.com"
    COMPANY_PHONE: str = ""
    LOG_LEVEL: str = "INFO"

    # Stripe. The webhook route answers 500 until the secret is set
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # seconds
    CURRENCY: str = "usd"

    # Documents
    UPLOAD_DIR: str = "./uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    QUOTE_VALID_DAYS: int = 30
    AUTO_GENERATE_SHOP_PACKET: bool = True

    # Process webhook events in the request thread instead of the worker
    WEBHOOK_INLINE: bool = False
    # Failed transitions are retried, then parked for replay
    WEBHOOK_MAX_ATTEMPTS: int = 3
    WEBHOOK_RETRY_DELAY: float = 0.5  # seconds, doubled per attempt

    # Estimated delivery date set at checkout
    FULFILLMENT_LEAD_DAYS: int = 21

    # 'charge' | 'flag_for_review' | 'exempt'
    CUSTOM_FAB_TAX_POLICY: str = "charge"

    class Config:
        env_file = ".env"


settings = Settings()
