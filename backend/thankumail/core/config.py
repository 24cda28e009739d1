import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "ThankuMail API"
    public_base_url: str = ""
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:5000", "http://127.0.0.1:5000"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        return [item.strip() for item in raw.split(",") if item.strip()]

    # Database: sqlite+aiosqlite:///./thankumail.db (dev) | postgresql+asyncpg://... (prod)
    postgres_dsn: str = "sqlite+aiosqlite:///./thankumail.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30
    sqlite_busy_timeout_seconds: float = 15.0

    # Gift rules
    min_amount_cents: int = 1000
    message_max_length: int = 1000
    claim_cooldown_seconds: int = 0
    seed_demo_gift: bool = False

    # Daily quotas, counted per UTC day
    daily_ip_limit: int = 40
    daily_recipient_limit: int = 8
    quota_backend: str = "memory"  # memory | redis
    redis_dsn: str = "redis://localhost:6379/0"

    block_disposable_emails: bool = True
    disposable_extra_domains: str = ""

    captcha_enforced: bool = False
    captcha_secret: str = ""
    captcha_verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    captcha_timeout_seconds: float = 8.0

    # Burst limiter (short window, per client key)
    rate_limit_enabled: bool = True
    rate_limit_create_requests: int = 12
    rate_limit_claim_requests: int = 30
    rate_limit_window_seconds: int = 600

    brevo_api_key: str = ""
    brevo_api_url: str = "https://api.brevo.com/v3/smtp/email"
    from_email: str = ""
    from_name: str = "ThanküMail"
    email_timeout_seconds: float = 10.0
    email_retry_backoff_seconds: float = 0.5

    payments_enabled: bool = False
    stripe_secret_key: str = ""
    stripe_api_url: str = "https://api.stripe.com/v1/payment_intents"
    payment_currency: str = "usd"
    payment_timeout_seconds: float = 10.0

    debug_routes_token: str = ""

    log_level: str = "INFO"
    log_file: str = ""

    @property
    def extra_disposable_domains(self) -> set[str]:
        """Operator-supplied additions to the disposable-domain blocklist."""
        return {
            d.strip().lower()
            for d in self.disposable_extra_domains.split(",")
            if d.strip()
        }

    @property
    def email_configured(self) -> bool:
        return bool(self.brevo_api_key and self.from_email)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"prod", "production"}

    def validate_secrets(self) -> None:
        """Refuse to start with switched-on features that lack credentials."""
        if self.captcha_enforced and not self.captcha_secret:
            raise RuntimeError(
                "CAPTCHA_ENFORCED is set but CAPTCHA_SECRET is empty. "
                "Provide the verification secret or disable CAPTCHA enforcement."
            )
        if self.payments_enabled and not self.stripe_secret_key:
            raise RuntimeError(
                "PAYMENTS_ENABLED is set but STRIPE_SECRET_KEY is empty."
            )
        if self.quota_backend not in {"memory", "redis"}:
            raise RuntimeError(
                f"QUOTA_BACKEND must be 'memory' or 'redis', got {self.quota_backend!r}."
            )


settings = Settings()
