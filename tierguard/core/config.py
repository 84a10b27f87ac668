from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Union


class Settings(BaseSettings):
    # Database
    database_url: str

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None

    # Firebase
    firebase_project_id: str
    firebase_credentials_path: str

    # API
    api_v1_str: str = "/api/v1"

    # Environment
    environment: str = "development"
    debug: bool = True

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_price_start: Optional[str] = None
    stripe_price_pro: Optional[str] = None

    # Origins allowed for CORS and for billing return URLs (exact match)
    allowed_origins: Union[List[str], str] = ["http://localhost:5173", "http://localhost:8080"]
    default_app_origin: str = "http://localhost:5173"

    # Client paths used when rendering guard outcomes and billing redirects
    sign_in_path: str = "/auth"
    upgrade_path: str = "/subscription"
    checkout_success_path: str = "/checkout/success"
    checkout_cancel_path: str = "/plans?checkout=cancelled"
    portal_return_path: str = "/subscription"

    # Entitlements
    trial_days: int = 7
    subscription_poll_seconds: int = 60
    subscription_poll_idle_minutes: int = 30

    # Rate limiting on billing endpoints
    rate_limit_enabled: bool = True
    billing_requests_per_minute: int = 10

    @field_validator('allowed_origins', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse allowed origins from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            return [origin.strip().rstrip('/') for origin in v.split(',') if origin.strip()]
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def allowed_price_ids(self) -> List[str]:
        """Checkout price allowlist; unset prices are left out."""
        return [p for p in (self.stripe_price_start, self.stripe_price_pro) if p]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
