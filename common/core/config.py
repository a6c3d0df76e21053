from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "Billing Engine"
    api_version: str = "1.0.0"
    debug: bool = False

    # Database Components
    db_user: str = "billing"
    db_password: str = "billing"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "billing"
    db_pool_size: int = 10
    db_pool_overflow: int = 5

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # OpenTelemetry
    otel_service_name: str = "billing-engine"
    otel_service_version: str = "1.0.0"

    # Axiom (exporter is only attached when a token is present)
    axiom_token: Optional[str] = None
    axiom_dataset: Optional[str] = None

    # Rate limiting (slowapi storage backend)
    rate_limit_storage_uri: str = "memory://"

    # Web app URL used for default checkout success/cancel/portal return URLs
    web_url: str = "http://localhost:3000"

    # Bearer session verification
    auth_jwt_secret: str = ""
    auth_jwks_url: Optional[str] = None
    auth_issuer: Optional[str] = None
    auth_audience: Optional[str] = None

    # Billing - Stripe (direct processor)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance_seconds: int = 300
    stripe_price_id_essentials: str = ""
    stripe_price_id_essentials_yearly: str = ""
    stripe_price_id_pro: str = ""
    stripe_price_id_pro_yearly: str = ""
    # Stripe product that grants an identity role on purchase
    stripe_foundry_product_id: str = "prod_foundry"

    # Billing - Janua (federated billing broker + identity system)
    janua_api_url: str = ""
    janua_api_key: str = ""
    janua_billing_enabled: bool = True
    janua_webhook_secret: str = ""
    janua_admin_key: str = ""
    # Secret used to sign outbound tier-change notifications
    tier_notification_secret: str = ""

    # Provider routing
    default_country_code: str = "US"
    direct_billing_products: List[str] = []

    # Hosts allowed as return_url targets on the public checkout redirect
    checkout_allowed_host_suffixes: List[str] = [
        ".madfam.io",
        ".dhan.am",
        ".enclii.com",
    ]

    # Timeouts / retries
    provider_timeout_seconds: float = 10.0
    webhook_deadline_seconds: float = 8.0
    identity_dispatch_timeout_seconds: float = 5.0
    identity_dispatch_max_attempts: int = 3

    @property
    def federated_billing_enabled(self) -> bool:
        """Federated broker is usable only when enabled and credentialed."""
        return self.janua_billing_enabled and bool(self.janua_api_key)

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:3001",
            ]
        return [
            "https://app.dhan.am",
            "https://admin.dhan.am",
        ]


settings = Settings()
