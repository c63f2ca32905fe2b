from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./maintenance_engine.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth (import endpoint) ----
    jwt_secret: str = "dev-change-me"
    admin_collection: str = "adminUsers"

    # ---- Import defaults ----
    import_default_company_name: str = "The h.wood Group"
    import_default_client_name: str = "Jessica Cabrera-Olimon"
    import_invoice_time: str = "09:00"
    import_invoice_timezone: str = "America/New_York"

    # ---- Payment links (Stripe Checkout) ----
    stripe_secret_key: str | None = None
    stripe_base_url: str = "https://api.stripe.com/v1"
    payment_currency: str = "usd"
    payment_success_url: str = "http://localhost:3000/payment-success?session_id={CHECKOUT_SESSION_ID}"
    payment_cancel_url: str = "http://localhost:3000/payment-cancelled"
    payment_link_placeholder_base: str = "https://checkout.stripe.com/pay/placeholder"

    # ---- Document renderer ----
    renderer_base_url: str = "http://localhost:8088"
    renderer_api_key: str | None = None

    # ---- Notifications (SendGrid) ----
    sendgrid_api_key: str | None = None
    sendgrid_base_url: str = "https://api.sendgrid.com/v3"
    mail_from_email: str = "noreply@maintenance.local"
    mail_from_name: str = "Recurring Work Orders"

    # ---- Runtime ----
    http_timeout_seconds: float = 20.0
    counter_update_retries: int = 5
    execution_claim_ttl_seconds: int = 900

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if self.jwt_secret == "dev-change-me":
                raise ValueError("SECURITY: jwt_secret must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
