import logging
import warnings

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production

    # Server
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/creatordeals.db"

    # Attachment storage (local content-addressed store)
    upload_store_path: str = "./data/uploads"

    # Auth
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7 days

    # One-time passcodes (registration + password reset)
    otp_digits: int = 6
    otp_expire_minutes: int = 60
    otp_max_attempts: int = 5

    # SMS (Twilio). Codes are only logged when the account SID is empty.
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    sms_timeout_seconds: int = 10

    # CORS
    cors_origins: str = "http://localhost:8081,http://localhost:3000"

    # Chat
    chat_max_message_length: int = 5000
    chat_max_attachments: int = 5
    chat_max_attachment_bytes: int = 10 * 1024 * 1024  # 10MB
    sse_heartbeat_seconds: float = 15.0
    sse_queue_size: int = 100
    unread_notify_delay_seconds: float = 120.0

    # Deals
    deal_required_payment_ratio: float = 0.5  # share of the deal amount due up front
    deal_max_milestones: int = 4
    deliverable_max_files: int = 10
    deliverable_max_bytes: int = 50 * 1024 * 1024  # 50MB

    # Rate Limiting
    rest_rate_limit_authenticated: int = 120  # req/min for JWT-authenticated
    rest_rate_limit_anonymous: int = 30  # req/min for unauthenticated

    # Tracing (OTLP). Needs the "telemetry" extra.
    otel_enabled: bool = False
    otel_service_name: str = "creatordeals-api"
    otel_exporter_endpoint: str = "http://localhost:4317"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

# Warn on insecure defaults (logged at startup, not a hard error for dev convenience)
_logger = logging.getLogger("creatordeals.config")
_INSECURE_SECRETS = {
    "dev-secret-change-in-production",
    "change-me-to-a-random-string",
    "secret",
}


def validate_security_posture(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    if cfg.jwt_secret_key in _INSECURE_SECRETS:
        if is_prod:
            raise RuntimeError(
                "FATAL: JWT_SECRET_KEY is set to an insecure default. "
                "Set a strong random secret via the JWT_SECRET_KEY environment variable before deploying to production."
            )
        warnings.warn(
            "JWT_SECRET_KEY is set to the default insecure value. "
            "Set a strong random secret via the JWT_SECRET_KEY environment variable for production.",
            stacklevel=1,
        )

    if cfg.cors_origins == "*":
        if is_prod:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS cannot be '*' in production. "
                "Set explicit trusted origins via the CORS_ORIGINS environment variable."
            )
        _logger.warning(
            "CORS_ORIGINS is set to '*' (allow all). "
            "Configure specific origins for production via the CORS_ORIGINS environment variable."
        )

    if is_prod and not cfg.twilio_account_sid:
        _logger.warning("TWILIO_ACCOUNT_SID is empty: OTP codes will only be written to the log.")


validate_security_posture(settings)
