import os
from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    email_backend: str
    resend_api_key: str
    email_from: str
    facilitator_email: str
    app_base_url: str
    email_tracking_secret: str
    tracking_allowed_domains: tuple[str, ...]


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def _tracking_domains(raw: str, base_url: str) -> tuple[str, ...]:
    """Configured domains plus the app's own host, which serves the tracked links."""
    domains = _split_csv(raw)
    own_host = (urlparse(base_url).hostname or "").lower()
    if own_host and own_host not in domains:
        domains += (own_host,)
    return domains


def load_settings() -> Settings:
    app_base_url = _getenv("APP_BASE_URL", "http://localhost:5000").rstrip("/")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///circle.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        email_backend=_getenv("EMAIL_BACKEND", "outbox"),
        resend_api_key=_getenv("RESEND_API_KEY", ""),
        email_from=_getenv("EMAIL_FROM", "Accountability Circle <team@accountabilitycircle.co.uk>"),
        facilitator_email=_getenv("FACILITATOR_EMAIL", ""),
        app_base_url=app_base_url,
        email_tracking_secret=_getenv("EMAIL_TRACKING_SECRET", ""),
        tracking_allowed_domains=_tracking_domains(
            _getenv("TRACKING_ALLOWED_DOMAINS", "accountabilitycircle.co.uk"), app_base_url
        ),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "EMAIL_BACKEND": s.email_backend,
        "RESEND_API_KEY": s.resend_api_key,
        "EMAIL_FROM": s.email_from,
        "FACILITATOR_EMAIL": s.facilitator_email,
        "APP_BASE_URL": s.app_base_url,
        "EMAIL_TRACKING_SECRET": s.email_tracking_secret,
        "TRACKING_ALLOWED_DOMAINS": s.tracking_allowed_domains,
        # CSRF is skipped for the test client
        "CSRF_ENABLED": s.env != "test",
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # uploads (resources, avatars)
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
