import hashlib
import hmac
import secrets

from flask import Request, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from form or header."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and hmac.compare_digest(token, expected))


def sign_value(secret: str, value: str) -> str:
    """Hex HMAC-SHA256 of value, used for email tracking links."""
    return hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(secret: str, value: str, signature: str | None) -> bool:
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign_value(secret, value), signature)


def is_safe_next(nxt: str) -> bool:
    """Only allow local paths for post-login redirects."""
    return nxt.startswith("/") and not nxt.startswith("//")
