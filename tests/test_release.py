from dataclasses import replace

import pytest

from app.circle.config import Settings, load_settings
from scripts.release import ReleaseError, check_settings, run_release
from scripts.start import gunicorn_argv


def _settings(**overrides):
    base = Settings(
        secret_key="s3cret-value",
        env="production",
        database_url="postgresql://circle@db/circle",
        storage_backend="s3",
        s3_endpoint="https://nyc3.digitaloceanspaces.com",
        s3_region="nyc3",
        s3_bucket="circle-uploads",
        s3_access_key_id="key",
        s3_secret_access_key="secret",
        email_backend="resend",
        resend_api_key="re_123",
        email_from="Accountability Circle <team@accountabilitycircle.co.uk>",
        facilitator_email="facilitator@accountabilitycircle.co.uk",
        app_base_url="https://app.accountabilitycircle.co.uk",
        email_tracking_secret="track-secret",
        tracking_allowed_domains=("accountabilitycircle.co.uk",),
    )
    return replace(base, **overrides)


def test_complete_production_settings_pass():
    check = check_settings(_settings())
    assert check.errors == []
    assert check.warnings == []


def test_production_refuses_unsafe_settings():
    check = check_settings(_settings(database_url="sqlite:///circle.db", secret_key="change-me", email_backend="outbox"))
    assert len(check.errors) == 3
    assert any("SQLite" in e for e in check.errors)
    assert any("SECRET_KEY" in e for e in check.errors)
    assert any("EMAIL_BACKEND" in e for e in check.errors)


def test_missing_provider_credentials_are_errors_everywhere():
    check = check_settings(_settings(env="development", resend_api_key="", s3_bucket=""))
    assert any("RESEND_API_KEY" in e for e in check.errors)
    assert any("S3_BUCKET" in e for e in check.errors)


def test_missing_email_extras_only_warn():
    check = check_settings(_settings(facilitator_email="", email_tracking_secret=""))
    assert check.errors == []
    assert len(check.warnings) == 2


def test_release_stops_before_migrating(monkeypatch):
    called = []
    monkeypatch.setattr("scripts.release.migrate", lambda url: called.append(url))
    with pytest.raises(ReleaseError):
        run_release(_settings(database_url="sqlite:///circle.db"))
    assert called == []


def test_app_host_is_always_a_tracking_domain(monkeypatch):
    monkeypatch.setenv("APP_BASE_URL", "https://App.Example.com/")
    monkeypatch.setenv("TRACKING_ALLOWED_DOMAINS", "accountabilitycircle.co.uk")
    assert load_settings().tracking_allowed_domains == ("accountabilitycircle.co.uk", "app.example.com")

    monkeypatch.setenv("TRACKING_ALLOWED_DOMAINS", "app.example.com")
    assert load_settings().tracking_allowed_domains == ("app.example.com",)


def test_gunicorn_argv_defaults_and_overrides():
    argv = gunicorn_argv({})
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:8080"
    assert argv[argv.index("--workers") + 1] == "2"

    argv = gunicorn_argv({"PORT": "5000", "WEB_CONCURRENCY": "4", "GUNICORN_TIMEOUT": "120"})
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:5000"
    assert argv[argv.index("--workers") + 1] == "4"
    assert argv[argv.index("--timeout") + 1] == "120"


@pytest.mark.parametrize("env", [{"PORT": "http"}, {"PORT": "70000"}, {"WEB_CONCURRENCY": "0"}])
def test_gunicorn_argv_rejects_bad_values(env):
    with pytest.raises(ValueError):
        gunicorn_argv(env)
