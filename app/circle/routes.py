from flask import Blueprint, render_template

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/information")
def information():
    return render_template("public/information.html")


@bp.get("/guidelines")
def guidelines():
    return render_template("public/guidelines.html")


@bp.get("/privacy")
def privacy():
    return render_template("public/privacy.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Liveness check. No DB access."""
    return "ok", 200
