from flask import Blueprint

bp = Blueprint("routes", __name__)


@bp.get("/health")
@bp.get("/api/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast liveness check for the container platform. No DB access, minimal overhead.
    """
    return "ok", 200
