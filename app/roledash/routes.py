from flask import Blueprint, jsonify

from app.roledash.models import utcnow

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return jsonify({"status": "ok", "timestamp": utcnow().isoformat() + "Z"})


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
