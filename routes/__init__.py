from flask import Blueprint, jsonify

from .turfs import turf_bp
from .booking import booking_bp
from .payments import payments_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200
