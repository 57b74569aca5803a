"""
routes/meta.py — Unauthenticated service endpoints.

  GET /health → 200  liveness probe
  GET /meta   → 200  currency and split-type display tables, so clients
                     never hard-code labels or symbols
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from splitapp.app.models.expense import CURRENCY_DISPLAY, SPLIT_TYPE_DISPLAY

meta_bp = Blueprint("meta", __name__)


@meta_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"}), 200


@meta_bp.route("/meta", methods=["GET"])
def display_metadata():
    return jsonify({
        "data": {
            "currencies": [
                {"code": currency.value, **display}
                for currency, display in CURRENCY_DISPLAY.items()
            ],
            "split_types": [
                {"value": split_type.value, **display}
                for split_type, display in SPLIT_TYPE_DISPLAY.items()
            ],
        },
        "warnings": [],
    }), 200
