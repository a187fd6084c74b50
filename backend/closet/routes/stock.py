# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

# backend/closet/routes/stock.py
"""
Stock API Routes

Reservations (malinha), direct commits, restocks and read-only stock views.
Every mutation runs as one transaction in services/stock_service.py.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import stock_service
from ..validation import optional_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _product_and_quantity(data: dict) -> tuple[int, object]:
    product_id = optional_int(data, "product_id")
    if product_id is None:
        raise ValidationError("product_id required")
    return product_id, data.get("quantity")


def _variant_args(data: dict) -> dict:
    """Optional color/size (or variant_id) naming which variant moves."""
    return {
        "color": data.get("color"),
        "size": data.get("size"),
        "variant_id": optional_int(data, "variant_id"),
    }


# =============================================================================
# RESERVATIONS
# =============================================================================

@stock_bp.post("/reservations")
def reserve_route():
    """
    Hold units for a malinha.

    Request body: {"product_id": 1, "quantity": 3, "sale_id": 7, "color": "preto", "size": "M"}
    (sale_id, color, size optional)

    Returns:
        201: reservation created
        400: invalid quantity
        404: product not found
        409: not enough available stock
    """
    try:
        data = _json_body()
        product_id, quantity = _product_and_quantity(data)
        reservation = stock_service.reserve(
            product_id,
            quantity,
            sale_id=optional_int(data, "sale_id"),
            **_variant_args(data),
        )
        return jsonify({
            "reservation": reservation.to_dict(),
            "stock": stock_service.get_stock_levels(product_id),
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reserve stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/reservations")
def list_reservations_route():
    try:
        reservations = stock_service.list_reservations(
            product_id=request.args.get("product_id", type=int),
            sale_id=request.args.get("sale_id", type=int),
            status=request.args.get("status"),
        )
        return jsonify({"items": [r.to_dict() for r in reservations], "count": len(reservations)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list reservations")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/reservations/<int:reservation_id>/release")
def release_route(reservation_id: int):
    """Return reserved units to available stock (no-op if already released)."""
    try:
        reservation = stock_service.release(reservation_id)
        return jsonify({
            "reservation": reservation.to_dict(),
            "stock": stock_service.get_stock_levels(reservation.product_id),
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to release reservation")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/reservations/<int:reservation_id>/commit")
def commit_reservation_route(reservation_id: int):
    try:
        reservation = stock_service.commit_reservation(reservation_id)
        return jsonify({
            "reservation": reservation.to_dict(),
            "stock": stock_service.get_stock_levels(reservation.product_id),
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to commit reservation")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DIRECT MOVEMENTS
# =============================================================================

@stock_bp.post("/commit")
def commit_route():
    """Direct sale. Request body: {"product_id": 1, "quantity": 2, "sale_id": 7, "color": "preto", "size": "M"}"""
    try:
        data = _json_body()
        product_id, quantity = _product_and_quantity(data)
        movement = stock_service.commit(
            product_id,
            quantity,
            sale_id=optional_int(data, "sale_id"),
            note=data.get("note"),
            **_variant_args(data),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": stock_service.get_stock_levels(product_id),
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to commit stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/restock")
def restock_route():
    """Request body: {"product_id": 1, "quantity": 5, "note": "reposição"}"""
    try:
        data = _json_body()
        product_id, quantity = _product_and_quantity(data)
        movement = stock_service.restock(
            product_id,
            quantity,
            sale_id=optional_int(data, "sale_id"),
            note=data.get("note"),
            **_variant_args(data),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": stock_service.get_stock_levels(product_id),
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@stock_bp.get("/products/<int:product_id>")
def stock_levels_route(product_id: int):
    try:
        levels = stock_service.get_stock_levels(product_id)
        levels["movements"] = [
            m.to_dict() for m in stock_service.list_movements(product_id, limit=request.args.get("limit", 50, type=int))
        ]
        return jsonify(levels), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock levels")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/low")
def low_stock_route():
    """
    Low stock alerts.

    Query params:
    - threshold: int (default LOW_STOCK_THRESHOLD)
    - limit: int (default 10)
    """
    try:
        products = stock_service.list_low_stock(
            threshold=request.args.get("threshold", type=int),
            limit=request.args.get("limit", 10, type=int),
        )
        return jsonify([p.to_dict() for p in products]), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/kpis")
def stock_kpis_route():
    try:
        return jsonify(stock_service.get_stock_kpis()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute stock KPIs")
        return jsonify({"error": "Internal server error"}), 500
