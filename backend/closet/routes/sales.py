# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/closet/routes/sales.py
"""
Sales API Routes

Lifecycle endpoints for sales: create (reserves or commits stock), confirm
(commits a malinha's reservations) and cancel (gives stock back).
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import sales_service
from ..validation import amount_from_payload, date_from_payload, optional_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


@sales_bp.post("/")
def create_sale_route():
    """
    Create a sale.

    Request body:
    {
        "sale_type": "malinha",            (direct | malinha; default direct)
        "payment_method": "fiado_parcelado",
        "customer_id": 3,                  (optional)
        "items": [
            {"product_id": 1, "quantity": 2, "size": "M", "color": "preto"}
        ],
        "num_installments": 3,             (optional, credit sales only)
        "entry_payment": "50.00",          (or entry_payment_cents; optional)
        "installment_start_date": "2024-01-01"  (optional)
    }

    Returns:
        201: sale created
        400: invalid items / schedule
        404: product or customer not found
        409: insufficient stock
    """
    try:
        data = _json_body()
        sale = sales_service.create_sale(
            data.get("items"),
            sale_type=data.get("sale_type") or "direct",
            payment_method=data.get("payment_method"),
            customer_id=optional_int(data, "customer_id"),
            num_installments=optional_int(data, "num_installments"),
            entry_payment_cents=amount_from_payload(data, "entry_payment", required=False, allow_zero=True) or 0,
            installment_start_date=date_from_payload(data, "installment_start_date"),
        )
        current_app.logger.info(
            "Created %s sale %s total_cents=%s", sale.sale_type, sale.id, sale.total_cents
        )
        return jsonify(sale.to_dict()), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
def list_sales_route():
    """
    Query params:
    - status, sale_type, customer_id (optional filters)
    - limit: int (default 100)
    """
    try:
        sales = sales_service.list_sales(
            status=request.args.get("status"),
            sale_type=request.args.get("sale_type"),
            customer_id=request.args.get("customer_id", type=int),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"items": [s.to_dict(include_items=False) for s in sales], "count": len(sales)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify(sales_service.get_sale(sale_id).to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/confirm")
def confirm_sale_route(sale_id: int):
    """Commit every reservation of a pending sale (malinha kept by the customer)."""
    try:
        sale = sales_service.confirm_sale(sale_id)
        current_app.logger.info("Confirmed sale %s", sale_id)
        return jsonify(sale.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    """
    Cancel a sale.

    Request body (optional):
    {"reason": "cliente devolveu a malinha"}
    """
    try:
        data = _json_body()
        sale = sales_service.cancel_sale(sale_id, reason=data.get("reason"))
        current_app.logger.info("Cancelled sale %s reason=%r", sale_id, sale.cancel_reason)
        return jsonify(sale.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
