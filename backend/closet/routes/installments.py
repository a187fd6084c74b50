# Overview: Flask API routes for the installment ledger; parses input and returns JSON responses.

# backend/closet/routes/installments.py
"""
Installment Ledger API Routes

WHY: Let the shop record and correct credit-sale payments and see what is
owed, what falls due this week and what is late.

DESIGN:
- Money in requests: `amount_cents` (integer) or `amount` (reais, "100.50")
- Dates in requests: "YYYY-MM-DD"
- Domain errors map to HTTP status through LedgerError.status_code
- Warnings (overpayment, duplicate submission) are returned and logged
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import installment_service
from ..validation import amount_from_payload, date_from_payload, optional_int
from closet.time_utils import parse_iso_date


installments_bp = Blueprint("installments", __name__, url_prefix="/api/installments")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _today_arg():
    try:
        return parse_iso_date(request.args.get("today"))
    except ValueError:
        raise ValidationError("today must be a date (YYYY-MM-DD)", details={"field": "today"})


def _log_warnings(result, context: str) -> None:
    for warning in result.warnings:
        current_app.logger.warning("%s: %s", context, warning)


# =============================================================================
# SCHEDULE
# =============================================================================

@installments_bp.post("/create")
def create_installments_route():
    """
    Create the installment schedule of a credit sale.

    Request body:
    {
        "sale_id": 12,
        "num_installments": 3,
        "entry_payment": "50.00",     (or "entry_payment_cents": 5000; optional)
        "start_date": "2024-01-01"    (optional, defaults to the sale date)
    }

    Returns:
        201: schedule created
        400: invalid schedule
        404: sale not found
        409: sale cancelled
    """
    try:
        data = _json_body()
        sale_id = optional_int(data, "sale_id")
        num_installments = optional_int(data, "num_installments")
        if sale_id is None or num_installments is None:
            raise ValidationError("sale_id and num_installments required")
        entry = amount_from_payload(data, "entry_payment", required=False, allow_zero=True) or 0
        start_date = date_from_payload(data, "start_date")

        installments = installment_service.create_installments(
            sale_id,
            num_installments,
            entry_payment_cents=entry,
            start_date=start_date,
        )
        details = installment_service.get_sale_details(sale_id)
        current_app.logger.info(
            "Created %d installments for sale %s", len(installments), sale_id
        )
        return jsonify(details), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create installments")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@installments_bp.get("/")
def list_credit_sales_route():
    """
    List credit sales (fiado / fiado_parcelado).

    Query params:
    - status: pendentes (default) | pagas | todas
    - page: int (default 1)
    - page_size: int (default 20, max 200)
    """
    try:
        result = installment_service.list_credit_sales(
            status=request.args.get("status", installment_service.FILTER_PENDING),
            page=request.args.get("page", 1, type=int),
            page_size=request.args.get("page_size", 20, type=int),
            today=_today_arg(),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list credit sales")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.get("/metrics")
def credit_metrics_route():
    """Portfolio totals: count, total due, total overdue, overdue sales."""
    try:
        result = installment_service.get_credit_metrics(
            status=request.args.get("status", installment_service.FILTER_PENDING),
            today=_today_arg(),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute credit metrics")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.get("/upcoming")
def upcoming_route():
    """Installments due today and through Sunday, plus the overdue count."""
    try:
        return jsonify(installment_service.get_upcoming(today=_today_arg())), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list upcoming installments")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.get("/overdue")
def overdue_route():
    """Open installments past their due date, oldest first, with days late."""
    try:
        entries = installment_service.list_overdue(today=_today_arg())
        return jsonify({
            "items": entries,
            "count": len(entries),
            "total_overdue_cents": sum(e["remaining_cents"] for e in entries),
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list overdue installments")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.get("/<int:sale_id>/details")
def sale_details_route(sale_id: int):
    """Installments of a sale with their payments (newest first) and totals."""
    try:
        return jsonify(installment_service.get_sale_details(sale_id, today=_today_arg())), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load installment details")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENTS
# =============================================================================

@installments_bp.post("/<int:installment_id>/payment")
def add_payment_route(installment_id: int):
    """
    Record a payment against an installment.

    Request body:
    {
        "amount": "100.00",       (or "amount_cents": 10000)
        "date": "2024-02-01",     (optional, defaults to today)
        "method": "pix",          (optional, defaults to dinheiro)
        "notes": "...",           (optional)
        "created_by": "admin"     (optional)
    }

    Returns:
        201: payment recorded
        200: identical payment already recorded moments ago (not inserted again)
        400: invalid amount or method
        404: installment not found
        409: installment already paid, or sale cancelled
    """
    try:
        data = _json_body()
        amount_cents = amount_from_payload(data, "amount")
        payment_date = date_from_payload(data, "date")

        result = installment_service.apply_payment(
            installment_id,
            amount_cents,
            payment_date=payment_date,
            method=data.get("method"),
            notes=data.get("notes"),
            created_by=data.get("created_by"),
        )
        _log_warnings(result, f"Installment {installment_id} payment")
        return jsonify(result.to_dict()), (200 if result.duplicate else 201)

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record installment payment")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.put("/payments/<int:payment_id>")
def edit_payment_route(payment_id: int):
    """Correct amount, date, method or notes of a recorded payment."""
    try:
        data = _json_body()
        result = installment_service.edit_payment(
            payment_id,
            amount_cents=amount_from_payload(data, "amount", required=False),
            payment_date=date_from_payload(data, "date"),
            method=data.get("method"),
            notes=data.get("notes"),
        )
        _log_warnings(result, f"Payment {payment_id} edit")
        return jsonify(result.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to edit installment payment")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.delete("/payments/<int:payment_id>")
def delete_payment_route(payment_id: int):
    try:
        result = installment_service.delete_payment(payment_id)
        current_app.logger.info("Deleted installment payment %s", payment_id)
        return jsonify(result.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete installment payment")
        return jsonify({"error": "Internal server error"}), 500


@installments_bp.put("/<int:sale_id>/pay-full")
def pay_full_route(sale_id: int):
    """
    Settle every open installment of a sale.

    Request body (optional):
    {
        "method": "pix",          (defaults to full-settlement)
        "date": "2024-03-10"      (defaults to today)
    }
    """
    try:
        data = _json_body()
        result = installment_service.pay_full(
            sale_id,
            method=data.get("method") or installment_service.FULL_SETTLEMENT_METHOD,
            payment_date=date_from_payload(data, "date"),
            created_by=data.get("created_by"),
        )
        current_app.logger.info(
            "Sale %s settled in full (%d payments)", sale_id, len(result.payments)
        )
        return jsonify(result.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": "Internal server error"}), 500
