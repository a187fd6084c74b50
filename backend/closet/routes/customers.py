# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

# backend/closet/routes/customers.py
"""
Customer routes.

CPF is accepted with or without punctuation and stored as 11 digits.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..services import catalog_service, sales_service

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers():
    try:
        customers = catalog_service.list_customers(search=request.args.get("q"))
        return {"items": [c.to_dict() for c in customers], "count": len(customers)}
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return {"error": "Internal server error"}, 500


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = catalog_service.create_customer(payload)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return customer.to_dict(), 201


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        return catalog_service.get_customer(customer_id).to_dict(), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.put("/<int:customer_id>")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = catalog_service.update_customer(customer_id, payload)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return customer.to_dict(), 200


@customers_bp.get("/<int:customer_id>/sales")
def customer_sales_route(customer_id: int):
    """Purchase history of a customer, newest first."""
    try:
        catalog_service.get_customer(customer_id)
        sales = sales_service.list_sales(customer_id=customer_id)
        return {"items": [s.to_dict(include_items=False) for s in sales], "count": len(sales)}
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
