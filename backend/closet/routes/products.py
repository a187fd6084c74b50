# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/closet/routes/products.py
"""
Product catalog routes.

Prices are integer cents. Stock counters are read-only here except for the
opening stock on create; use /api/stock for every later movement.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..services import catalog_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - include_inactive: true|false (default false)
    - q: name search (optional)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    try:
        products = catalog_service.list_products(
            include_inactive=include_inactive,
            search=request.args.get("q"),
        )
        return {"items": [p.to_dict() for p in products], "count": len(products)}
    except Exception:
        current_app.logger.exception("Failed to list products")
        return {"error": "Internal server error"}, 500


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        product = catalog_service.create_product(payload)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return catalog_service.get_product(product_id).to_dict(), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = catalog_service.update_product(product_id, payload)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return product.to_dict(), 200


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Soft delete (is_active=false)."""
    try:
        catalog_service.deactivate_product(product_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return {"ok": True}, 200


@products_bp.post("/<int:product_id>/variants")
def add_variant_route(product_id: int):
    """
    Split a product by color/size.

    Request body: {"color": "preto", "size": "M", "stock": 3}

    Returns:
        201: variant created, with the product's updated counters
        404: product not found
        409: variant exists, or the product holds stock outside its variants
    """
    payload = request.get_json(silent=True) or {}
    try:
        variant = catalog_service.add_variant(product_id, payload)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return {"variant": variant.to_dict(), "product": catalog_service.get_product(product_id).to_dict()}, 201
