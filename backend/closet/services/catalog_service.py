# Overview: Service-layer operations for the product and customer catalog.

"""
Catalog Service

Products and customers are shared reference data for sales. Stock counters
are not writable here: a product's opening stock is booked as a restock
movement, and every later change goes through stock_service.
"""

from __future__ import annotations

import re

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import Customer, Product, ProductVariant
from ..validation import ModelValidationPolicy, enforce_rules_product, parse_variant, parse_variants, validate_payload
from .concurrency import transaction
from .stock_service import _add_variant_locked, _restock_locked


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "cost_price_cents", "stock", "is_active"},
    required_on_create={"name", "price_cents"},
)
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "cost_price_cents", "is_active"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "cpf"},
    required_on_create={"name"},
)


# =============================================================================
# PRODUCTS
# =============================================================================

def list_products(*, include_inactive: bool = False, search: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if search:
        q = q.filter(Product.name.ilike(f"%{search.strip()}%"))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"product {product_id} not found", details={"product_id": product_id})
    return product


def create_product(payload: dict) -> Product:
    """
    Create a product with its opening stock.

    `variants` ([{"color", "size", "stock"}]) splits the stock by color/size;
    a split product takes no product-level stock.
    """
    payload = dict(payload or {})
    variants = parse_variants(payload.pop("variants", None))
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    opening_stock = patch.pop("stock", None) or 0
    if variants and opening_stock:
        raise ValidationError(
            "stock goes on each variant when variants are given",
            details={"field": "stock"},
        )

    with transaction():
        product = Product(stock=0, reserved=0)
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.add(product)
        db.session.flush()

        if opening_stock > 0:
            _restock_locked(product.id, opening_stock, note="estoque inicial")
        for variant_input in variants:
            _add_variant_locked(product.id, variant_input)
        return product


def add_variant(product_id: int, payload: dict) -> ProductVariant:
    """New color/size for an existing product, with its own opening stock."""
    variant_input = parse_variant(payload, 0)
    with transaction():
        return _add_variant_locked(product_id, variant_input)


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    with transaction():
        product = get_product(product_id)
        for key, value in patch.items():
            setattr(product, key, value)
        return product


def deactivate_product(product_id: int) -> Product:
    """Soft-delete only: sale lines keep referencing the product."""
    with transaction():
        product = get_product(product_id)
        product.is_active = False
        return product


# =============================================================================
# CUSTOMERS
# =============================================================================

def _normalize_cpf(payload: dict) -> dict:
    if not isinstance(payload, dict) or payload.get("cpf") is None:
        return payload
    digits = re.sub(r"\D", "", str(payload["cpf"]))
    if not digits:
        return {**payload, "cpf": None}
    if len(digits) != 11:
        raise ValidationError("cpf must have 11 digits", details={"field": "cpf"})
    return {**payload, "cpf": digits}


def _ensure_cpf_free(cpf: str | None, customer_id: int | None = None) -> None:
    if not cpf:
        return
    q = db.session.query(Customer).filter(Customer.cpf == cpf)
    if customer_id is not None:
        q = q.filter(Customer.id != customer_id)
    if q.first() is not None:
        raise ConflictError("a customer with this CPF already exists", details={"cpf": cpf})


def list_customers(search: str | None = None) -> list[Customer]:
    q = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(db.or_(Customer.name.ilike(pattern), Customer.phone.ilike(pattern)))
    return q.order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound(f"customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def create_customer(payload: dict) -> Customer:
    payload = _normalize_cpf(payload or {})
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)

    with transaction():
        _ensure_cpf_free(patch.get("cpf"))
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.flush()
        return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    payload = _normalize_cpf(payload or {})
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)

    with transaction():
        customer = get_customer(customer_id)
        if "cpf" in patch:
            _ensure_cpf_free(patch["cpf"], customer_id=customer.id)
        for key, value in patch.items():
            setattr(customer, key, value)
        return customer
