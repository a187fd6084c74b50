# Overview: Service-layer operations for stock; reservations, commits and restocks with a movement log.

"""
Stock Ledger

Invariants (checked under the product row lock, before any write):
- stock >= 0 and reserved >= 0 after every committed operation
- available = stock - reserved; a reservation never exceeds available
- a reservation ends exactly once (released or committed)
- for a product split by color/size, every movement lands on one variant
  and the product counters stay the sums of its variants

Every public mutation is one transaction and appends a StockMovement.
The *_locked helpers do the same work without committing so sales_service
can compose several of them into a single sale transaction.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, InsufficientStock, InvalidStateTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Product, ProductVariant, StockMovement, StockReservation
from ..models.inventory import RESERVATION_ACTIVE, RESERVATION_COMMITTED, RESERVATION_RELEASED
from closet.time_utils import utcnow
from closet.validation import VariantInput, require_quantity
from .concurrency import lock_for_update, transaction


MOVEMENT_RESERVE = "reserve"
MOVEMENT_RELEASE = "release"
MOVEMENT_SALE = "sale"
MOVEMENT_RESERVATION_COMMIT = "reservation_commit"
MOVEMENT_RESTOCK = "restock"


# =============================================================================
# HELPERS
# =============================================================================

# Sizes the shop writes for one-size pieces
UNIQUE_SIZES = frozenset({"u", "unico", "único"})
GENERIC_COLORS = frozenset({"", "padrao", "padrão"})


def _norm(value) -> str:
    return str(value or "").strip().lower()


def _get_product_locked(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFound(f"product {product_id} not found", details={"product_id": product_id})
    return product


def _get_variants_locked(product_id: int) -> list[ProductVariant]:
    return lock_for_update(
        db.session.query(ProductVariant)
        .filter_by(product_id=product_id)
        .order_by(ProductVariant.id.asc())
    ).all()


def _get_reservation_locked(reservation_id: int) -> StockReservation:
    reservation = lock_for_update(
        db.session.query(StockReservation).filter_by(id=reservation_id)
    ).first()
    if reservation is None:
        raise NotFound(f"reservation {reservation_id} not found", details={"reservation_id": reservation_id})
    return reservation


def _variant_mismatch(product: Product, field: str, value, options: list[str]) -> ValidationError:
    return ValidationError(
        f"{field} {value!r} not found for product {product.id} ({product.name})",
        details={"product_id": product.id, "field": field, "value": value, "options": options},
    )


def _resolve_variant_locked(
    product: Product,
    *,
    color: str | None = None,
    size: str | None = None,
    variant_id: int | None = None,
) -> ProductVariant | None:
    """
    Pick the variant a movement applies to, or None when the product is not split.

    Color and size match case-insensitively. When the color does not match,
    a blank or "padrão" color takes the first color and a product with a
    single color always uses it. When the size does not match, "u" and
    "único" match each other and a color with a single size always uses it.
    Anything else is rejected so the product totals stay equal to the sums.
    """
    variants = _get_variants_locked(product.id)

    if variant_id is not None:
        for variant in variants:
            if variant.id == variant_id:
                return variant
        raise NotFound(
            f"variant {variant_id} not found for product {product.id}",
            details={"product_id": product.id, "variant_id": variant_id},
        )
    if not variants:
        return None

    colors = list(dict.fromkeys(v.color for v in variants))
    wanted_color = _norm(color)
    group = [v for v in variants if _norm(v.color) == wanted_color]
    if not group and (wanted_color in GENERIC_COLORS or len(colors) == 1):
        group = [v for v in variants if v.color == colors[0]]
        if wanted_color:
            current_app.logger.warning(
                "Color %r not found for product %s, using %r", color, product.id, colors[0]
            )
    if not group:
        raise _variant_mismatch(product, "color", color, colors)

    wanted_size = _norm(size)
    matches = [v for v in group if _norm(v.size) == wanted_size]
    if not matches and wanted_size in UNIQUE_SIZES:
        matches = [v for v in group if _norm(v.size) in UNIQUE_SIZES]
    if not matches and len(group) == 1:
        matches = group
        if wanted_size:
            current_app.logger.warning(
                "Size %r not found for product %s color %r, using %r",
                size, product.id, group[0].color, group[0].size,
            )
    if not matches:
        raise _variant_mismatch(product, "size", size, [v.size for v in group])
    return matches[0]


def _shift(product: Product, variant: ProductVariant | None, *, stock: int = 0, reserved: int = 0) -> None:
    for row in (product, variant):
        if row is None:
            continue
        row.stock = row.stock + stock
        row.reserved = row.reserved + reserved


def _record_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    *,
    variant: ProductVariant | None = None,
    sale_id: int | None = None,
    reservation_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        movement_type=movement_type,
        quantity=quantity,
        stock_after=product.stock,
        reserved_after=product.reserved,
        sale_id=sale_id,
        reservation_id=reservation_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def _insufficient(
    product: Product,
    requested: int,
    have: int,
    variant: ProductVariant | None = None,
) -> InsufficientStock:
    details = {
        "product_id": product.id,
        "product_name": product.name,
        "requested": requested,
        "available": have,
    }
    label = f"product {product.id}"
    if variant is not None:
        details.update(variant_id=variant.id, color=variant.color, size=variant.size)
        label = f"product {product.id} ({variant.label})"
    return InsufficientStock(
        f"insufficient stock for {label}: requested {requested}, have {have}",
        details=details,
    )


def _held_units_check(product: Product, variant: ProductVariant | None, reservation: StockReservation) -> None:
    for row in (product, variant):
        if row is not None and row.reserved < reservation.quantity:
            raise InvalidStateTransition(
                f"product {product.id} holds fewer reserved units than reservation {reservation.id}",
                details={"reserved": row.reserved, "quantity": reservation.quantity},
            )


# =============================================================================
# RESERVATIONS
# =============================================================================

def _reserve_locked(
    product_id: int,
    quantity: int,
    sale_id: int | None = None,
    *,
    color: str | None = None,
    size: str | None = None,
    variant_id: int | None = None,
) -> StockReservation:
    quantity = require_quantity(quantity)
    product = _get_product_locked(product_id)
    variant = _resolve_variant_locked(product, color=color, size=size, variant_id=variant_id)

    have = product.available if variant is None else min(product.available, variant.available)
    if have < quantity:
        raise _insufficient(product, quantity, have, variant)

    _shift(product, variant, reserved=quantity)
    reservation = StockReservation(
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        sale_id=sale_id,
        quantity=quantity,
        status=RESERVATION_ACTIVE,
        created_at=utcnow(),
    )
    db.session.add(reservation)
    db.session.flush()

    _record_movement(
        product, MOVEMENT_RESERVE, quantity, variant=variant, sale_id=sale_id, reservation_id=reservation.id
    )
    return reservation


def reserve(
    product_id: int,
    quantity: int,
    sale_id: int | None = None,
    *,
    color: str | None = None,
    size: str | None = None,
    variant_id: int | None = None,
) -> StockReservation:
    """Hold `quantity` units of a product (or one of its color/size variants) for a malinha."""
    with transaction():
        return _reserve_locked(product_id, quantity, sale_id, color=color, size=size, variant_id=variant_id)


def _reservation_variant(product: Product, reservation: StockReservation) -> ProductVariant | None:
    if reservation.variant_id is None:
        return None
    return _resolve_variant_locked(product, variant_id=reservation.variant_id)


def _release_locked(reservation_id: int) -> StockReservation:
    reservation = _get_reservation_locked(reservation_id)

    if reservation.status == RESERVATION_RELEASED:
        return reservation
    if reservation.status == RESERVATION_COMMITTED:
        raise InvalidStateTransition(
            f"reservation {reservation_id} is already committed",
            details={"reservation_id": reservation_id, "status": reservation.status},
        )

    product = _get_product_locked(reservation.product_id)
    variant = _reservation_variant(product, reservation)
    _held_units_check(product, variant, reservation)

    _shift(product, variant, reserved=-reservation.quantity)
    reservation.status = RESERVATION_RELEASED
    reservation.released_at = utcnow()

    _record_movement(
        product,
        MOVEMENT_RELEASE,
        reservation.quantity,
        variant=variant,
        sale_id=reservation.sale_id,
        reservation_id=reservation.id,
    )
    return reservation


def release(reservation_id: int) -> StockReservation:
    """
    Return reserved units to available stock.

    Releasing an already released reservation is a no-op.
    """
    with transaction():
        return _release_locked(reservation_id)


def _commit_reservation_locked(reservation_id: int) -> StockReservation:
    reservation = _get_reservation_locked(reservation_id)

    if reservation.status != RESERVATION_ACTIVE:
        raise InvalidStateTransition(
            f"reservation {reservation_id} is {reservation.status}, only active reservations can be committed",
            details={"reservation_id": reservation_id, "status": reservation.status},
        )

    product = _get_product_locked(reservation.product_id)
    variant = _reservation_variant(product, reservation)
    for row in (product, variant):
        if row is not None and row.stock < reservation.quantity:
            raise _insufficient(product, reservation.quantity, row.stock, variant)
    _held_units_check(product, variant, reservation)

    _shift(product, variant, stock=-reservation.quantity, reserved=-reservation.quantity)
    reservation.status = RESERVATION_COMMITTED
    reservation.committed_at = utcnow()

    _record_movement(
        product,
        MOVEMENT_RESERVATION_COMMIT,
        reservation.quantity,
        variant=variant,
        sale_id=reservation.sale_id,
        reservation_id=reservation.id,
    )
    return reservation


def commit_reservation(reservation_id: int) -> StockReservation:
    """Turn a held reservation into sold units."""
    with transaction():
        return _commit_reservation_locked(reservation_id)


# =============================================================================
# DIRECT MOVEMENTS
# =============================================================================

def _commit_locked(
    product_id: int,
    quantity: int,
    sale_id: int | None = None,
    note: str | None = None,
    *,
    color: str | None = None,
    size: str | None = None,
    variant_id: int | None = None,
) -> StockMovement:
    quantity = require_quantity(quantity)
    product = _get_product_locked(product_id)
    variant = _resolve_variant_locked(product, color=color, size=size, variant_id=variant_id)

    # Direct sales check stock on hand, not available
    for row in (product, variant):
        if row is not None and row.stock < quantity:
            raise _insufficient(product, quantity, row.stock, variant)

    _shift(product, variant, stock=-quantity)
    if product.stock < product.reserved:
        current_app.logger.warning(
            "Direct sale of %s unit(s) of product %s leaves %s held unit(s) without stock",
            quantity, product.id, product.oversold,
        )

    movement = _record_movement(product, MOVEMENT_SALE, quantity, variant=variant, sale_id=sale_id, note=note)
    db.session.flush()
    return movement


def commit(
    product_id: int,
    quantity: int,
    sale_id: int | None = None,
    note: str | None = None,
    *,
    color: str | None = None,
    size: str | None = None,
    variant_id: int | None = None,
) -> StockMovement:
    """Direct sale: units leave the shop immediately."""
    with transaction():
        return _commit_locked(product_id, quantity, sale_id, note, color=color, size=size, variant_id=variant_id)


def _restock_locked(
    product_id: int,
    quantity: int,
    sale_id: int | None = None,
    note: str | None = None,
    *,
    color: str | None = None,
    size: str | None = None,
    variant_id: int | None = None,
) -> StockMovement:
    quantity = require_quantity(quantity)
    product = _get_product_locked(product_id)
    variant = _resolve_variant_locked(product, color=color, size=size, variant_id=variant_id)

    _shift(product, variant, stock=quantity)
    movement = _record_movement(product, MOVEMENT_RESTOCK, quantity, variant=variant, sale_id=sale_id, note=note)
    db.session.flush()
    return movement


def restock(
    product_id: int,
    quantity: int,
    sale_id: int | None = None,
    note: str | None = None,
    *,
    color: str | None = None,
    size: str | None = None,
    variant_id: int | None = None,
) -> StockMovement:
    """Units arrive or come back (e.g. a cancelled sale)."""
    with transaction():
        return _restock_locked(product_id, quantity, sale_id, note, color=color, size=size, variant_id=variant_id)


# =============================================================================
# VARIANTS
# =============================================================================

def _add_variant_locked(product_id: int, variant_input: VariantInput) -> ProductVariant:
    product = _get_product_locked(product_id)
    variants = _get_variants_locked(product.id)

    unassigned = product.stock - sum(v.stock for v in variants)
    if unassigned or product.reserved - sum(v.reserved for v in variants):
        raise ConflictError(
            f"product {product.id} has stock outside its variants; move it before splitting by color/size",
            details={"product_id": product.id, "unassigned_stock": unassigned},
        )

    key = (_norm(variant_input.color), _norm(variant_input.size))
    if any((_norm(v.color), _norm(v.size)) == key for v in variants):
        raise ConflictError(
            f"product {product.id} already has variant {variant_input.color or '-'}/{variant_input.size or '-'}",
            details={"product_id": product.id, "color": variant_input.color, "size": variant_input.size},
        )

    variant = ProductVariant(
        product_id=product.id,
        color=variant_input.color,
        size=variant_input.size,
        stock=0,
        reserved=0,
    )
    db.session.add(variant)
    db.session.flush()

    if variant_input.stock > 0:
        _restock_locked(product.id, variant_input.stock, note="estoque inicial", variant_id=variant.id)
    return variant


def add_variant(product_id: int, variant_input: VariantInput) -> ProductVariant:
    """Split a product by color/size. Only allowed while all its stock sits in variants."""
    with transaction():
        return _add_variant_locked(product_id, variant_input)


# =============================================================================
# QUERIES
# =============================================================================

def get_stock_levels(product_id: int) -> dict:
    """
    Counters of a product and of each color/size variant.

    available never goes below zero; oversold counts held units that a
    direct sale already took off the shelf.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"product {product_id} not found", details={"product_id": product_id})

    active_reservations = (
        db.session.query(StockReservation)
        .filter_by(product_id=product_id, status=RESERVATION_ACTIVE)
        .count()
    )
    return {
        "product_id": product.id,
        "name": product.name,
        "stock": product.stock,
        "reserved": product.reserved,
        "available": product.available,
        "oversold": product.oversold,
        "active_reservations": active_reservations,
        "variants": [v.to_dict() for v in product.variants],
    }


def get_reservation(reservation_id: int) -> StockReservation:
    reservation = db.session.get(StockReservation, reservation_id)
    if reservation is None:
        raise NotFound(f"reservation {reservation_id} not found", details={"reservation_id": reservation_id})
    return reservation


def list_reservations(
    *,
    product_id: int | None = None,
    sale_id: int | None = None,
    status: str | None = None,
) -> list[StockReservation]:
    q = db.session.query(StockReservation)
    if product_id is not None:
        q = q.filter(StockReservation.product_id == product_id)
    if sale_id is not None:
        q = q.filter(StockReservation.sale_id == sale_id)
    if status:
        q = q.filter(StockReservation.status == status)
    return q.order_by(StockReservation.id.asc()).all()


def list_movements(product_id: int, limit: int = 200) -> list[StockMovement]:
    if db.session.get(Product, product_id) is None:
        raise NotFound(f"product {product_id} not found", details={"product_id": product_id})
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def _low_stock_threshold(threshold: int | None) -> int:
    if threshold is not None:
        return threshold
    return current_app.config.get("LOW_STOCK_THRESHOLD", 2)


def list_low_stock(threshold: int | None = None, limit: int = 10) -> list[Product]:
    """Active products with stock at or below the threshold, emptiest first."""
    threshold = _low_stock_threshold(threshold)
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )


def get_stock_kpis(threshold: int | None = None) -> dict:
    """
    Stock valuation over active products.

    average_markup is (retail - cost) / cost as a percentage, 0 when there is
    no cost basis.
    """
    threshold = _low_stock_threshold(threshold)
    row = (
        db.session.query(
            func.count(Product.id),
            func.coalesce(func.sum(Product.stock), 0),
            func.coalesce(func.sum(func.coalesce(Product.price_cents, 0) * Product.stock), 0),
            func.coalesce(func.sum(func.coalesce(Product.cost_price_cents, 0) * Product.stock), 0),
        )
        .filter(Product.is_active.is_(True))
        .one()
    )
    products_count, total_items, total_value, total_cost = (int(v or 0) for v in row)

    low_stock_count = (
        db.session.query(func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .scalar()
    ) or 0

    average_markup = 0.0
    if total_cost > 0:
        average_markup = round((total_value - total_cost) / total_cost * 100, 2)

    return {
        "total_value_cents": total_value,
        "total_cost_cents": total_cost,
        "total_items": total_items,
        "products_count": products_count,
        "low_stock_count": int(low_stock_count),
        "average_markup": average_markup,
    }
