"""
Sales Service - sale lifecycle driving stock and installments

WHY: A sale is the document that ties stock movements to money owed.
Every transition moves stock and installments in the same transaction as the
status change, so a failed line leaves nothing behind.

LIFECYCLE:
- create: malinha lines reserve stock, direct lines commit it (direct sales
  are confirmed on creation since the goods already left the shop)
- confirm: pending -> confirmed, commits every open reservation
- cancel: pending/confirmed/partial (or paid on confirmation) -> cancelled,
  returns all stock and cancels installments that are not paid
"""

from __future__ import annotations

from datetime import date

from ..errors import InvalidAmount, InvalidSchedule, InvalidStateTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Customer, Sale, SaleLine, StockReservation
from ..models.inventory import RESERVATION_ACTIVE, RESERVATION_COMMITTED
from ..models.sales import (
    CREDIT_METHODS,
    INSTALLMENT_CANCELLED,
    INSTALLMENT_PAID,
    PAYMENT_METHODS,
    SALE_CANCELLED,
    SALE_CONFIRMED,
    SALE_PAID,
    SALE_PARTIAL,
    SALE_PENDING,
    SALE_TYPE_DIRECT,
    SALE_TYPE_MALINHA,
    SALE_TYPES,
)
from closet.time_utils import utcnow
from closet.validation import MAX_PRICE_CENTS, LineItemInput, parse_line_items
from .concurrency import lock_for_update, transaction
from .installment_service import DEFAULT_PAYMENT_METHOD, _create_installments_locked, recompute_sale
from .stock_service import (
    _commit_locked,
    _commit_reservation_locked,
    _get_product_locked,
    _release_locked,
    _reserve_locked,
    _restock_locked,
)


CANCELLABLE_STATUSES = (SALE_PENDING, SALE_CONFIRMED, SALE_PARTIAL)


def _settled_on_confirmation(sale: Sale) -> bool:
    """A non-credit sale without a schedule is paid by confirming it, not by installments."""
    return sale.status == SALE_PAID and not sale.is_credit and not sale.installments


def _get_sale_locked(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFound(f"sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _add_line(sale: Sale, item: LineItemInput) -> SaleLine:
    product = _get_product_locked(item.product_id)
    if not product.is_active:
        raise ValidationError(
            f"product {product.id} is inactive",
            details={"product_id": product.id},
        )

    unit_price = item.unit_price_cents if item.unit_price_cents is not None else product.price_cents
    if unit_price is None:
        raise ValidationError(
            f"product {product.id} has no price",
            details={"product_id": product.id},
        )

    if unit_price * item.quantity > MAX_PRICE_CENTS:
        raise InvalidAmount(
            f"line total for product {product.id} cannot exceed {MAX_PRICE_CENTS} cents",
            details={"product_id": product.id, "quantity": item.quantity, "unit_price_cents": unit_price},
        )

    line = SaleLine(
        product_id=product.id,
        product_name=product.name,
        quantity=item.quantity,
        unit_price_cents=unit_price,
        cost_price_at_time_cents=product.cost_price_cents,
        line_total_cents=unit_price * item.quantity,
        size=item.size,
        color=item.color,
    )

    if sale.sale_type == SALE_TYPE_MALINHA:
        reservation = _reserve_locked(product.id, item.quantity, sale_id=sale.id, color=item.color, size=item.size)
        line.reservation_id = reservation.id
        line.variant_id = reservation.variant_id
    else:
        movement = _commit_locked(
            product.id,
            item.quantity,
            sale_id=sale.id,
            note=f"venda #{sale.id}",
            color=item.color,
            size=item.size,
        )
        line.variant_id = movement.variant_id

    sale.lines.append(line)
    return line


def create_sale(
    items,
    sale_type: str = SALE_TYPE_DIRECT,
    payment_method: str | None = None,
    customer_id: int | None = None,
    num_installments: int | None = None,
    entry_payment_cents: int = 0,
    installment_start_date: date | None = None,
) -> Sale:
    """
    Create a sale and move its stock.

    All lines succeed or the whole sale is rolled back. When num_installments
    is given the installment schedule is created in the same transaction.
    """
    lines = parse_line_items(items)

    if sale_type not in SALE_TYPES:
        raise ValidationError(
            f"invalid sale_type: {sale_type}",
            details={"sale_type": sale_type, "allowed": sorted(SALE_TYPES)},
        )
    payment_method = payment_method or DEFAULT_PAYMENT_METHOD
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"invalid payment method: {payment_method}",
            details={"payment_method": payment_method, "allowed": sorted(PAYMENT_METHODS)},
        )
    entry_payment_cents = entry_payment_cents or 0
    if entry_payment_cents < 0:
        raise InvalidAmount("entry payment cannot be negative", details={"entry_payment_cents": entry_payment_cents})
    if num_installments is not None and payment_method not in CREDIT_METHODS:
        raise InvalidSchedule(
            "only credit sales (fiado, fiado_parcelado) can have installments",
            details={"payment_method": payment_method},
        )

    with transaction():
        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise NotFound(f"customer {customer_id} not found", details={"customer_id": customer_id})

        now = utcnow()
        sale = Sale(
            customer_id=customer_id,
            sale_type=sale_type,
            status=SALE_PENDING,
            payment_method=payment_method,
            total_cents=0,
            entry_payment_cents=entry_payment_cents,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for item in lines:
            _add_line(sale, item)

        sale.total_cents = sum(line.line_total_cents for line in sale.lines)
        if sale.total_cents > MAX_PRICE_CENTS:
            raise InvalidAmount(
                f"sale total cannot exceed {MAX_PRICE_CENTS} cents",
                details={"total_cents": sale.total_cents, "max_cents": MAX_PRICE_CENTS},
            )
        if entry_payment_cents > sale.total_cents:
            raise InvalidAmount(
                "entry payment exceeds the sale total",
                details={"entry_payment_cents": entry_payment_cents, "total_cents": sale.total_cents},
            )

        if sale_type == SALE_TYPE_DIRECT:
            sale.status = SALE_CONFIRMED
            sale.confirmed_at = now

        db.session.flush()
        if num_installments is not None:
            _create_installments_locked(sale, num_installments, entry_payment_cents, installment_start_date)
        else:
            recompute_sale(sale)
        return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    status: str | None = None,
    customer_id: int | None = None,
    sale_type: str | None = None,
    limit: int = 100,
) -> list[Sale]:
    q = db.session.query(Sale)
    if status:
        q = q.filter(Sale.status == status)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if sale_type:
        q = q.filter(Sale.sale_type == sale_type)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def confirm_sale(sale_id: int) -> Sale:
    """
    pending -> confirmed.

    Every reservation held by the sale is committed. If one of them cannot be
    (released in the meantime, or stock gone), the sale stays pending and no
    stock moves.
    """
    with transaction():
        sale = _get_sale_locked(sale_id)
        if sale.status != SALE_PENDING:
            raise InvalidStateTransition(
                f"sale {sale.id} is {sale.status}, only pending sales can be confirmed",
                details={"sale_id": sale.id, "status": sale.status},
            )

        for line in sale.lines:
            if line.reservation_id is not None:
                _commit_reservation_locked(line.reservation_id)

        sale.status = SALE_CONFIRMED
        sale.confirmed_at = utcnow()
        db.session.flush()
        recompute_sale(sale)
        return sale


def cancel_sale(sale_id: int, reason: str | None = None) -> Sale:
    """
    Cancel a sale and give its stock back.

    Allowed from pending, confirmed and partial, and from paid when the
    sale was settled by its confirmation (cash, pix, card). A credit sale
    paid off through installments is final.

    - active reservations are released
    - committed units (reservations or direct lines) are restocked
    - installments that are not paid become cancelled; payments stay recorded
    """
    with transaction():
        sale = _get_sale_locked(sale_id)
        if sale.status not in CANCELLABLE_STATUSES and not _settled_on_confirmation(sale):
            raise InvalidStateTransition(
                f"sale {sale.id} is {sale.status} and cannot be cancelled",
                details={"sale_id": sale.id, "status": sale.status},
            )

        note = f"cancelamento venda #{sale.id}"
        for line in sale.lines:
            if line.reservation_id is None:
                _restock_locked(line.product_id, line.quantity, sale_id=sale.id, note=note, variant_id=line.variant_id)
                continue

            reservation = db.session.get(StockReservation, line.reservation_id)
            if reservation.status == RESERVATION_ACTIVE:
                _release_locked(reservation.id)
            elif reservation.status == RESERVATION_COMMITTED:
                _restock_locked(line.product_id, line.quantity, sale_id=sale.id, note=note, variant_id=line.variant_id)

        for installment in sale.installments:
            if installment.status != INSTALLMENT_PAID:
                installment.status = INSTALLMENT_CANCELLED

        sale.status = SALE_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancel_reason = (reason or "").strip() or None
        db.session.flush()
        recompute_sale(sale)
        return sale
