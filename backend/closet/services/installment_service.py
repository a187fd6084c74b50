# Overview: Service-layer operations for installments; schedules, payments and fresh recomputation of aggregates.

"""
Installment Ledger ("crediário")

WHY: A credit sale is paid over months. The shop needs to record each
payment against a specific installment, correct mistakes afterwards, and see
at any time what is still owed and what is late.

DESIGN PRINCIPLES:
- Payments are the source of truth; installment and sale aggregates are
  recomputed from them after every mutation, never adjusted incrementally
- All amounts are integer cents, so aggregates are exact
- Input is rejected before anything is read or written
- "overdue" is derived when reading (Installment.display_status), never stored

PAYMENT RULES:
- A paid installment refuses new payments (AlreadySettled)
- Overpayment is accepted as entered and reported as a warning
- The same payment submitted twice within the duplicate window is ignored
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import (
    AlreadySettled,
    InvalidSchedule,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Customer, Installment, InstallmentPayment, Sale
from ..models.sales import (
    CREDIT_METHODS,
    FULL_SETTLEMENT_METHOD,
    INSTALLMENT_CANCELLED,
    INSTALLMENT_PAID,
    INSTALLMENT_PARTIAL,
    INSTALLMENT_PENDING,
    PAYMENT_METHODS,
    SALE_CANCELLED,
    SALE_CONFIRMED,
    SALE_PAID,
    SALE_PARTIAL,
    SALE_PENDING,
)
from closet.time_utils import end_of_week, to_iso_date, today as business_today, utcnow
from closet.validation import require_positive_cents
from .concurrency import lock_for_update, transaction
from .schedule import generate_schedule


# Cents are exact, so an installment is settled only when fully paid
SETTLEMENT_TOLERANCE_CENTS = 0

DEFAULT_PAYMENT_METHOD = "dinheiro"
DUPLICATE_PAYMENT_WARNING = "duplicate payment ignored"

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_CANCELLED = "cancelled"

# Listing filters for credit sales
FILTER_PENDING = "pendentes"
FILTER_PAID = "pagas"
FILTER_ALL = "todas"
CREDIT_LIST_FILTERS = {FILTER_PENDING, FILTER_PAID, FILTER_ALL}


@dataclass
class PaymentResult:
    """What a payment mutation left behind."""
    installment: Installment
    sale: Sale
    payment: InstallmentPayment | None = None
    warnings: list[str] = field(default_factory=list)
    duplicate: bool = False

    def to_dict(self, today: date | None = None) -> dict:
        today = today or business_today()
        return {
            "installment": self.installment.to_dict(today=today),
            "sale": self.sale.to_dict(include_items=False),
            "payment": self.payment.to_dict() if self.payment is not None else None,
            "warnings": list(self.warnings),
            "duplicate": self.duplicate,
        }


@dataclass
class SettlementResult:
    sale: Sale
    payments: list[InstallmentPayment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(include_items=False),
            "payments": [p.to_dict() for p in self.payments],
            "settled_cents": sum(p.amount_cents for p in self.payments),
        }


# =============================================================================
# LOOKUPS
# =============================================================================

def _get_sale_locked(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFound(f"sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _get_installment_locked(installment_id: int) -> Installment:
    installment = lock_for_update(db.session.query(Installment).filter_by(id=installment_id)).first()
    if installment is None:
        raise NotFound(f"installment {installment_id} not found", details={"installment_id": installment_id})
    return installment


def _get_payment_locked(payment_id: int) -> InstallmentPayment:
    payment = lock_for_update(db.session.query(InstallmentPayment).filter_by(id=payment_id)).first()
    if payment is None:
        raise NotFound(f"payment {payment_id} not found", details={"payment_id": payment_id})
    return payment


def _sale_created_on(sale: Sale) -> date:
    return sale.created_at.date() if sale.created_at else business_today()


def _require_method(method: str | None) -> str:
    method = (method or DEFAULT_PAYMENT_METHOD).strip()
    if method not in PAYMENT_METHODS and method != FULL_SETTLEMENT_METHOD:
        raise ValidationError(
            f"invalid payment method: {method}",
            details={"method": method, "allowed": sorted(PAYMENT_METHODS)},
        )
    return method


# =============================================================================
# RECOMPUTATION
# =============================================================================

def recompute_installment(installment: Installment) -> Installment:
    """
    Recalculate amount_paid and status from the payment rows.

    - paid: amount_paid >= amount_due - SETTLEMENT_TOLERANCE_CENTS
    - partial: 0 < amount_paid < amount_due
    - pending: nothing paid
    Cancelled installments keep their status.
    """
    paid = db.session.query(
        func.coalesce(func.sum(InstallmentPayment.amount_cents), 0)
    ).filter(
        InstallmentPayment.installment_id == installment.id,
    ).scalar() or 0

    installment.amount_paid_cents = int(paid)

    if installment.status == INSTALLMENT_CANCELLED:
        return installment

    if installment.amount_paid_cents >= installment.amount_due_cents - SETTLEMENT_TOLERANCE_CENTS:
        installment.status = INSTALLMENT_PAID
        if installment.paid_at is None:
            installment.paid_at = utcnow()
    elif installment.amount_paid_cents > 0:
        installment.status = INSTALLMENT_PARTIAL
        installment.paid_at = None
    else:
        installment.status = INSTALLMENT_PENDING
        installment.paid_at = None
    return installment


def recompute_sale(sale: Sale) -> Sale:
    """
    Recalculate paid / remaining / payment_status for a sale.

    remaining = sum of max(0, due - paid) over non-cancelled installments.
    A credit sale without a schedule owes total - entry. A non-credit sale
    without a schedule is settled once confirmed.

    Lifecycle status follows the balance only after confirmation: a pending
    sale stays pending, a cancelled sale stays cancelled.
    """
    installments = (
        db.session.query(Installment)
        .filter_by(sale_id=sale.id)
        .order_by(Installment.installment_number.asc())
        .all()
    )
    entry = sale.entry_payment_cents or 0
    installments_paid = sum(i.amount_paid_cents or 0 for i in installments)

    if installments:
        remaining = sum(
            max(0, i.amount_due_cents - (i.amount_paid_cents or 0))
            for i in installments
            if i.status != INSTALLMENT_CANCELLED
        )
        paid = entry + installments_paid
    elif sale.is_credit:
        remaining = max(0, sale.total_cents - entry)
        paid = entry
    elif sale.status in (SALE_CONFIRMED, SALE_PARTIAL, SALE_PAID):
        remaining = 0
        paid = sale.total_cents
    else:
        remaining = sale.total_cents
        paid = 0

    sale.paid_cents = paid

    if sale.status == SALE_CANCELLED:
        sale.remaining_cents = 0
        sale.payment_status = PAYMENT_STATUS_CANCELLED
        return sale

    sale.remaining_cents = remaining
    if remaining <= 0:
        sale.payment_status = PAYMENT_STATUS_PAID
    elif paid > 0:
        sale.payment_status = PAYMENT_STATUS_PARTIAL
    else:
        sale.payment_status = PAYMENT_STATUS_PENDING

    if sale.status != SALE_PENDING:
        if sale.payment_status == PAYMENT_STATUS_PAID:
            sale.status = SALE_PAID
            if sale.paid_at is None:
                sale.paid_at = utcnow()
        elif sale.payment_status == PAYMENT_STATUS_PARTIAL:
            sale.status = SALE_PARTIAL
            sale.paid_at = None
        else:
            sale.status = SALE_CONFIRMED
            sale.paid_at = None
    return sale


def recompute_all(sale_id: int | None = None) -> int:
    """Rebuild aggregates for one sale or for every sale. Returns the number of sales touched."""
    with transaction():
        q = db.session.query(Sale)
        if sale_id is not None:
            q = q.filter(Sale.id == sale_id)
        sales = q.order_by(Sale.id.asc()).all()
        if sale_id is not None and not sales:
            raise NotFound(f"sale {sale_id} not found", details={"sale_id": sale_id})
        for sale in sales:
            for installment in sale.installments:
                recompute_installment(installment)
            recompute_sale(sale)
        return len(sales)


# =============================================================================
# SCHEDULE
# =============================================================================

def _create_installments_locked(
    sale: Sale,
    num_installments: int,
    entry_payment_cents: int = 0,
    start_date: date | None = None,
) -> list[Installment]:
    if sale.status == SALE_CANCELLED:
        raise InvalidStateTransition(
            f"sale {sale.id} is cancelled",
            details={"sale_id": sale.id, "status": sale.status},
        )
    if not sale.is_credit:
        raise InvalidSchedule(
            f"sale {sale.id} is not a credit sale",
            details={"sale_id": sale.id, "payment_method": sale.payment_method},
        )
    existing = db.session.query(Installment).filter_by(sale_id=sale.id).count()
    if existing:
        raise InvalidSchedule(
            f"sale {sale.id} already has {existing} installments",
            details={"sale_id": sale.id, "existing": existing},
        )

    created_on = _sale_created_on(sale)
    rows = generate_schedule(
        sale.total_cents,
        entry_payment_cents or 0,
        num_installments,
        start_date=start_date,
        created_on=created_on,
    )

    sale.entry_payment_cents = entry_payment_cents or 0
    sale.num_installments = num_installments
    sale.installment_start_date = start_date or created_on

    installments = []
    for row in rows:
        installment = Installment(
            installment_number=row.sequence,
            due_date=row.due_date,
            amount_due_cents=row.amount_due_cents,
            amount_paid_cents=0,
            status=INSTALLMENT_PENDING,
        )
        sale.installments.append(installment)
        installments.append(installment)

    db.session.flush()
    # Rows with nothing due are settled from the start
    for installment in installments:
        recompute_installment(installment)
    recompute_sale(sale)
    return installments


def create_installments(
    sale_id: int,
    num_installments: int,
    entry_payment_cents: int = 0,
    start_date: date | None = None,
) -> list[Installment]:
    """Persist the installment schedule of a credit sale."""
    with transaction():
        sale = _get_sale_locked(sale_id)
        return _create_installments_locked(sale, num_installments, entry_payment_cents, start_date)


# =============================================================================
# PAYMENTS
# =============================================================================

def _find_recent_duplicate(installment_id: int, amount_cents: int, payment_date: date) -> InstallmentPayment | None:
    window = current_app.config.get("DUPLICATE_PAYMENT_WINDOW_SECONDS", 30)
    if not window:
        return None
    since = utcnow() - timedelta(seconds=window)
    return (
        db.session.query(InstallmentPayment)
        .filter(
            InstallmentPayment.installment_id == installment_id,
            InstallmentPayment.amount_cents == amount_cents,
            InstallmentPayment.payment_date == payment_date,
            InstallmentPayment.created_at >= since,
        )
        .order_by(InstallmentPayment.id.desc())
        .first()
    )


def _overpayment_warning(installment: Installment) -> list[str]:
    excess = installment.amount_paid_cents - installment.amount_due_cents
    if excess > 0 and installment.status != INSTALLMENT_CANCELLED:
        return [f"overpayment: installment {installment.id} received {excess} cents more than due"]
    return []


def apply_payment(
    installment_id: int,
    amount_cents: int,
    payment_date: date | None = None,
    method: str | None = None,
    notes: str | None = None,
    created_by: str | None = None,
) -> PaymentResult:
    """
    Record money received against one installment.

    Check order: InvalidAmount (before any read), NotFound, duplicate
    submission, AlreadySettled, InvalidStateTransition.
    """
    amount_cents = require_positive_cents(amount_cents)
    method = _require_method(method)
    payment_date = payment_date or business_today()

    with transaction():
        installment = _get_installment_locked(installment_id)
        sale = _get_sale_locked(installment.sale_id)

        duplicate = _find_recent_duplicate(installment.id, amount_cents, payment_date)
        if duplicate is not None:
            return PaymentResult(
                installment=installment,
                sale=sale,
                payment=duplicate,
                warnings=[DUPLICATE_PAYMENT_WARNING],
                duplicate=True,
            )

        if installment.status == INSTALLMENT_PAID:
            raise AlreadySettled(
                f"installment {installment.id} is already paid",
                details={"installment_id": installment.id},
            )
        if installment.status == INSTALLMENT_CANCELLED or sale.status == SALE_CANCELLED:
            raise InvalidStateTransition(
                f"installment {installment.id} belongs to a cancelled sale",
                details={"installment_id": installment.id, "sale_id": sale.id},
            )

        now = utcnow()
        payment = InstallmentPayment(
            installment_id=installment.id,
            payment_date=payment_date,
            amount_cents=amount_cents,
            payment_method=method,
            notes=notes,
            created_by=created_by,
            created_at=now,
        )
        db.session.add(payment)
        db.session.flush()

        recompute_installment(installment)
        recompute_sale(sale)

        return PaymentResult(
            installment=installment,
            sale=sale,
            payment=payment,
            warnings=_overpayment_warning(installment),
        )


def pay_full(
    sale_id: int,
    method: str = FULL_SETTLEMENT_METHOD,
    payment_date: date | None = None,
    created_by: str | None = None,
) -> SettlementResult:
    """
    Settle everything a sale still owes in one transaction.

    One payment per open installment, for exactly its remaining balance.
    A credit sale that never got a schedule is first given a single
    installment for total - entry.
    """
    method = _require_method(method)
    payment_date = payment_date or business_today()

    with transaction():
        sale = _get_sale_locked(sale_id)
        if sale.status == SALE_CANCELLED:
            raise InvalidStateTransition(
                f"sale {sale.id} is cancelled",
                details={"sale_id": sale.id, "status": sale.status},
            )

        installments = lock_for_update(
            db.session.query(Installment)
            .filter_by(sale_id=sale.id)
            .order_by(Installment.installment_number.asc())
        ).all()

        if not installments:
            if not sale.is_credit:
                if sale.remaining_cents <= 0:
                    raise AlreadySettled(f"sale {sale.id} has nothing left to pay", details={"sale_id": sale.id})
                raise InvalidStateTransition(
                    f"sale {sale.id} is settled on confirmation, not by installments",
                    details={"sale_id": sale.id, "payment_method": sale.payment_method},
                )
            if sale.total_cents - (sale.entry_payment_cents or 0) <= 0:
                raise AlreadySettled(f"sale {sale.id} has nothing left to pay", details={"sale_id": sale.id})
            installments = _create_installments_locked(sale, 1, sale.entry_payment_cents or 0)

        open_installments = [
            i for i in installments
            if i.status not in (INSTALLMENT_PAID, INSTALLMENT_CANCELLED) and i.remaining_cents > 0
        ]
        if not open_installments:
            raise AlreadySettled(f"sale {sale.id} has nothing left to pay", details={"sale_id": sale.id})

        now = utcnow()
        payments = []
        for installment in open_installments:
            payment = InstallmentPayment(
                installment_id=installment.id,
                payment_date=payment_date,
                amount_cents=installment.remaining_cents,
                payment_method=method,
                notes="quitação total",
                created_by=created_by,
                created_at=now,
            )
            db.session.add(payment)
            payments.append(payment)
        db.session.flush()

        for installment in installments:
            recompute_installment(installment)
        recompute_sale(sale)

        return SettlementResult(sale=sale, payments=payments)


def edit_payment(
    payment_id: int,
    amount_cents: int | None = None,
    payment_date: date | None = None,
    method: str | None = None,
    notes: str | None = None,
) -> PaymentResult:
    """
    Correct a recorded payment. Fields left as None are unchanged.

    The installment and sale are recomputed from scratch afterwards, so a
    paid installment can drop back to partial.
    """
    if amount_cents is not None:
        amount_cents = require_positive_cents(amount_cents)
    if method is not None:
        method = _require_method(method)

    with transaction():
        payment = _get_payment_locked(payment_id)
        installment = _get_installment_locked(payment.installment_id)
        sale = _get_sale_locked(installment.sale_id)

        if sale.status == SALE_CANCELLED:
            raise InvalidStateTransition(
                f"sale {sale.id} is cancelled",
                details={"sale_id": sale.id, "payment_id": payment.id},
            )

        if amount_cents is not None:
            payment.amount_cents = amount_cents
        if payment_date is not None:
            payment.payment_date = payment_date
        if method is not None:
            payment.payment_method = method
        if notes is not None:
            payment.notes = notes
        payment.updated_at = utcnow()
        db.session.flush()

        recompute_installment(installment)
        recompute_sale(sale)

        return PaymentResult(
            installment=installment,
            sale=sale,
            payment=payment,
            warnings=_overpayment_warning(installment),
        )


def delete_payment(payment_id: int) -> PaymentResult:
    """Remove a payment and recompute its installment and sale."""
    with transaction():
        payment = _get_payment_locked(payment_id)
        installment = _get_installment_locked(payment.installment_id)
        sale = _get_sale_locked(installment.sale_id)

        if sale.status == SALE_CANCELLED:
            raise InvalidStateTransition(
                f"sale {sale.id} is cancelled",
                details={"sale_id": sale.id, "payment_id": payment.id},
            )

        installment.payments.remove(payment)
        db.session.delete(payment)
        db.session.flush()

        recompute_installment(installment)
        recompute_sale(sale)

        return PaymentResult(installment=installment, sale=sale)


# =============================================================================
# QUERIES
# =============================================================================

def _percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    # Round half up on integers
    return (part * 200 + whole) // (whole * 2)


def get_sale_details(sale_id: int, today: date | None = None) -> dict:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"sale {sale_id} not found", details={"sale_id": sale_id})

    today = today or business_today()
    installments = list(sale.installments)
    return {
        "sale": sale.to_dict(),
        "installments": [i.to_dict(today=today, include_payments=True) for i in installments],
        "total_cents": sale.total_cents,
        "paid_cents": sale.paid_cents,
        "remaining_cents": sale.remaining_cents,
        "paid_percentage": _percentage(sale.paid_cents, sale.total_cents),
        "overdue_count": sum(1 for i in installments if i.is_overdue(today)),
    }


def _credit_sales_query(status: str):
    if status not in CREDIT_LIST_FILTERS:
        raise ValidationError(
            f"invalid status filter: {status}",
            details={"status": status, "allowed": sorted(CREDIT_LIST_FILTERS)},
        )
    q = db.session.query(Sale).filter(Sale.payment_method.in_(sorted(CREDIT_METHODS)))
    if status == FILTER_PENDING:
        q = q.filter(
            Sale.payment_status != PAYMENT_STATUS_PAID,
            Sale.status != SALE_CANCELLED,
        )
    elif status == FILTER_PAID:
        q = q.filter(Sale.payment_status == PAYMENT_STATUS_PAID)
    return q


def _overdue_count(sale: Sale, today: date) -> int:
    return sum(1 for i in sale.installments if i.is_overdue(today))


def list_credit_sales(
    status: str = FILTER_PENDING,
    page: int = 1,
    page_size: int = 20,
    today: date | None = None,
) -> dict:
    """Credit sales (fiado / fiado_parcelado), newest first, with what is due."""
    page = max(1, page or 1)
    page_size = max(1, min(page_size or 20, 200))
    today = today or business_today()

    q = _credit_sales_query(status)
    total = q.count()
    sales = (
        q.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    items = []
    for sale in sales:
        data = sale.to_dict(include_items=False)
        data["customer_phone"] = sale.customer.phone if sale.customer else None
        data["due_cents"] = sale.remaining_cents
        data["overdue_count"] = _overdue_count(sale, today)
        items.append(data)

    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size,
    }


def get_credit_metrics(status: str = FILTER_PENDING, today: date | None = None) -> dict:
    today = today or business_today()
    sales = _credit_sales_query(status).all()

    total_due = 0
    total_overdue = 0
    overdue_sales = 0
    for sale in sales:
        total_due += sale.remaining_cents
        if _overdue_count(sale, today) > 0:
            overdue_sales += 1
            total_overdue += sale.remaining_cents

    return {
        "count": len(sales),
        "total_due_cents": total_due,
        "total_overdue_cents": total_overdue,
        "overdue_count": overdue_sales,
    }


def _upcoming_entry(
    *,
    sale: Sale,
    customer: Customer | None,
    due_date: date,
    installment: Installment | None,
) -> dict:
    if installment is not None:
        amount_due = installment.amount_due_cents
        amount_paid = installment.amount_paid_cents
        remaining = installment.remaining_cents
        number = installment.installment_number
    else:
        amount_due = sale.total_cents
        amount_paid = sale.entry_payment_cents or 0
        remaining = sale.remaining_cents
        number = 1
    return {
        "installment_id": installment.id if installment is not None else None,
        "sale_id": sale.id,
        "installment_number": number,
        "due_date": to_iso_date(due_date),
        "amount_due_cents": amount_due,
        "amount_paid_cents": amount_paid,
        "remaining_cents": remaining,
        "customer_name": customer.name if customer else None,
        "customer_phone": customer.phone if customer else None,
        "sale_total_cents": sale.total_cents,
        "virtual": installment is None,
    }


def _open_installment_rows(*, due_from: date | None = None, due_until: date | None = None, due_before: date | None = None):
    q = (
        db.session.query(Installment, Sale, Customer)
        .join(Sale, Installment.sale_id == Sale.id)
        .outerjoin(Customer, Sale.customer_id == Customer.id)
        .filter(
            Installment.status.in_((INSTALLMENT_PENDING, INSTALLMENT_PARTIAL)),
            Sale.status != SALE_CANCELLED,
        )
    )
    if due_from is not None:
        q = q.filter(Installment.due_date >= due_from)
    if due_until is not None:
        q = q.filter(Installment.due_date <= due_until)
    if due_before is not None:
        q = q.filter(Installment.due_date < due_before)
    return (
        q.order_by(Installment.due_date.asc(), Installment.sale_id.asc(), Installment.installment_number.asc())
        .all()
    )


def _unscheduled_credit_sales() -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter(
            Sale.payment_method.in_(sorted(CREDIT_METHODS)),
            Sale.status != SALE_CANCELLED,
            Sale.remaining_cents > 0,
            ~Sale.installments.any(),
        )
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )


def _entry_sort_key(entry: dict):
    return entry["due_date"], entry["sale_id"], entry["installment_number"]


def list_overdue(today: date | None = None) -> list[dict]:
    """
    Open installments whose due date has passed, oldest first.

    Unscheduled credit sales are late from the day after the sale. Each entry
    carries `days_late`.
    """
    today = today or business_today()

    entries = []
    for installment, sale, customer in _open_installment_rows(due_before=today):
        entry = _upcoming_entry(sale=sale, customer=customer, due_date=installment.due_date, installment=installment)
        entry["days_late"] = (today - installment.due_date).days
        entries.append(entry)

    for sale in _unscheduled_credit_sales():
        due = _sale_created_on(sale)
        if due < today:
            entry = _upcoming_entry(sale=sale, customer=sale.customer, due_date=due, installment=None)
            entry["days_late"] = (today - due).days
            entries.append(entry)

    entries.sort(key=_entry_sort_key)
    return entries


def get_upcoming(today: date | None = None) -> dict:
    """
    What falls due from today through Sunday, plus how many are late.

    Credit sales that never got a schedule count as one installment due on
    the sale date.
    """
    today = today or business_today()
    week_end = end_of_week(today)

    entries = [
        _upcoming_entry(sale=sale, customer=customer, due_date=installment.due_date, installment=installment)
        for installment, sale, customer in _open_installment_rows(due_from=today, due_until=week_end)
    ]
    for sale in _unscheduled_credit_sales():
        due = _sale_created_on(sale)
        if today <= due <= week_end:
            entries.append(_upcoming_entry(sale=sale, customer=sale.customer, due_date=due, installment=None))

    entries.sort(key=_entry_sort_key)
    today_iso = to_iso_date(today)
    due_today = [e for e in entries if e["due_date"] == today_iso]
    due_this_week = [e for e in entries if e["due_date"] != today_iso]

    return {
        "today": today_iso,
        "week_end": to_iso_date(week_end),
        "due_today": due_today,
        "due_this_week": due_this_week,
        "overdue_count": len(list_overdue(today)),
        "total_due_today_cents": sum(e["remaining_cents"] for e in due_today),
        "total_due_this_week_cents": sum(e["remaining_cents"] for e in due_this_week),
    }
