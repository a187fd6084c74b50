from __future__ import annotations

from datetime import date

from ..extensions import db
from closet.time_utils import to_iso_date, to_utc_z


SALE_TYPE_DIRECT = "direct"
SALE_TYPE_MALINHA = "malinha"
SALE_TYPES = {SALE_TYPE_DIRECT, SALE_TYPE_MALINHA}

SALE_PENDING = "pending"
SALE_CONFIRMED = "confirmed"
SALE_PARTIAL = "partial"
SALE_PAID = "paid"
SALE_CANCELLED = "cancelled"

INSTALLMENT_PENDING = "pending"
INSTALLMENT_PARTIAL = "partial"
INSTALLMENT_PAID = "paid"
INSTALLMENT_CANCELLED = "cancelled"
# Display-only, never stored
INSTALLMENT_OVERDUE = "overdue"

PAYMENT_METHODS = {
    "pix",
    "debit",
    "card_machine",
    "credito_parcelado",
    "fiado",
    "fiado_parcelado",
    "cash",
    "card",
    "dinheiro",
}
# Store credit ("crediário"): only these sales carry an installment schedule
CREDIT_METHODS = {"fiado", "fiado_parcelado"}
FULL_SETTLEMENT_METHOD = "full-settlement"


class Sale(db.Model):
    """
    Sale document ("venda").

    LIFECYCLE:
    pending -> confirmed | cancelled
    confirmed -> partial | paid | cancelled
    partial -> paid | cancelled

    payment_status, paid_cents and remaining_cents are derived from the
    installments and payments by installment_service.recompute_sale; never
    write them by hand.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_method_payment_status", "payment_method", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    sale_type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_DIRECT)
    status = db.Column(db.String(16), nullable=False, default=SALE_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(32), nullable=True)

    # All amounts in cents
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    entry_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_cents = db.Column(db.Integer, nullable=False, default=0)

    num_installments = db.Column(db.Integer, nullable=True)
    installment_start_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )
    installments = db.relationship(
        "Installment",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="Installment.installment_number",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_credit(self) -> bool:
        return self.payment_method in CREDIT_METHODS

    def __repr__(self) -> str:
        return f"<Sale id={self.id} status={self.status} total_cents={self.total_cents}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "sale_type": self.sale_type,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "entry_payment_cents": self.entry_payment_cents,
            "paid_cents": self.paid_cents,
            "remaining_cents": self.remaining_cents,
            "num_installments": self.num_installments,
            "installment_start_date": to_iso_date(self.installment_start_date),
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """
    Line item frozen at sale time.

    Name, price and cost are copied from the product so later catalog edits
    never rewrite history.
    """
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_at_time_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=False)
    size = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(64), nullable=True)

    # Set for malinha lines while the units are held
    reservation_id = db.Column(db.Integer, db.ForeignKey("stock_reservations.id"), nullable=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")
    reservation = db.relationship("StockReservation")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_at_time_cents": self.cost_price_at_time_cents,
            "line_total_cents": self.line_total_cents,
            "size": self.size,
            "color": self.color,
            "reservation_id": self.reservation_id,
            "variant_id": self.variant_id,
        }


class Installment(db.Model):
    """
    One scheduled slice ("parcela") of a credit sale.

    amount_paid_cents and status are recomputed from the payment rows after
    every payment mutation. "overdue" is computed on read (display_status).
    """
    __tablename__ = "installments"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "installment_number", name="uq_installments_sale_number"),
        db.Index("ix_installments_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    installment_number = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    amount_due_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=INSTALLMENT_PENDING)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", back_populates="installments")
    payments = db.relationship(
        "InstallmentPayment",
        back_populates="installment",
        cascade="all, delete-orphan",
        order_by="InstallmentPayment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining_cents(self) -> int:
        if self.status == INSTALLMENT_CANCELLED:
            return 0
        return max(0, (self.amount_due_cents or 0) - (self.amount_paid_cents or 0))

    def is_overdue(self, today: date) -> bool:
        return (
            self.status in (INSTALLMENT_PENDING, INSTALLMENT_PARTIAL)
            and self.due_date < today
            and self.remaining_cents > 0
        )

    def display_status(self, today: date) -> str:
        return INSTALLMENT_OVERDUE if self.is_overdue(today) else self.status

    def to_dict(self, today: date | None = None, include_payments: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_id": self.sale_id,
            "installment_number": self.installment_number,
            "due_date": to_iso_date(self.due_date),
            "amount_due_cents": self.amount_due_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_cents": self.remaining_cents,
            "status": self.status,
            "display_status": self.display_status(today) if today else self.status,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "version_id": self.version_id,
        }
        if include_payments:
            newest_first = sorted(self.payments, key=lambda p: (p.payment_date, p.id), reverse=True)
            data["payments"] = [p.to_dict() for p in newest_first]
        return data


class InstallmentPayment(db.Model):
    """Money received against one installment. Editable and deletable."""
    __tablename__ = "installment_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    installment_id = db.Column(db.Integer, db.ForeignKey("installments.id"), nullable=False, index=True)

    payment_date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    installment = db.relationship("Installment", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "installment_id": self.installment_id,
            "payment_date": to_iso_date(self.payment_date),
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
        }
