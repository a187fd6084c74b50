from __future__ import annotations

from ..extensions import db
from closet.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data plus its stock counters.

    STOCK MODEL:
    - stock: units physically in the shop (not yet sold)
    - reserved: units held by active reservations (malinhas out for try-on)
    - available = stock - reserved, floored at zero
    - variants: optional color/size split; counters above are their sums

    Counters are only mutated by services/stock_service.py, under a row lock,
    and every mutation appends a StockMovement.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="stock_non_negative"),
        db.CheckConstraint("reserved >= 0", name="reserved_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    cost_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    reserved = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    variants = db.relationship(
        "ProductVariant",
        back_populates="product",
        order_by="ProductVariant.id",
        lazy="selectin",
    )

    @property
    def available(self) -> int:
        # A direct sale may take units that were held, never report below zero
        return max(0, (self.stock or 0) - (self.reserved or 0))

    @property
    def oversold(self) -> int:
        """Held units no longer backed by stock on hand."""
        return max(0, (self.reserved or 0) - (self.stock or 0))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock} reserved={self.reserved}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock": self.stock,
            "reserved": self.reserved,
            "available": self.available,
            "oversold": self.oversold,
            "variants": [v.to_dict() for v in self.variants],
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """
    Stock of one color/size combination of a product.

    When a product has variants its own stock and reserved counters are the
    sums over them, and both levels move together under the product lock.
    Blank color or size means the product is not split on that axis.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "color", "size", name="uq_product_variants_product_color_size"),
        db.CheckConstraint("stock >= 0", name="stock_non_negative"),
        db.CheckConstraint("reserved >= 0", name="reserved_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    color = db.Column(db.String(64), nullable=False, default="")
    size = db.Column(db.String(32), nullable=False, default="")

    stock = db.Column(db.Integer, nullable=False, default=0)
    reserved = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="variants")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available(self) -> int:
        return max(0, (self.stock or 0) - (self.reserved or 0))

    @property
    def label(self) -> str:
        return "/".join(part for part in (self.color, self.size) if part) or "-"

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} product_id={self.product_id} {self.label} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "color": self.color,
            "size": self.size,
            "stock": self.stock,
            "reserved": self.reserved,
            "available": self.available,
        }


RESERVATION_ACTIVE = "active"
RESERVATION_RELEASED = "released"
RESERVATION_COMMITTED = "committed"


class StockReservation(db.Model):
    """
    Units of a product held for a sale that has not been confirmed yet.

    LIFECYCLE: active -> released | committed. Both end states are final.
    """
    __tablename__ = "stock_reservations"
    __table_args__ = (
        db.Index("ix_stock_reservations_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=RESERVATION_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)
    committed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "sale_id": self.sale_id,
            "quantity": self.quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "released_at": to_utc_z(self.released_at) if self.released_at else None,
            "committed_at": to_utc_z(self.committed_at) if self.committed_at else None,
        }


class StockMovement(db.Model):
    """
    Append-only log of stock mutations.

    TYPES:
    - reserve / release: reserved counter moves, stock untouched
    - sale: direct sale, stock decreases
    - reservation_commit: reserved units leave the shop (stock and reserved decrease)
    - restock: units return or arrive (stock increases)

    stock_after / reserved_after snapshot the counters right after the
    mutation so the history can be audited without replaying it.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    stock_after = db.Column(db.Integer, nullable=False)
    reserved_after = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey("stock_reservations.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "stock_after": self.stock_after,
            "reserved_after": self.reserved_after,
            "sale_id": self.sale_id,
            "reservation_id": self.reservation_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
