from __future__ import annotations

from ..extensions import db
from closet.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer buying on credit or taking a malinha home.

    CPF is stored as digits only and is unique when present.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("cpf", name="uq_customers_cpf"),
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    cpf = db.Column(db.String(11), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "cpf": self.cpf,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
