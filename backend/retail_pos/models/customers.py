from __future__ import annotations

from ..extensions import db
from retail_pos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer directory entry.

    Phone is the sole external key (unique). Customers are created lazily on
    their first checkout and are not edited by the checkout core.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_customers_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    phone = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(512), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }
