from __future__ import annotations

from ..extensions import db
from retail_pos.time_utils import to_utc_z


class ProductCodeSequence(db.Model):
    """
    Atomic per-day product code counters.

    One row per DDMMYY prefix. next_number is the counter the next caller
    receives; the unique constraint on prefix arbitrates the first allocation
    of a day.
    """
    __tablename__ = "product_code_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", name="uq_product_code_sequences_prefix"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(6), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
