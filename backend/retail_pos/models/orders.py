from __future__ import annotations

from ..extensions import db
from retail_pos.time_utils import to_utc_z


ORDER_STATUSES = ("Pending", "Completed", "Cancelled")


class Order(db.Model):
    """
    A committed sale.

    WHY: The order row is the durability boundary of checkout. Once it is
    committed the sale is final; inventory and invoice follow-ups that fail
    afterwards are reported, never used to unwind it.

    INVARIANTS:
    - total_price == sum(line.total)
    - amount_paid >= total_price
    - change == amount_paid - total_price

    employee_id intentionally has no foreign key: staff identity is owned by
    the identity service and only resolved for display.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        db.CheckConstraint("amount_paid >= total_price", name="ck_orders_paid_covers_total"),
        db.CheckConstraint("change_amount = amount_paid - total_price", name="ck_orders_change"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_phone = db.Column(db.String(32), nullable=False)
    employee_id = db.Column(db.Integer, nullable=False, index=True)

    total_price = db.Column(db.BigInteger, nullable=False)
    amount_paid = db.Column(db.BigInteger, nullable=False)
    change = db.Column("change_amount", db.BigInteger, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="Pending", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.position",
        lazy="selectin",
    )

    @property
    def payment_info(self) -> dict:
        return {"amount_paid": self.amount_paid, "change": self.change}

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_phone": self.customer_phone,
            "employee_id": self.employee_id,
            "total_price": self.total_price,
            "payment_info": self.payment_info,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["products"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """
    Line snapshot embedded in an order.

    name and unit_price are copied from the catalog at checkout time so later
    price or name edits never rewrite history. Rows are insert-only.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "position", name="uq_order_lines_order_position"),
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    total = db.Column(db.BigInteger, nullable=False)

    order = db.relationship("Order", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "code": self.product.code if self.product else None,
            "name": self.name,
            "quantity": self.quantity,
            "price": self.unit_price,
            "total": self.total,
        }
