# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Directory

Phone is the only external key. create_if_absent resolves or creates in the
caller's transaction; when two checkouts race to create the same phone, the
unique constraint makes the loser fail with DuplicateCustomer and the caller
re-reads the winner's row.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order
from ..validation import ValidationError


class DuplicateCustomer(Exception):
    """A concurrent create for the same phone won. The session has been rolled back."""
    def __init__(self, phone: str):
        super().__init__(f"Customer with phone {phone} already exists")
        self.phone = phone


def normalize_phone(phone) -> str:
    return str(phone or "").strip()


def find_by_phone(phone) -> Customer | None:
    phone = normalize_phone(phone)
    if not phone:
        return None
    return db.session.query(Customer).filter_by(phone=phone).first()


def create_if_absent(phone, name, address, *, commit: bool = False) -> Customer:
    """
    Return the customer for `phone`, creating it if needed.

    Raises:
        ValidationError: phone missing, or name/address missing for a new phone
        DuplicateCustomer: lost an insert race; retry the lookup
    """
    phone = normalize_phone(phone)
    if not phone:
        raise ValidationError("Customer phone number is required.", "phone")

    existing = find_by_phone(phone)
    if existing:
        return existing

    name = (name or "").strip()
    address = (address or "").strip()
    if not name or not address:
        raise ValidationError("A new customer needs a name and an address.")

    customer = Customer(phone=phone, name=name, address=address)
    db.session.add(customer)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateCustomer(phone) from exc

    if commit:
        db.session.commit()
    return customer


def purchase_history(customer_id: int) -> list[dict]:
    """Orders for a customer, newest first, each with its total item count."""
    orders = (
        db.session.query(Order)
        .filter_by(customer_id=customer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    history = []
    for order in orders:
        row = order.to_dict()
        row["total_quantity"] = order.total_quantity
        history.append(row)
    return history
