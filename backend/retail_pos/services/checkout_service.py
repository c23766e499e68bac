"""
Checkout Service - cart to committed order, stock, and invoice

STATES:
    VALIDATING -> STOCK_CHECKED -> CUSTOMER_RESOLVED -> COMMITTED
    -> INVENTORY_ADJUSTED -> INVOICE_REQUESTED -> DONE
ABORTED is reachable from every state before COMMITTED, and always leaves
zero persisted side effects (the session is rolled back).

DURABILITY BOUNDARY:
The commit that stores the Order is the point of no return. After it, the
sale stands: inventory or invoice problems are logged and returned as
warnings (PostCommitInventoryError, InvoiceGenerationFailed), never used to
unwind the order.

INVENTORY MODES (CHECKOUT_INVENTORY_MODE):
- atomic (default): stock check, customer creation, order insert and the
  conditional stock decrements share one write transaction. A decrement that
  finds too little stock rolls everything back as InsufficientStock, so two
  checkouts for the last unit cannot both succeed.
- post_commit: the order is committed first and each decrement then runs in
  its own transaction; a failed decrement becomes a PostCommitInventoryError
  for a human to reconcile. No automatic compensation.

PRICES:
Name and unit price are snapshotted from the catalog inside the locked
transaction. Client-sent name/unitPrice are display hints only.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, Order, OrderLine, Product
from ..validation import DB_INT_MAX, ValidationError, coerce_int
from retail_pos.time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .customer_service import DuplicateCustomer, create_if_absent, find_by_phone, normalize_phone
from .invoice_service import InvoiceError, generate_invoice
from .products_service import InsufficientStock, ProductError, ProductNotFound, decrement_quantity


INVENTORY_MODES = ("atomic", "post_commit")


class CheckoutState(str, enum.Enum):
    VALIDATING = "VALIDATING"
    STOCK_CHECKED = "STOCK_CHECKED"
    CUSTOMER_RESOLVED = "CUSTOMER_RESOLVED"
    COMMITTED = "COMMITTED"
    INVENTORY_ADJUSTED = "INVENTORY_ADJUSTED"
    INVOICE_REQUESTED = "INVOICE_REQUESTED"
    DONE = "DONE"
    ABORTED = "ABORTED"


class CheckoutError(Exception):
    """Pre-commit checkout failure. Nothing was persisted."""
    code = "checkout_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidRequest(CheckoutError):
    code = "invalid_request"


class InsufficientPayment(CheckoutError):
    code = "insufficient_payment"


class CheckoutWarning(Exception):
    """Post-commit problem. The order stands; a human must follow up."""
    code = "checkout_warning"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class PostCommitInventoryError(CheckoutWarning):
    code = "post_commit_inventory_error"


class InvoiceGenerationFailed(CheckoutWarning):
    code = "invoice_generation_failed"


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    name: str | None = None
    unit_price: int | None = None


@dataclass
class CheckoutResult:
    order: Order
    customer: Customer
    customer_created: bool
    state: CheckoutState = CheckoutState.DONE
    invoice_path: Path | None = None
    warnings: list[CheckoutWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        order = self.order.to_dict()
        order["customer"] = {
            "name": self.customer.name,
            "phone": self.customer.phone,
            "address": self.customer.address,
        }
        return {
            "order": order,
            "customer_created": self.customer_created,
            "invoice_available": self.invoice_path is not None,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class _Progress:
    """Tracks the checkout state for logging and abort reporting."""

    def __init__(self):
        self.state = CheckoutState.VALIDATING

    def advance(self, state: CheckoutState, **context) -> None:
        self.state = state
        current_app.logger.debug("checkout -> %s %s", state.value, context or "")


# =============================================================================
# Validation
# =============================================================================

def parse_cart(raw_cart) -> list[CartLine]:
    """
    Validate the client cart: a non-empty list of
    {product_id, quantity, name?, unitPrice?} objects.
    """
    if not isinstance(raw_cart, list) or not raw_cart:
        raise InvalidRequest("The product list must not be empty.")

    lines = []
    for index, raw in enumerate(raw_cart, start=1):
        if not isinstance(raw, dict):
            raise InvalidRequest(f"Cart line {index} is not an object.")
        try:
            if raw.get("product_id") in (None, ""):
                raise ValidationError(f"Cart line {index} has no product_id", "product_id")
            product_id = coerce_int("product_id", raw["product_id"])
            quantity = coerce_int("quantity", raw.get("quantity"))
            unit_price = raw.get("unitPrice")
            if unit_price is not None:
                unit_price = coerce_int("unitPrice", unit_price)
        except ValidationError as exc:
            raise InvalidRequest(str(exc), details={"line": index, **exc.details}) from exc

        if quantity < 1:
            raise InvalidRequest("Quantity must be greater than 0.", details={"line": index})

        name = raw.get("name")
        lines.append(CartLine(
            product_id=product_id,
            quantity=quantity,
            name=str(name).strip() if name else None,
            unit_price=unit_price,
        ))
    return lines


def _validate(cart, customer_phone, employee_id, amount_paid) -> tuple[list[CartLine], str, int, int]:
    lines = parse_cart(cart)

    phone = normalize_phone(customer_phone)
    if not phone:
        raise InvalidRequest("Please enter the customer's phone number.")

    if employee_id in (None, ""):
        raise InvalidRequest("Employee information is missing.")
    try:
        employee_id = coerce_int("employee_id", employee_id)
    except ValidationError as exc:
        raise InvalidRequest(str(exc), details=exc.details) from exc

    # A missing amount is treated as nothing paid and fails the payment check
    if amount_paid in (None, ""):
        amount_paid = 0
    try:
        amount_paid = coerce_int("amountPaid", amount_paid)
    except ValidationError as exc:
        raise InvalidRequest(str(exc), details=exc.details) from exc
    if amount_paid < 0:
        raise InvalidRequest("amountPaid must not be negative.")

    return lines, phone, employee_id, amount_paid


def _requested_by_product(lines: list[CartLine]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


# =============================================================================
# Pre-commit phase
# =============================================================================

def _check_stock(lines: list[CartLine]) -> dict[int, Product]:
    """
    Lock every product in the cart and confirm the whole cart is available.
    All-or-nothing: the first shortfall aborts the checkout.
    """
    requested = _requested_by_product(lines)
    products = {
        p.id: p
        for p in lock_for_update(
            db.session.query(Product)
            .filter(Product.id.in_(list(requested)))
            .populate_existing()
        ).all()
    }

    names = {line.product_id: line.name for line in lines}
    for product_id, quantity in requested.items():
        product = products.get(product_id)
        if product is None:
            raise InvalidRequest(
                f"Product not found: {names.get(product_id) or product_id}",
                details={"product_id": product_id},
            )
        if product.quantity < quantity:
            raise InsufficientStock(product, requested=quantity)
    return products


def _resolve_customer(phone: str, name, address) -> tuple[Customer, bool]:
    existing = find_by_phone(phone)
    if existing is not None:
        return existing, False
    try:
        return create_if_absent(phone, name, address), True
    except ValidationError as exc:
        raise InvalidRequest(str(exc), details=exc.details) from exc


def _snapshot_lines(lines: list[CartLine], products: dict[int, Product]) -> list[OrderLine]:
    snapshots = []
    for position, line in enumerate(lines, start=1):
        product = products[line.product_id]
        if line.unit_price is not None and line.unit_price != product.retail_price:
            current_app.logger.warning(
                "Cart price for product %s was %s, catalog price %s is used",
                product.code, line.unit_price, product.retail_price,
            )
        snapshots.append(OrderLine(
            position=position,
            product_id=product.id,
            name=product.name,
            quantity=line.quantity,
            unit_price=product.retail_price,
            total=product.retail_price * line.quantity,
        ))
    return snapshots


def _commit_order(
    progress: _Progress,
    lines: list[CartLine],
    phone: str,
    customer_name,
    customer_address,
    amount_paid: int,
    employee_id: int,
    adjust_inventory: bool,
) -> tuple[Order, Customer, bool]:
    try:
        begin_write_transaction()

        products = _check_stock(lines)
        progress.advance(CheckoutState.STOCK_CHECKED)

        customer, created = _resolve_customer(phone, customer_name, customer_address)
        progress.advance(CheckoutState.CUSTOMER_RESOLVED, customer_id=customer.id)

        snapshots = _snapshot_lines(lines, products)
        total_price = sum(s.total for s in snapshots)
        if total_price > DB_INT_MAX:
            raise InvalidRequest("The order total is out of range.", details={"total_price": total_price})
        if amount_paid < total_price:
            raise InsufficientPayment(
                "The amount paid must not be less than the order total.",
                details={"total_price": total_price, "amount_paid": amount_paid},
            )

        order = Order(
            customer_id=customer.id,
            customer_phone=customer.phone,
            employee_id=employee_id,
            total_price=total_price,
            amount_paid=amount_paid,
            change=amount_paid - total_price,
            status="Completed",
            created_at=utcnow(),
            lines=snapshots,
        )
        db.session.add(order)
        db.session.flush()

        if adjust_inventory:
            for line in lines:
                decrement_quantity(line.product_id, line.quantity, commit=False)

        db.session.commit()
    except ProductNotFound as exc:
        db.session.rollback()
        raise InvalidRequest(str(exc), details=exc.details) from exc
    except Exception:
        # Includes driver errors such as OverflowError; releases the write lock
        db.session.rollback()
        raise

    progress.advance(CheckoutState.COMMITTED, order_id=order.id)
    if adjust_inventory:
        progress.advance(CheckoutState.INVENTORY_ADJUSTED, order_id=order.id)
    return order, customer, created


# =============================================================================
# Post-commit phase
# =============================================================================

def _adjust_inventory_after_commit(order: Order, lines: list[CartLine]) -> list[CheckoutWarning]:
    warnings: list[CheckoutWarning] = []
    for line in lines:
        try:
            run_with_retry(lambda: decrement_quantity(line.product_id, line.quantity))
        except (ProductError, SQLAlchemyError) as exc:
            db.session.rollback()
            details = {
                "order_id": order.id,
                "product_id": line.product_id,
                "requested_quantity": line.quantity,
            }
            if isinstance(exc, InsufficientStock):
                details["available"] = exc.available
            current_app.logger.error(
                "Order %s committed but stock for product %s could not be decremented by %s: %s",
                order.id, line.product_id, line.quantity, exc,
            )
            warnings.append(PostCommitInventoryError(
                "The order was recorded but inventory could not be updated; manual reconciliation is required.",
                details=details,
            ))
    return warnings


def _request_invoice(order: Order) -> tuple[Path | None, CheckoutWarning | None]:
    try:
        return generate_invoice(order.id), None
    except InvoiceError as exc:
        current_app.logger.error("Invoice generation failed for order %s: %s", order.id, exc)
        return None, InvoiceGenerationFailed(
            "The order was recorded but the invoice could not be generated; it can be regenerated later.",
            details={"order_id": order.id, "reason": str(exc)},
        )
    except Exception as exc:
        # The sale is committed; nothing past this point may fail the checkout
        current_app.logger.exception("Unexpected invoice failure for order %s", order.id)
        db.session.rollback()
        return None, InvoiceGenerationFailed(
            "The order was recorded but the invoice could not be generated; it can be regenerated later.",
            details={"order_id": order.id, "reason": exc.__class__.__name__},
        )


# =============================================================================
# Orchestrator
# =============================================================================

def checkout(
    cart,
    customer_phone,
    customer_name=None,
    customer_address=None,
    amount_paid=None,
    employee_id=None,
    *,
    inventory_mode: str | None = None,
) -> CheckoutResult:
    """
    Turn a cart into a committed order, adjust stock, and request the invoice.

    Raises (all before commit, no side effects):
        InvalidRequest: empty cart, missing phone/employee, unknown product,
            or a new customer without name/address
        InsufficientStock: some product has less on hand than requested
        InsufficientPayment: amount paid is below the order total

    Post-commit problems are returned in CheckoutResult.warnings.
    """
    progress = _Progress()
    mode = inventory_mode or current_app.config.get("CHECKOUT_INVENTORY_MODE", "atomic")
    if mode not in INVENTORY_MODES:
        raise ValueError(f"Unknown checkout inventory mode: {mode}")

    try:
        lines, phone, employee_id, amount_paid = _validate(cart, customer_phone, employee_id, amount_paid)

        def _op():
            return _commit_order(
                progress, lines, phone, customer_name, customer_address,
                amount_paid, employee_id, adjust_inventory=(mode == "atomic"),
            )

        try:
            order, customer, created = run_with_retry(_op)
        except DuplicateCustomer:
            # A concurrent checkout created this phone first; rerun and use its record
            current_app.logger.info("Customer %s created concurrently, re-reading", phone)
            progress.advance(CheckoutState.VALIDATING)
            order, customer, created = run_with_retry(_op)
    except (CheckoutError, ProductError) as exc:
        current_app.logger.info("Checkout aborted in %s: %s", progress.state.value, exc)
        progress.state = CheckoutState.ABORTED
        raise

    current_app.logger.info(
        "Order %s committed: total=%s paid=%s lines=%s employee=%s",
        order.id, order.total_price, order.amount_paid, len(lines), employee_id,
    )

    result = CheckoutResult(order=order, customer=customer, customer_created=created)

    if mode == "post_commit":
        result.warnings.extend(_adjust_inventory_after_commit(order, lines))
        progress.advance(CheckoutState.INVENTORY_ADJUSTED, order_id=order.id)

    progress.advance(CheckoutState.INVOICE_REQUESTED, order_id=order.id)
    result.invoice_path, warning = _request_invoice(order)
    if warning is not None:
        result.warnings.append(warning)

    progress.advance(CheckoutState.DONE, order_id=order.id)
    result.state = progress.state
    return result
