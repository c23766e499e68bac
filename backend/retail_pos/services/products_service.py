# backend/retail_pos/services/products_service.py
"""
Catalog Store

Products are addressed externally by their DDMMYY##### code and internally
by id. Stock lives in Product.quantity; in_stock is derived from it on every
write (ORM hook for ORM writes, inside the UPDATE for decrements).

STOCK DECREMENT:
decrement_quantity is a single conditional UPDATE
    quantity = quantity - n, in_stock = (quantity - n > 0)
    WHERE id = :id AND quantity >= n
so two concurrent decrements for the last unit cannot both succeed and a
decrement is never partially applied.
"""
from __future__ import annotations

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, OrderLine
from ..validation import ConflictError, ValidationError
from .sequence_service import GenerationFailed, next_product_code, resync_sequence

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "import_price", "retail_price",
    "category_id", "quantity", "images",
}

SORT_FIELDS = {
    "name": Product.name,
    "price": Product.retail_price,
    "quantity": Product.quantity,
    "created_at": Product.created_at,
}

CODE_ALLOCATION_ATTEMPTS = 5


class ProductError(Exception):
    """Raised for catalog operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFound(ProductError):
    pass


class InsufficientStock(ProductError):
    """Requested quantity exceeds what is on hand. Names the product and what is available."""
    def __init__(self, product: Product, requested: int, available: int | None = None):
        available = product.quantity if available is None else available
        super().__init__(
            f"Product {product.name} only has {available} left in stock.",
            details={
                "product_id": product.id,
                "code": product.code,
                "name": product.name,
                "requested_quantity": requested,
                "available": available,
            },
        )
        self.product_id = product.id
        self.requested = requested
        self.available = available


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_category(category_id) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise ValidationError("Category not found", "category_id")


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def find_by_code(code: str) -> Product | None:
    if not code:
        return None
    return db.session.query(Product).filter_by(code=code.strip()).first()


def list_products(
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    category_id: int | None = None,
    min_price: int | None = None,
    max_price: int | None = None,
    sort_field: str = "name",
    sort_order: str = "asc",
) -> dict:
    """
    Catalog listing with search, filters and pagination.

    Args:
        page: Page number (1-indexed)
        limit: Items per page (default 10, max 100)
        search: Case-insensitive match on name, description or code
        category_id: Restrict to one category
        min_price / max_price: Inclusive retail price bounds
        sort_field: name | price | quantity | created_at
        sort_order: asc | desc

    Returns:
        Dict with 'products' and pagination metadata.
    """
    limit = min(max(limit or 10, 1), 100)
    page = max(page or 1, 1)

    query = db.session.query(Product)

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.description.ilike(like),
            Product.code.ilike(like),
        ))

    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    if min_price is not None:
        query = query.filter(Product.retail_price >= min_price)
    if max_price is not None:
        query = query.filter(Product.retail_price <= max_price)

    column = SORT_FIELDS.get(sort_field, Product.name)
    ordering = column.desc() if sort_order == "desc" else column.asc()

    total = query.count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1

    products = (
        query.order_by(ordering, Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "products": [p.to_dict() for p in products],
        "current_page": page,
        "total_pages": total_pages,
        "total_products": total,
    }


def create_product(*, patch: dict, today=None) -> Product:
    """
    Create a product under a freshly allocated code.

    Code allocation and the insert share one transaction. If the insert
    collides on Product.code (a code written outside the sequence), the
    sequence is resynced and the next code is tried.

    Raises:
        ValidationError: unknown category
        GenerationFailed: no code could be allocated; nothing is created
    """
    _require_category(patch.get("category_id"))

    for _ in range(CODE_ALLOCATION_ATTEMPTS):
        code = next_product_code(today)

        p = Product(code=code)
        apply_product_patch(p, patch)
        db.session.add(p)

        try:
            db.session.commit()
            return p
        except IntegrityError:
            db.session.rollback()
            taken = db.session.query(Product.id).filter_by(code=code).first()
            if taken is None:
                raise
            resync_sequence(code[:6])
            db.session.commit()

    raise GenerationFailed(
        "Could not allocate a unique product code",
        details={"attempts": CODE_ALLOCATION_ATTEMPTS},
    )


def update_product(*, code: str, patch: dict) -> Product | None:
    """
    Update a product by code. Returns None if not found.

    Existing order lines keep their snapshotted name and price.
    """
    p = find_by_code(code)
    if not p:
        return None

    if "category_id" in patch:
        _require_category(patch["category_id"])

    apply_product_patch(p, patch)
    db.session.commit()
    return p


def delete_product(*, code: str) -> bool:
    """
    Delete a product by code.

    Returns False if not found. Raises ConflictError while any order line
    references the product, since invoices resolve codes through it.
    """
    p = find_by_code(code)
    if not p:
        return False

    referenced = db.session.query(OrderLine.id).filter_by(product_id=p.id).first()
    if referenced:
        raise ConflictError("Product is referenced by existing orders and cannot be deleted.")

    db.session.delete(p)
    db.session.commit()
    return True


def _expire_cached(product_id: int) -> None:
    key = db.session.identity_key(Product, product_id)
    cached = db.session.identity_map.get(key)
    if cached is not None:
        db.session.expire(cached)


def decrement_quantity(product_id: int, amount: int, *, commit: bool = True) -> int:
    """
    Atomically remove `amount` units from stock. Returns the new quantity.

    commit=False joins the caller's transaction (checkout); the caller is then
    responsible for committing or rolling back.

    Raises:
        ValidationError: amount is not a positive integer
        ProductNotFound: no such product
        InsufficientStock: fewer than `amount` units on hand; nothing changed
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("amount must be a positive integer", "amount")

    remaining = Product.quantity - amount
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.quantity >= amount)
        .values(
            quantity=remaining,
            in_stock=remaining > 0,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached(product_id)

    if not result.rowcount:
        product = db.session.get(Product, product_id)
        if commit:
            db.session.rollback()
        if product is None:
            raise ProductNotFound("Product not found", details={"product_id": product_id})
        raise InsufficientStock(product, requested=amount)

    new_quantity = db.session.query(Product.quantity).filter_by(id=product_id).scalar()
    if commit:
        db.session.commit()
    return new_quantity


def lookup_cart_item(query: str) -> dict | None:
    """
    Resolve a scanned code or typed name to a one-unit cart line.

    Exact code match wins; otherwise the first product whose name contains
    the query (case-insensitive, alphabetical).
    """
    query = (query or "").strip()
    if not query:
        raise ValidationError("Product code or name is required", "query")

    product = find_by_code(query)
    if product is None:
        product = (
            db.session.query(Product)
            .filter(Product.name.ilike(f"%{query}%"))
            .order_by(Product.name.asc(), Product.id.asc())
            .first()
        )
    if product is None:
        return None

    images = product.images or []
    return {
        "product_id": product.id,
        "code": product.code,
        "name": product.name,
        "image": images[0] if images else None,
        "unit_price": product.retail_price,
        "quantity": 1,
        "total": product.retail_price,
        "available": product.quantity,
    }


def quote_line(product_id: int, quantity: int) -> dict:
    """Recompute a cart line total from the current catalog price."""
    if quantity < 1:
        raise ValidationError("quantity must be greater than 0", "quantity")

    product = get_product(product_id)
    if product is None:
        raise ProductNotFound("Product not found", details={"product_id": product_id})

    return {
        "product_id": product.id,
        "unit_price": product.retail_price,
        "quantity": quantity,
        "total": product.retail_price * quantity,
    }
