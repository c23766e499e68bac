from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from retail_pos.time_utils import to_utc_z


class Category(db.Model):
    """Product category. Managed outside the checkout core; products only reference it."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Product master data.

    CODE DESIGN DECISION:
    Product.code is the human-readable DDMMYY##### identifier allocated by
    sequence_service when the product is created. It is the external key used
    by routes and printed on invoices; Product.id is the internal surrogate.
    The unique constraint on code is what arbitrates concurrent allocation.

    STOCK FLAG:
    in_stock is derived, never set by callers. ORM writes recompute it in the
    before_insert/before_update hooks below; the atomic decrement in
    products_service recomputes it inside the same UPDATE statement.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_price", "category_id", "retail_price"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Whole VND, no minor unit
    import_price = db.Column(db.BigInteger, nullable=False)
    retail_price = db.Column(db.BigInteger, nullable=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    in_stock = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # [{"data": <base64>, "content_type": "image/png"}, ...] (1-4 entries)
    images = db.Column(db.JSON, nullable=False, default=list)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self, include_images: bool = True) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "import_price": self.import_price,
            "retail_price": self.retail_price,
            "category": self.category.to_dict() if self.category else None,
            "quantity": self.quantity,
            "in_stock": self.in_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_images:
            data["images"] = self.images or []
        return data


@event.listens_for(Product, "before_insert")
@event.listens_for(Product, "before_update")
def _derive_in_stock(mapper, connection, target: Product) -> None:
    target.in_stock = (target.quantity or 0) > 0
