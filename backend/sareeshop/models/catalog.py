from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

ITEM_STATUS_ACTIVE = "ACTIVE"
ITEM_STATUS_RETURNED = "RETURNED"
ITEM_STATUSES = (ITEM_STATUS_ACTIVE, ITEM_STATUS_RETURNED)


class Item(db.Model):
    """
    One physical saree on the shelf.

    WHY: Stock is tracked per unit, not per SKU. Adding "3 silk sarees" creates
    three rows with stock=1 each, so every unit keeps its own age and can be
    returned independently.

    STATUS:
    - ACTIVE: listed and sellable while stock > 0
    - RETURNED: sent back to the supplier; stock pinned to 0, hidden from
      active listings, still referenced by historical sale_items
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Material (e.g. "Kanjivaram Silk"); shown as the item name
    name = db.Column(db.String(200), nullable=False)
    # Legacy SKU column; not unique since items became one row per unit
    sku = db.Column(db.String(64), nullable=True, index=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=1)

    # Color/pattern
    category = db.Column(db.String(120), nullable=True, index=True)
    # Supplier / weaver
    source = db.Column(db.String(120), nullable=True, index=True)
    image_path = db.Column(db.String(512), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ITEM_STATUS_ACTIVE, index=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} status={self.status} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "category": self.category,
            "source": self.source,
            "image_path": self.image_path,
            "status": self.status,
            "returned_at": to_utc_z(self.returned_at) if self.returned_at else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
