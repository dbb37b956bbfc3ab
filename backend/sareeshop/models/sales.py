from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

SALE_STATUS_COMPLETED = "COMPLETED"
SALE_STATUS_REFUNDED = "REFUNDED"


class Sale(db.Model):
    """
    One checkout transaction.

    Totals are fixed at creation; the only later mutation is the
    COMPLETED -> REFUNDED transition (with its audit fields).
    created_at is business time and may be back-dated by the caller.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Refund audit trail
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "refunded_at": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "refunded_by_user_id": self.refunded_by_user_id,
            "refund_reason": self.refund_reason,
            "version_id": self.version_id,
        }


class SaleItem(db.Model):
    """Line on a sale, pinned to the item's price at checkout time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleItem.id"))
    item = db.relationship("Item")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.price_at_sale_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item is not None else None,
            "quantity": self.quantity,
            "price_at_sale_cents": self.price_at_sale_cents,
            "line_total_cents": self.line_total_cents,
        }
