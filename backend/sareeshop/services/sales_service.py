"""
Sales Service - checkout and refund as single transactions

WHY: A sale touches three tables (sales, sale_items, items). Reading stock,
writing the sale and decrementing stock happen inside one write transaction
with the item rows locked, so two tills selling the same saree cannot both
succeed and a failure half way leaves nothing behind.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from ..extensions import db
from ..models import (
    Item,
    Sale,
    SaleItem,
    ITEM_STATUS_RETURNED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_REFUNDED,
)
from ..validation import NotFoundError, ValidationError, parse_quantity
from ..time_utils import end_of_day_exclusive, start_of_day, utcnow
from .catalog_service import ItemNotFoundError
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHOD = "cash"
DEFAULT_SALES_LIMIT = 50
MAX_SALES_LIMIT = 500


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleNotFoundError(NotFoundError):
    """Raised when a sale id does not exist."""
    def __init__(self, sale_id: int):
        super().__init__(f"Sale #{sale_id} not found")
        self.sale_id = sale_id


def _normalize_cart(cart) -> list[tuple[int, int]]:
    """
    Validate cart lines and merge duplicates.

    Accepts [{"item_id"|"id": int, "quantity": int}, ...]; order of first
    appearance is preserved.
    """
    if not cart:
        raise SaleError("Cart is empty")
    if not isinstance(cart, (list, tuple)):
        raise ValidationError("cart must be a list")

    totals: dict[int, int] = {}
    for line in cart:
        if not isinstance(line, dict):
            raise ValidationError("cart lines must be objects with item_id and quantity")
        raw_id = line.get("item_id", line.get("id"))
        if raw_id is None:
            raise ValidationError("cart line missing item_id")
        item_id = parse_quantity(raw_id, key="item_id")
        qty = parse_quantity(line.get("quantity", 1))
        totals[item_id] = totals.get(item_id, 0) + qty

    return list(totals.items())


def checkout(
    *,
    cart,
    payment_method: str | None = None,
    discount_cents: int = 0,
    sale_date: datetime | None = None,
    user_id: int | None = None,
) -> Sale:
    """
    Sell the cart: create the sale and its lines and decrement stock, atomically.

    - Unknown item -> ItemNotFoundError (nothing written)
    - Returned item or stock shortfall -> SaleError (nothing written)
    - total = max(0, subtotal - discount)
    """
    lines = _normalize_cart(cart)
    if discount_cents < 0:
        raise ValidationError("discount_cents must be >= 0")
    method = (payment_method or DEFAULT_PAYMENT_METHOD).strip() or DEFAULT_PAYMENT_METHOD

    def _op():
        locked: list[tuple[Item, int]] = []
        insufficient = []
        for item_id, qty in lines:
            item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
            if not item:
                raise ItemNotFoundError(item_id)

            available = 0 if item.status == ITEM_STATUS_RETURNED else item.stock
            if available < qty:
                insufficient.append({
                    "item_id": item_id,
                    "requested_quantity": qty,
                    "available": available,
                    "status": item.status,
                })
            locked.append((item, qty))

        if insufficient:
            ids = ", ".join(f"#{row['item_id']}" for row in insufficient)
            raise SaleError(
                f"Insufficient stock for item {ids}",
                details={"items": insufficient},
            )

        subtotal = sum(item.price_cents * qty for item, qty in locked)
        total = max(0, subtotal - discount_cents)

        sale = Sale(
            subtotal_cents=subtotal,
            discount_cents=discount_cents,
            total_cents=total,
            payment_method=method,
            status=SALE_STATUS_COMPLETED,
            created_at=sale_date or utcnow(),
            created_by_user_id=user_id,
        )
        db.session.add(sale)
        db.session.flush()

        for item, qty in locked:
            db.session.add(SaleItem(
                sale_id=sale.id,
                item_id=item.id,
                quantity=qty,
                price_at_sale_cents=item.price_cents,
            ))
            item.stock -= qty

        return sale

    sale = atomic(_op)
    logger.info(
        "Sale #%d completed: %d line(s), total=%d discount=%d via %s",
        sale.id, len(lines), sale.total_cents, sale.discount_cents, sale.payment_method,
    )
    return sale


def reverse_sale(
    *,
    sale_id: int,
    user_id: int | None = None,
    reason: str | None = None,
) -> Sale:
    """
    Refund a completed sale and put its stock back on the shelf.

    A sale can be refunded once; a second attempt raises SaleError and
    restores nothing. Items returned to the supplier since the sale stay
    at stock 0.
    """
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleNotFoundError(sale_id)

        if sale.status == SALE_STATUS_REFUNDED:
            raise SaleError("Sale already refunded", details={"sale_id": sale_id})

        if sale.status != SALE_STATUS_COMPLETED:
            raise SaleError(f"Cannot refund sale with status {sale.status}")

        lines = db.session.query(SaleItem).filter_by(sale_id=sale.id).all()
        for line in lines:
            item = lock_for_update(db.session.query(Item).filter_by(id=line.item_id)).first()
            if not item:
                raise ItemNotFoundError(line.item_id)
            if item.status == ITEM_STATUS_RETURNED:
                logger.warning(
                    "Refund of sale #%d: item #%d was returned to supplier; stock left at 0",
                    sale.id, item.id,
                )
                continue
            item.stock += line.quantity

        sale.status = SALE_STATUS_REFUNDED
        sale.refunded_at = utcnow()
        sale.refunded_by_user_id = user_id
        sale.refund_reason = reason
        return sale

    sale = atomic(_op)
    logger.info("Sale #%d refunded (total=%d)", sale.id, sale.total_cents)
    return sale


def sale_to_dict(sale: Sale) -> dict:
    data = sale.to_dict()
    data["lines"] = [line.to_dict() for line in sale.lines]
    return data


def get_sale(sale_id: int) -> dict:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise SaleNotFoundError(sale_id)
    return sale_to_dict(sale)


def list_sales(
    *,
    start: date | None = None,
    end: date | None = None,
    limit: int | None = None,
) -> dict:
    """Newest sales first, optionally restricted to an inclusive date range."""
    if start and end and start > end:
        raise ValidationError("start must be on or before end")

    limit = max(1, min(limit or DEFAULT_SALES_LIMIT, MAX_SALES_LIMIT))

    query = db.session.query(Sale)
    if start:
        query = query.filter(Sale.created_at >= start_of_day(start))
    if end:
        query = query.filter(Sale.created_at < end_of_day_exclusive(end))

    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    return {
        "items": [sale_to_dict(s) for s in sales],
        "count": len(sales),
    }
