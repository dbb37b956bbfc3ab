# backend/sareeshop/services/catalog_service.py
"""
Catalog Service - one row per physical saree

WHY: Every unit carries its own age, price and return state, so the
catalog never aggregates stock per SKU. "Add 3" means three rows.

Soft-delete only: returning an item flips status to RETURNED and pins
stock to 0; rows are never deleted because sale_items reference them.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_

from ..extensions import db
from ..models import Item, ITEM_STATUS_ACTIVE, ITEM_STATUS_RETURNED, ITEM_STATUSES
from ..validation import ConflictError, NotFoundError, ValidationError
from ..time_utils import utcnow
from .concurrency import atomic, lock_for_update
from . import storage_service

logger = logging.getLogger(__name__)

ITEM_MUTABLE_FIELDS = {"name", "sku", "price_cents", "cost_cents", "category", "source"}

STATUS_FILTER_ALL = "ALL"
SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


class ItemNotFoundError(NotFoundError):
    """Raised when an item id does not exist."""
    def __init__(self, item_id: int):
        super().__init__(f"Item #{item_id} not found")
        self.item_id = item_id


def apply_item_patch(item: Item, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ITEM_MUTABLE_FIELDS:
            continue
        setattr(item, k, v)


def _get_or_raise(item_id: int) -> Item:
    item = db.session.query(Item).filter_by(id=item_id).first()
    if not item:
        raise ItemNotFoundError(item_id)
    return item


def add_items(
    *,
    patch: dict,
    quantity: int = 1,
    created_at: datetime | None = None,
    image=None,
) -> list[dict]:
    """
    Create `quantity` item rows sharing the same attributes, each with stock=1.

    Args:
        patch: validated item fields (name, price_cents, cost_cents, ...)
        quantity: number of physical units being added
        created_at: optional back-dated arrival time
        image: optional uploaded file; stored once and shared by all rows

    Returns:
        List of created item dicts
    """
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    image_path = storage_service.upload_image(image)
    arrived_at = created_at or utcnow()

    items = []
    for _ in range(quantity):
        item = Item(stock=1, status=ITEM_STATUS_ACTIVE, created_at=arrived_at, image_path=image_path)
        apply_item_patch(item, patch)
        db.session.add(item)
        items.append(item)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage_service.delete_image(image_path)
        raise

    logger.info("Added %d unit(s) of %r (ids %s)", quantity, patch.get("name"), [i.id for i in items])
    return [i.to_dict() for i in items]


def list_items(
    *,
    query: str | None = None,
    status: str | None = ITEM_STATUS_ACTIVE,
    sort: str = SORT_NEWEST,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Catalog listing with search, status filter and optional pagination.

    - A purely numeric query is an exact id match (the printed tag number).
    - Any other query is a case-insensitive substring match on
      name, sku, category or source.
    - status: ACTIVE (default), RETURNED, or ALL
    - sort: newest (default) or oldest, by created_at
    """
    status = (status or ITEM_STATUS_ACTIVE).upper()
    if status != STATUS_FILTER_ALL and status not in ITEM_STATUSES:
        raise ValidationError("status must be ACTIVE, RETURNED or ALL")
    if sort not in (SORT_NEWEST, SORT_OLDEST):
        raise ValidationError("sort must be newest or oldest")

    base_query = db.session.query(Item)
    if status != STATUS_FILTER_ALL:
        base_query = base_query.filter(Item.status == status)

    term = (query or "").strip()
    if term:
        if term.isdigit():
            base_query = base_query.filter(Item.id == int(term))
        else:
            pattern = f"%{term}%"
            base_query = base_query.filter(or_(
                Item.name.ilike(pattern),
                Item.sku.ilike(pattern),
                Item.category.ilike(pattern),
                Item.source.ilike(pattern),
            ))

    if sort == SORT_OLDEST:
        base_query = base_query.order_by(Item.created_at.asc(), Item.id.asc())
    else:
        base_query = base_query.order_by(Item.created_at.desc(), Item.id.desc())

    # If no pagination requested, return all items
    if page is None:
        items = base_query.all()
        return {
            "items": [i.to_dict() for i in items],
            "count": len(items),
        }

    per_page = max(1, min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE))
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    items = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [i.to_dict() for i in items],
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def sellable_items() -> list[dict]:
    """Items the POS picker may offer: active and in stock."""
    items = (
        db.session.query(Item)
        .filter(Item.status == ITEM_STATUS_ACTIVE, Item.stock > 0)
        .order_by(Item.id.desc())
        .all()
    )
    return [i.to_dict() for i in items]


def get_item(item_id: int) -> dict:
    return _get_or_raise(item_id).to_dict()


def update_item(*, item_id: int, patch: dict, image=None) -> dict:
    """
    Edit descriptive fields and pricing, optionally swapping the image.

    Past sales keep their price_at_sale snapshot; only future checkouts
    see the new price. The image is checked and stored before anything
    is written, so a rejected upload leaves the row untouched.
    """
    item = _get_or_raise(item_id)
    if item.status == ITEM_STATUS_RETURNED:
        raise ConflictError(f"Item #{item_id} has been returned and cannot be edited")

    new_path = storage_service.upload_image(image)
    old_path = item.image_path

    apply_item_patch(item, patch)
    if new_path is not None:
        item.image_path = new_path
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage_service.delete_image(new_path)
        raise

    if new_path is not None and old_path:
        still_used = db.session.query(Item.id).filter(Item.image_path == old_path).first()
        if still_used is None:
            storage_service.delete_image(old_path)

    changed = sorted(patch.keys()) + (["image_path"] if new_path else [])
    logger.info("Updated item #%d fields: %s", item.id, ", ".join(changed))
    return item.to_dict()


def adjust_stock(*, item_id: int, delta: int) -> dict:
    """
    Manual stock correction under a row lock.

    The resulting stock must stay >= 0. Returned items cannot be adjusted.
    """
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    def _op():
        item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
        if not item:
            raise ItemNotFoundError(item_id)
        if item.status == ITEM_STATUS_RETURNED:
            raise ConflictError(f"Item #{item_id} has been returned; stock is fixed at 0")
        new_stock = item.stock + delta
        if new_stock < 0:
            raise ValidationError(f"Stock for item #{item_id} cannot go below zero (current {item.stock})")
        item.stock = new_stock
        return item

    item = atomic(_op)
    logger.info("Adjusted stock of item #%d by %+d (now %d)", item.id, delta, item.stock)
    return item.to_dict()


def return_item(*, item_id: int) -> dict:
    """
    Soft-delete: mark RETURNED and force stock to 0.

    Historical sale_items keep pointing at the row with their own
    price snapshots. Returning an already-returned item is a no-op.
    """
    def _op():
        item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
        if not item:
            raise ItemNotFoundError(item_id)
        if item.status != ITEM_STATUS_RETURNED:
            item.status = ITEM_STATUS_RETURNED
            item.stock = 0
            item.returned_at = utcnow()
            logger.info("Item #%d returned to supplier", item.id)
        return item

    return atomic(_op).to_dict()
