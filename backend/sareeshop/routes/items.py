# Overview: Flask API routes for item catalog operations; parses input and returns JSON responses.

# backend/sareeshop/routes/items.py
"""
Item catalog routes.

Add and edit accept either JSON or multipart/form-data; multipart carries
an optional `image` file alongside the same fields.

SECURITY: All routes require authentication.
"""
from flask import Blueprint, current_app, request, send_from_directory
from werkzeug.utils import secure_filename

from ..models import Item
from ..services import catalog_service, storage_service
from ..validation import (
    MAX_UNITS_PER_ADD,
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_datetime,
    coerce_int,
    enforce_rules_item,
    parse_quantity,
    validate_payload,
)
from ..decorators import require_auth

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"name", "sku", "price_cents", "cost_cents", "category", "source"},
    required_on_create={"name", "price_cents"},
)

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


def _positive_arg(key: str, maximum: int | None = None):
    raw = request.args.get(key)
    return parse_quantity(raw, key=key, maximum=maximum) if raw else None


def _request_payload():
    """Returns (fields, image) from either a JSON body or a multipart form."""
    if request.mimetype == "multipart/form-data":
        return request.form.to_dict(), request.files.get("image")

    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return dict(payload), None


@items_bp.get("")
@require_auth
def list_items_route():
    """
    List catalog items.

    Query params:
    - q: str (optional) - numeric = exact id, otherwise substring search
    - status: ACTIVE (default) | RETURNED | ALL
    - sort: newest (default) | oldest
    - page, per_page: int (optional) - omit page to get everything
    """
    try:
        result = catalog_service.list_items(
            query=request.args.get("q"),
            status=request.args.get("status"),
            sort=request.args.get("sort", catalog_service.SORT_NEWEST),
            page=_positive_arg("page"),
            per_page=_positive_arg("per_page", maximum=catalog_service.MAX_PER_PAGE),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    return result, 200


@items_bp.get("/sellable")
@require_auth
def sellable_items_route():
    items = catalog_service.sellable_items()
    return {"items": items, "count": len(items)}, 200


@items_bp.post("")
@require_auth
def add_items_route():
    """
    Add `quantity` physical units (default 1). Each becomes its own row.

    Extra fields besides the item columns:
    - quantity: int (1..500)
    - created_at: ISO datetime (optional back-dating)
    - image: file (multipart only)
    """
    try:
        payload, image = _request_payload()
        quantity = parse_quantity(payload.pop("quantity", 1), maximum=MAX_UNITS_PER_ADD)
        raw_created_at = payload.pop("created_at", None)
        created_at = coerce_datetime("created_at", raw_created_at) if raw_created_at else None

        patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
        enforce_rules_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = catalog_service.add_items(
            patch=patch,
            quantity=quantity,
            created_at=created_at,
            image=image,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to add items")
        return {"error": "Internal server error"}, 500

    return {"items": created, "count": len(created)}, 201


@items_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    try:
        return catalog_service.get_item(item_id), 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@items_bp.put("/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    """
    Edit an item. Past sales keep their own price snapshot.

    A multipart request may carry a replacement `image`.
    """
    try:
        payload, image = _request_payload()
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
        enforce_rules_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    if not patch and (image is None or not image.filename):
        return {"error": "No fields to update"}, 400

    try:
        updated = catalog_service.update_item(item_id=item_id, patch=patch, image=image)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update item")
        return {"error": "Internal server error"}, 500

    return updated, 200


@items_bp.post("/<int:item_id>/adjust-stock")
@require_auth
def adjust_stock_route(item_id: int):
    """Body: {"delta": int} (non-zero; may be negative)."""
    payload = request.get_json(silent=True) or {}
    if "delta" not in payload:
        return {"error": "delta is required"}, 400

    try:
        delta = coerce_int("delta", payload["delta"])
        updated = catalog_service.adjust_stock(item_id=item_id, delta=delta)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500

    return updated, 200


@items_bp.post("/<int:item_id>/return")
@require_auth
def return_item_route(item_id: int):
    """Return the unit to its supplier (soft delete)."""
    try:
        returned = catalog_service.return_item(item_id=item_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to return item")
        return {"error": "Internal server error"}, 500

    return returned, 200


@items_bp.get("/images/<path:filename>")
@require_auth
def item_image_route(filename: str):
    return send_from_directory(storage_service.image_directory(), secure_filename(filename))
