# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/sareeshop/routes/sales.py
"""Sales API routes: checkout, listing and refund."""

from flask import Blueprint, current_app, jsonify, request

from ..services import sales_service
from ..services.sales_service import SaleError
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_date,
    coerce_datetime,
    parse_discount_cents,
    parse_quantity,
)
from ..decorators import current_user_id, require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_arg(key: str):
    raw = request.args.get(key)
    return coerce_date(key, raw) if raw else None


@sales_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Sell a cart in one transaction.

    Body:
    {
        "cart": [{"item_id": int, "quantity": int}, ...],
        "payment_method": str (default "cash"),
        "discount_cents": int (default 0),
        "sale_date": ISO datetime (optional back-dating)
    }
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        discount = parse_discount_cents(data.get("discount_cents"))
        raw_date = data.get("sale_date")
        sale_date = coerce_datetime("sale_date", raw_date) if raw_date else None

        sale = sales_service.checkout(
            cart=data.get("cart"),
            payment_method=data.get("payment_method"),
            discount_cents=discount,
            sale_date=sale_date,
            user_id=current_user_id(),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to checkout")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sales_service.sale_to_dict(sale)}), 201


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params:
    - start, end: YYYY-MM-DD (inclusive, optional)
    - limit: int (default 50, max 500)
    """
    try:
        raw_limit = request.args.get("limit")
        result = sales_service.list_sales(
            start=_date_arg("start"),
            end=_date_arg("end"),
            limit=parse_quantity(raw_limit, key="limit", maximum=sales_service.MAX_SALES_LIMIT) if raw_limit else None,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@sales_bp.post("/<int:sale_id>/reverse")
@require_auth
def reverse_sale_route(sale_id: int):
    """Refund a completed sale and restore its stock. A sale can be refunded once."""
    data = request.get_json(silent=True) or {}
    reason = data.get("reason") if isinstance(data, dict) else None
    reason = str(reason).strip()[:255] if reason is not None else None

    try:
        sale = sales_service.reverse_sale(
            sale_id=sale_id,
            user_id=current_user_id(),
            reason=reason or None,
        )
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to reverse sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sales_service.sale_to_dict(sale)}), 200
