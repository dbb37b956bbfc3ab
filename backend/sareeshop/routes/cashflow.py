# Overview: Flask API routes for the partner cash-flow ledger; parses input and returns JSON responses.

# backend/sareeshop/routes/cashflow.py
"""
Cash-flow ledger routes: partners, their contributions, and shop expenses.

Amounts are positive integer paise; the table decides the direction.
"""
from flask import Blueprint, current_app, request

from ..models import Expense, PartnerContribution
from ..services import cashflow_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_date,
    enforce_rules_ledger_amount,
    validate_payload,
)
from ..decorators import require_auth

CONTRIBUTION_POLICY = ModelValidationPolicy(
    writable_fields={"partner_id", "amount_cents", "contribution_date", "notes"},
    required_on_create={"partner_id", "amount_cents", "contribution_date"},
)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"description", "amount_cents", "expense_date", "category"},
    required_on_create={"description", "amount_cents", "expense_date"},
)

cashflow_bp = Blueprint("cashflow", __name__, url_prefix="/api/cashflow")


def _range_args():
    start = request.args.get("start")
    end = request.args.get("end")
    return (
        coerce_date("start", start) if start else None,
        coerce_date("end", end) if end else None,
    )


@cashflow_bp.get("/partners")
@require_auth
def list_partners_route():
    partners = cashflow_service.list_partners()
    return {"items": partners, "count": len(partners)}, 200


@cashflow_bp.post("/partners")
@require_auth
def create_partner_route():
    payload = request.get_json(silent=True) or {}
    name = payload.get("name") if isinstance(payload, dict) else None
    try:
        created = cashflow_service.create_partner(name)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return created, 201


@cashflow_bp.post("/partners/seed")
@require_auth
def seed_partners_route():
    """Create the configured default partners if missing."""
    try:
        created = cashflow_service.seed_partners()
    except Exception:
        current_app.logger.exception("Failed to seed partners")
        return {"error": "Internal server error"}, 500
    partners = cashflow_service.list_partners()
    return {"created": created, "items": partners, "count": len(partners)}, 200


@cashflow_bp.get("/contributions")
@require_auth
def list_contributions_route():
    """Query params: start, end (YYYY-MM-DD, inclusive, optional)."""
    try:
        start, end = _range_args()
        return cashflow_service.list_contributions(start=start, end=end), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@cashflow_bp.post("/contributions")
@require_auth
def add_contribution_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=PartnerContribution, payload=payload, policy=CONTRIBUTION_POLICY, partial=False,
        )
        enforce_rules_ledger_amount(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = cashflow_service.add_contribution(patch=patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to add contribution")
        return {"error": "Internal server error"}, 500

    return created, 201


@cashflow_bp.get("/expenses")
@require_auth
def list_expenses_route():
    """Query params: start, end (YYYY-MM-DD, inclusive, optional)."""
    try:
        start, end = _range_args()
        return cashflow_service.list_expenses(start=start, end=end), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@cashflow_bp.post("/expenses")
@require_auth
def add_expense_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        enforce_rules_ledger_amount(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = cashflow_service.add_expense(patch=patch)
    except Exception:
        current_app.logger.exception("Failed to add expense")
        return {"error": "Internal server error"}, 500

    return created, 201
