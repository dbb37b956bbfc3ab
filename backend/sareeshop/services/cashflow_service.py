# Overview: Service-layer operations for the partner cash-flow ledger.

from __future__ import annotations

import logging
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Partner, PartnerContribution, Expense
from ..validation import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _check_range(start: date | None, end: date | None) -> None:
    if start and end and start > end:
        raise ValidationError("start must be on or before end")


def list_partners() -> list[dict]:
    partners = db.session.query(Partner).order_by(Partner.name.asc()).all()
    return [p.to_dict() for p in partners]


def create_partner(name: str) -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name cannot be blank")
    if db.session.query(Partner).filter_by(name=name).first():
        raise ConflictError(f"Partner {name!r} already exists")

    partner = Partner(name=name)
    db.session.add(partner)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Partner {name!r} already exists")
    return partner.to_dict()


def seed_partners(names: list[str] | None = None) -> int:
    """
    Ensure the default partners exist.

    Safe to call repeatedly (idempotent). Returns the number created.
    """
    if names is None:
        names = current_app.config["DEFAULT_PARTNERS"]

    existing = {name for (name,) in db.session.query(Partner.name).all()}
    created = 0
    for name in names:
        if name in existing:
            continue
        db.session.add(Partner(name=name))
        existing.add(name)
        created += 1

    db.session.commit()
    if created:
        logger.info("Seeded %d partner(s)", created)
    return created


def add_contribution(*, patch: dict) -> dict:
    partner_id = patch["partner_id"]
    partner = db.session.query(Partner).filter_by(id=partner_id).first()
    if not partner:
        raise NotFoundError(f"Partner #{partner_id} not found")

    contribution = PartnerContribution(
        partner_id=partner.id,
        amount_cents=patch["amount_cents"],
        contribution_date=patch["contribution_date"],
        notes=patch.get("notes"),
    )
    db.session.add(contribution)
    db.session.commit()
    logger.info(
        "Recorded contribution #%d: %s put in %d on %s",
        contribution.id, partner.name, contribution.amount_cents, contribution.contribution_date,
    )
    return contribution.to_dict()


def list_contributions(*, start: date | None = None, end: date | None = None) -> dict:
    _check_range(start, end)
    query = db.session.query(PartnerContribution)
    if start:
        query = query.filter(PartnerContribution.contribution_date >= start)
    if end:
        query = query.filter(PartnerContribution.contribution_date <= end)

    rows = query.order_by(
        PartnerContribution.contribution_date.desc(),
        PartnerContribution.id.desc(),
    ).all()
    return {
        "items": [r.to_dict() for r in rows],
        "count": len(rows),
        "total_cents": sum(r.amount_cents for r in rows),
    }


def add_expense(*, patch: dict) -> dict:
    expense = Expense(
        description=patch["description"],
        amount_cents=patch["amount_cents"],
        expense_date=patch["expense_date"],
        category=patch.get("category"),
    )
    db.session.add(expense)
    db.session.commit()
    logger.info("Recorded expense #%d: %d on %s", expense.id, expense.amount_cents, expense.expense_date)
    return expense.to_dict()


def list_expenses(*, start: date | None = None, end: date | None = None) -> dict:
    _check_range(start, end)
    query = db.session.query(Expense)
    if start:
        query = query.filter(Expense.expense_date >= start)
    if end:
        query = query.filter(Expense.expense_date <= end)

    rows = query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
    return {
        "items": [r.to_dict() for r in rows],
        "count": len(rows),
        "total_cents": sum(r.amount_cents for r in rows),
    }
