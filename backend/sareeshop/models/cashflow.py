from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow


class Partner(db.Model):
    """Business partner who funds the shop."""
    __tablename__ = "partners"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class PartnerContribution(db.Model):
    """Capital put into the business by a partner on a given date."""
    __tablename__ = "partner_contributions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    contribution_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    partner = db.relationship("Partner", backref=db.backref("contributions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "partner_id": self.partner_id,
            "partner_name": self.partner.name if self.partner is not None else None,
            "amount_cents": self.amount_cents,
            "contribution_date": to_iso_date(self.contribution_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(db.Model):
    """Money spent running the shop (rent, packaging, travel...)."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    expense_date = db.Column(db.Date, nullable=False, index=True)
    category = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "expense_date": to_iso_date(self.expense_date),
            "category": self.category,
            "created_at": to_utc_z(self.created_at),
        }
