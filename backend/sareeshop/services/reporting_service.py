# Overview: Service-layer operations for reporting; read-only projections over sales, items and the cash-flow ledger.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import (
    Expense,
    Item,
    PartnerContribution,
    Sale,
    SaleItem,
    ITEM_STATUS_ACTIVE,
    SALE_STATUS_COMPLETED,
)
from ..time_utils import (
    end_of_day_exclusive,
    parse_iso_date,
    start_of_day,
    to_iso_date,
    to_utc_z,
    utcnow,
    whole_days_between,
)

TREND_WINDOW_DAYS = 90
TREND_LIMIT = 10
SLOW_MOVING_THRESHOLD_DAYS = 60
SLOW_MOVING_LIMIT = 20


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _parse_date(value, key: str) -> date | None:
    """Accepts a date or a YYYY-MM-DD string; blank is None."""
    if value is None or isinstance(value, date):
        return value
    try:
        return parse_iso_date(value)
    except ValueError as exc:
        raise ReportError(f"{key} must be a date (YYYY-MM-DD)") from exc


def _completed_lines_query(*columns):
    return (
        db.session.query(*columns)
        .select_from(SaleItem)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .join(Item, SaleItem.item_id == Item.id)
        .filter(Sale.status == SALE_STATUS_COMPLETED)
    )


def _trend_rows(dimension, *, now: datetime | None, window_days: int, limit: int, skip_blank: bool):
    now = now or utcnow()
    since = now - timedelta(days=window_days)

    quantity = func.sum(SaleItem.quantity)
    revenue = func.sum(SaleItem.quantity * SaleItem.price_at_sale_cents)

    query = _completed_lines_query(
        dimension.label("key"),
        quantity.label("quantity"),
        revenue.label("revenue_cents"),
        func.min(Item.category).label("category"),
        func.min(Item.source).label("source"),
    ).filter(Sale.created_at >= since)

    if skip_blank:
        query = query.filter(dimension.isnot(None), dimension != "")

    return (
        query.group_by(dimension)
        .order_by(quantity.desc(), revenue.desc(), dimension.asc())
        .limit(limit)
        .all()
    )


def trending_items(
    *,
    now: datetime | None = None,
    window_days: int = TREND_WINDOW_DAYS,
    limit: int = TREND_LIMIT,
) -> list[dict]:
    """Best sellers by units over the trailing window, grouped by item name."""
    rows = _trend_rows(Item.name, now=now, window_days=window_days, limit=limit, skip_blank=False)
    return [
        {
            "name": row.key,
            "category": row.category,
            "source": row.source,
            "total_quantity_sold": int(row.quantity or 0),
            "total_revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]


def _grouped_trend(label: str, dimension, *, now, window_days, limit, skip_blank) -> list[dict]:
    rows = _trend_rows(dimension, now=now, window_days=window_days, limit=limit, skip_blank=skip_blank)
    return [
        {
            label: row.key,
            "count": int(row.quantity or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]


def material_trends(*, now: datetime | None = None, window_days: int = TREND_WINDOW_DAYS, limit: int = TREND_LIMIT) -> list[dict]:
    return _grouped_trend("material", Item.name, now=now, window_days=window_days, limit=limit, skip_blank=False)


def category_trends(*, now: datetime | None = None, window_days: int = TREND_WINDOW_DAYS, limit: int = TREND_LIMIT) -> list[dict]:
    return _grouped_trend("category", Item.category, now=now, window_days=window_days, limit=limit, skip_blank=True)


def source_trends(*, now: datetime | None = None, window_days: int = TREND_WINDOW_DAYS, limit: int = TREND_LIMIT) -> list[dict]:
    return _grouped_trend("source", Item.source, now=now, window_days=window_days, limit=limit, skip_blank=True)


def slow_moving_items(
    *,
    now: datetime | None = None,
    threshold_days: int = SLOW_MOVING_THRESHOLD_DAYS,
    limit: int = SLOW_MOVING_LIMIT,
) -> list[dict]:
    """
    In-stock active items that have sat too long.

    Flagged when never sold and older than threshold_days, or when the last
    completed sale is older than threshold_days. Oldest first.
    """
    now = now or utcnow()

    last_sale = (
        db.session.query(
            SaleItem.item_id.label("item_id"),
            func.max(Sale.created_at).label("last_sale_at"),
        )
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.status == SALE_STATUS_COMPLETED)
        .group_by(SaleItem.item_id)
        .subquery()
    )

    rows = (
        db.session.query(Item, last_sale.c.last_sale_at)
        .outerjoin(last_sale, last_sale.c.item_id == Item.id)
        .filter(Item.status == ITEM_STATUS_ACTIVE, Item.stock > 0)
        .all()
    )

    result = []
    for item, last_sale_at in rows:
        days_old = whole_days_between(item.created_at, now)
        last_sale_days_ago = whole_days_between(last_sale_at, now) if last_sale_at is not None else None

        if last_sale_days_ago is None:
            is_slow = days_old > threshold_days
        else:
            is_slow = last_sale_days_ago > threshold_days

        if is_slow:
            result.append({
                "id": item.id,
                "name": item.name,
                "category": item.category,
                "stock": item.stock,
                "days_old": days_old,
                "last_sale_days_ago": last_sale_days_ago,
            })

    result.sort(key=lambda r: (-r["days_old"], r["id"]))
    return result[:limit]


def sales_summary(*, now: datetime | None = None) -> dict:
    """Headline numbers for the sales dashboard (completed sales only)."""
    now = now or utcnow()
    today = now.date()

    completed = db.session.query(Sale).filter(Sale.status == SALE_STATUS_COMPLETED)

    total_revenue = completed.with_entities(func.coalesce(func.sum(Sale.total_cents), 0)).scalar()
    daily_revenue = completed.filter(
        Sale.created_at >= start_of_day(today),
        Sale.created_at < end_of_day_exclusive(today),
    ).with_entities(func.coalesce(func.sum(Sale.total_cents), 0)).scalar()
    transactions = completed.count()
    items_sold = _completed_lines_query(func.coalesce(func.sum(SaleItem.quantity), 0)).scalar()

    return {
        "as_of": to_utc_z(now),
        "total_revenue_cents": int(total_revenue or 0),
        "daily_revenue_cents": int(daily_revenue or 0),
        "total_transactions": int(transactions or 0),
        "total_items_sold": int(items_sold or 0),
    }


def _revenue_cents(start: date | None, end: date) -> int:
    query = db.session.query(func.coalesce(func.sum(Sale.total_cents), 0)).filter(
        Sale.status == SALE_STATUS_COMPLETED,
        Sale.created_at < end_of_day_exclusive(end),
    )
    if start:
        query = query.filter(Sale.created_at >= start_of_day(start))
    return int(query.scalar() or 0)


def _cogs_cents(start: date | None, end: date) -> int:
    # Uses the item's current cost; sale_items carry no cost snapshot
    query = _completed_lines_query(
        func.coalesce(func.sum(Item.cost_cents * SaleItem.quantity), 0)
    ).filter(Sale.created_at < end_of_day_exclusive(end))
    if start:
        query = query.filter(Sale.created_at >= start_of_day(start))
    return int(query.scalar() or 0)


def _expenses_cents(start: date | None, end: date) -> int:
    query = db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
        Expense.expense_date <= end,
    )
    if start:
        query = query.filter(Expense.expense_date >= start)
    return int(query.scalar() or 0)


def _contributions_cents(end: date) -> int:
    query = db.session.query(func.coalesce(func.sum(PartnerContribution.amount_cents), 0)).filter(
        PartnerContribution.contribution_date <= end,
    )
    return int(query.scalar() or 0)


def _inventory_value_cents() -> int:
    # Current shelf value; not reconstructed as of a past date
    query = db.session.query(func.coalesce(func.sum(Item.cost_cents * Item.stock), 0)).filter(
        Item.status == ITEM_STATUS_ACTIVE,
    )
    return int(query.scalar() or 0)


def balance_sheet(*, as_of: date | str | None = None) -> dict:
    """
    Balance sheet as of the end of `as_of` (inclusive).

    cash = contributions + revenue - COGS - expenses - inventory value
    total assets = inventory value + cash
    """
    as_of = _parse_date(as_of, "as_of") or utcnow().date()

    total_contributions = _contributions_cents(as_of)
    inventory_value = _inventory_value_cents()
    total_expenses = _expenses_cents(None, as_of)
    total_revenue = _revenue_cents(None, as_of)
    cogs = _cogs_cents(None, as_of)

    cash_balance = total_contributions + total_revenue - cogs - total_expenses - inventory_value
    total_assets = inventory_value + cash_balance

    return {
        "as_of": to_iso_date(as_of),
        "total_contributions_cents": total_contributions,
        "inventory_value_cents": inventory_value,
        "cash_balance_cents": cash_balance,
        "total_assets_cents": total_assets,
        "total_expenses_cents": total_expenses,
        "total_revenue_cents": total_revenue,
        "cost_of_goods_sold_cents": cogs,
    }


def profit_and_loss(*, start: date | str | None, end: date | str | None) -> dict:
    """Profit & loss over an inclusive date range."""
    start = _parse_date(start, "start")
    end = _parse_date(end, "end")
    if start is None or end is None:
        raise ReportError("start and end are required")
    if start > end:
        raise ReportError("start must be on or before end")

    revenue = _revenue_cents(start, end)
    cogs = _cogs_cents(start, end)
    expenses = _expenses_cents(start, end)
    gross_profit = revenue - cogs

    return {
        "start": to_iso_date(start),
        "end": to_iso_date(end),
        "revenue_cents": revenue,
        "cost_of_goods_sold_cents": cogs,
        "gross_profit_cents": gross_profit,
        "expenses_cents": expenses,
        "net_profit_cents": gross_profit - expenses,
    }
