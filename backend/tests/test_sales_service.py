"""
Sales service tests.

Verifies:
- Checkout is all-or-nothing and captures price_at_sale
- Discounts never push the total below zero
- A sale is refunded at most once
- Returned items keep their sale history
- Concurrent checkouts of one unit produce exactly one sale
"""

import threading
from datetime import timedelta

import pytest
from sqlalchemy.orm.exc import StaleDataError

from sareeshop import create_app
from sareeshop.extensions import db
from sareeshop.models import Item, Sale, SaleItem, SALE_STATUS_COMPLETED, SALE_STATUS_REFUNDED
from sareeshop.services import catalog_service, concurrency, sales_service
from sareeshop.services.catalog_service import ItemNotFoundError
from sareeshop.services.sales_service import SaleError, SaleNotFoundError
from sareeshop.time_utils import utcnow
from sareeshop.validation import ValidationError

from conftest import make_item


def _stock(item_id: int) -> int:
    db.session.expire_all()
    return db.session.get(Item, item_id).stock


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCheckout:

    def test_checkout_creates_sale_and_decrements_stock(self, db_session, silk_item, cotton_item):
        sale = sales_service.checkout(
            cart=[
                {"item_id": silk_item.id, "quantity": 1},
                {"item_id": cotton_item.id, "quantity": 1},
            ],
            payment_method="upi",
        )

        assert sale.status == SALE_STATUS_COMPLETED
        assert sale.subtotal_cents == 500000 + 150000
        assert sale.total_cents == 650000
        assert sale.payment_method == "upi"
        assert len(sale.lines) == 2
        assert _stock(silk_item.id) == 0
        assert _stock(cotton_item.id) == 0

    def test_insufficient_stock_writes_nothing(self, db_session, silk_item, cotton_item):
        with pytest.raises(SaleError) as exc_info:
            sales_service.checkout(cart=[
                {"item_id": cotton_item.id, "quantity": 1},
                {"item_id": silk_item.id, "quantity": 2},
            ])

        assert f"#{silk_item.id}" in str(exc_info.value)
        assert exc_info.value.details["items"][0]["item_id"] == silk_item.id
        assert exc_info.value.details["items"][0]["available"] == 1
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert _stock(silk_item.id) == 1
        assert _stock(cotton_item.id) == 1

    def test_duplicate_lines_are_merged(self, db_session, silk_item):
        with pytest.raises(SaleError):
            sales_service.checkout(cart=[
                {"item_id": silk_item.id, "quantity": 1},
                {"item_id": silk_item.id, "quantity": 1},
            ])
        assert db_session.query(Sale).count() == 0

    def test_discount_floors_total_at_zero(self, db_session):
        item = make_item(db_session, price_cents=500, cost_cents=100)
        sale = sales_service.checkout(cart=[{"item_id": item.id, "quantity": 1}], discount_cents=600)

        assert sale.subtotal_cents == 500
        assert sale.discount_cents == 600
        assert sale.total_cents == 0

    def test_empty_cart_rejected(self, db_session):
        with pytest.raises(SaleError, match="Cart is empty"):
            sales_service.checkout(cart=[])

    def test_unknown_item_rejected(self, db_session, silk_item):
        with pytest.raises(ItemNotFoundError):
            sales_service.checkout(cart=[
                {"item_id": silk_item.id, "quantity": 1},
                {"item_id": 9999, "quantity": 1},
            ])
        assert db_session.query(Sale).count() == 0
        assert _stock(silk_item.id) == 1

    def test_returned_item_cannot_be_sold(self, db_session, silk_item):
        catalog_service.return_item(item_id=silk_item.id)
        with pytest.raises(SaleError):
            sales_service.checkout(cart=[{"item_id": silk_item.id, "quantity": 1}])

    def test_bad_quantity_rejected(self, db_session, silk_item):
        with pytest.raises(ValidationError):
            sales_service.checkout(cart=[{"item_id": silk_item.id, "quantity": 0}])
        with pytest.raises(ValidationError):
            sales_service.checkout(cart=[{"item_id": silk_item.id, "quantity": "1.5"}])

    def test_price_at_sale_survives_price_change(self, db_session, silk_item):
        sale = sales_service.checkout(cart=[{"item_id": silk_item.id, "quantity": 1}])
        catalog_service.update_item(item_id=silk_item.id, patch={"price_cents": 1})

        line = db_session.query(SaleItem).filter_by(sale_id=sale.id).one()
        assert line.price_at_sale_cents == 500000

    def test_back_dated_sale(self, db_session, silk_item):
        when = utcnow() - timedelta(days=3)
        sale = sales_service.checkout(cart=[{"item_id": silk_item.id, "quantity": 1}], sale_date=when)
        assert abs((sale.created_at - when).total_seconds()) < 1


# =============================================================================
# REVERSAL
# =============================================================================


class TestReverseSale:

    def test_reversal_restores_stock_once(self, db_session):
        item = make_item(db_session, stock=3)
        sale = sales_service.checkout(cart=[{"item_id": item.id, "quantity": 2}])
        assert _stock(item.id) == 1

        reversed_sale = sales_service.reverse_sale(sale_id=sale.id, reason="customer changed mind")
        assert reversed_sale.status == SALE_STATUS_REFUNDED
        assert reversed_sale.refunded_at is not None
        assert reversed_sale.refund_reason == "customer changed mind"
        assert _stock(item.id) == 3

        with pytest.raises(SaleError, match="already refunded"):
            sales_service.reverse_sale(sale_id=sale.id)
        assert _stock(item.id) == 3

    def test_reversal_records_user(self, db_session, user, silk_item):
        sale = sales_service.checkout(cart=[{"item_id": silk_item.id, "quantity": 1}], user_id=user.id)
        reversed_sale = sales_service.reverse_sale(sale_id=sale.id, user_id=user.id)

        assert reversed_sale.created_by_user_id == user.id
        assert reversed_sale.refunded_by_user_id == user.id

    def test_reverse_unknown_sale(self, db_session):
        with pytest.raises(SaleNotFoundError):
            sales_service.reverse_sale(sale_id=9999)

    def test_returned_item_stays_at_zero_after_reversal(self, db_session, silk_item):
        sale = sales_service.checkout(cart=[{"item_id": silk_item.id, "quantity": 1}])
        catalog_service.return_item(item_id=silk_item.id)

        sales_service.reverse_sale(sale_id=sale.id)
        assert _stock(silk_item.id) == 0


# =============================================================================
# RETURNS KEEP HISTORY
# =============================================================================


class TestReturnedItemHistory:

    def test_return_keeps_price_at_sale_and_hides_item(self, db_session):
        item = make_item(db_session, stock=2, price_cents=700000)
        sale = sales_service.checkout(cart=[{"item_id": item.id, "quantity": 1}])

        catalog_service.return_item(item_id=item.id)

        assert _stock(item.id) == 0
        active_ids = [row["id"] for row in catalog_service.list_items()["items"]]
        assert item.id not in active_ids

        detail = sales_service.get_sale(sale.id)
        assert detail["lines"][0]["price_at_sale_cents"] == 700000


# =============================================================================
# LISTING
# =============================================================================


class TestListSales:

    def test_newest_first_with_date_range(self, db_session):
        now = utcnow()
        items = [make_item(db_session, name=f"Silk {i}") for i in range(3)]
        for days_ago, item in zip((10, 5, 0), items):
            sales_service.checkout(
                cart=[{"item_id": item.id, "quantity": 1}],
                sale_date=now - timedelta(days=days_ago),
            )

        everything = sales_service.list_sales()
        assert everything["count"] == 3
        created = [row["created_at"] for row in everything["items"]]
        assert created == sorted(created, reverse=True)

        recent = sales_service.list_sales(start=(now - timedelta(days=6)).date(), end=now.date())
        assert recent["count"] == 2
        assert recent["items"][0]["lines"][0]["item_name"] == "Silk 2"

    def test_limit(self, db_session):
        for i in range(3):
            item = make_item(db_session, name=f"Silk {i}")
            sales_service.checkout(cart=[{"item_id": item.id, "quantity": 1}])

        assert sales_service.list_sales(limit=2)["count"] == 2

    def test_non_positive_limit_clamped_to_one(self, db_session):
        for i in range(2):
            item = make_item(db_session, name=f"Silk {i}")
            sales_service.checkout(cart=[{"item_id": item.id, "quantity": 1}])

        assert sales_service.list_sales(limit=-1)["count"] == 1

    def test_reversed_range_rejected(self, db_session):
        now = utcnow().date()
        with pytest.raises(ValidationError):
            sales_service.list_sales(start=now, end=now - timedelta(days=1))

    def test_get_unknown_sale(self, db_session):
        with pytest.raises(SaleNotFoundError):
            sales_service.get_sale(9999)


# =============================================================================
# CONCURRENCY
# =============================================================================


class TestConcurrentCheckout:
    """Checkouts racing for the same unit against a file-backed database."""

    WORKERS = 4

    @pytest.fixture
    def file_app(self, tmp_path):
        file_app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
            'UPLOAD_FOLDER': str(tmp_path / "uploads"),
        })
        with file_app.app_context():
            db.create_all()
        yield file_app
        with file_app.app_context():
            db.session.remove()
            db.engine.dispose()

    def test_only_one_checkout_wins_last_unit(self, file_app):
        with file_app.app_context():
            item = Item(name="Last Banarasi", price_cents=900000, cost_cents=600000, stock=1)
            db.session.add(item)
            db.session.commit()
            item_id = item.id

        barrier = threading.Barrier(self.WORKERS)
        outcomes = []
        lock = threading.Lock()

        def worker():
            with file_app.app_context():
                barrier.wait()
                try:
                    sales_service.checkout(cart=[{"item_id": item_id, "quantity": 1}])
                    result = "sold"
                except SaleError:
                    result = "insufficient"
                with lock:
                    outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(self.WORKERS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["insufficient"] * (self.WORKERS - 1) + ["sold"]
        with file_app.app_context():
            assert db.session.query(Sale).count() == 1
            assert db.session.query(SaleItem).count() == 1
            assert db.session.get(Item, item_id).stock == 0


class TestRunWithRetry:

    def test_stale_data_conflict_is_retried(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("row changed underneath")
            return "ok"

        assert concurrency.run_with_retry(flaky, backoff_base=0) == "ok"
        assert len(calls) == 2

    def test_gives_up_after_last_attempt(self, db_session):
        def always_stale():
            raise StaleDataError("row changed underneath")

        with pytest.raises(StaleDataError):
            concurrency.run_with_retry(always_stale, attempts=2, backoff_base=0)
