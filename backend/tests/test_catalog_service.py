"""
Catalog service tests.

Verifies:
- Adding N units creates N rows with stock 1
- Search, status filter and sort
- Returned items are soft-deleted and frozen
- Manual stock adjustment bounds
- Image replacement never half-applies an edit
"""

import io
from datetime import timedelta

import pytest
from werkzeug.datastructures import FileStorage

from sareeshop.extensions import db
from sareeshop.models import Item, ITEM_STATUS_ACTIVE, ITEM_STATUS_RETURNED
from sareeshop.services import catalog_service, storage_service
from sareeshop.services.catalog_service import ItemNotFoundError
from sareeshop.time_utils import utcnow
from sareeshop.validation import ConflictError, ValidationError

from conftest import make_item


# =============================================================================
# ADD ITEMS
# =============================================================================


class TestAddItems:

    def test_quantity_creates_one_row_per_unit(self, db_session):
        created = catalog_service.add_items(
            patch={"name": "Banarasi Silk", "price_cents": 800000, "cost_cents": 500000},
            quantity=3,
        )

        assert len(created) == 3
        assert len({row["id"] for row in created}) == 3
        assert all(row["stock"] == 1 for row in created)
        assert all(row["status"] == ITEM_STATUS_ACTIVE for row in created)
        assert db_session.query(Item).count() == 3

    def test_back_dated_created_at(self, db_session):
        arrived = utcnow() - timedelta(days=30)
        created = catalog_service.add_items(
            patch={"name": "Tussar", "price_cents": 100, "cost_cents": 50},
            created_at=arrived,
        )
        item = db_session.get(Item, created[0]["id"])
        assert abs((item.created_at - arrived).total_seconds()) < 1

    def test_zero_quantity_rejected(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.add_items(patch={"name": "Tussar", "price_cents": 100}, quantity=0)
        assert db_session.query(Item).count() == 0


# =============================================================================
# LISTING
# =============================================================================


class TestListItems:

    def test_non_positive_page_size_clamped(self, db_session, silk_item, cotton_item):
        result = catalog_service.list_items(page=-2, per_page=-5)

        assert result["count"] == 1
        assert result["pagination"]["page"] == 1
        assert result["pagination"]["per_page"] == 1
        assert result["pagination"]["total_pages"] == 2

    def test_numeric_query_is_exact_id_match(self, db_session):
        first = make_item(db_session, name="Mysore Silk 12")
        make_item(db_session, name="Mysore Silk 1")

        result = catalog_service.list_items(query=str(first.id))
        assert [row["id"] for row in result["items"]] == [first.id]

    def test_text_query_matches_name_category_source(self, db_session):
        make_item(db_session, name="Kanjivaram Silk", category="Maroon", source="Kanchi")
        make_item(db_session, name="Chanderi Cotton", category="Ivory", source="Chanderi Co-op")

        assert catalog_service.list_items(query="silk")["count"] == 1
        assert catalog_service.list_items(query="ivory")["count"] == 1
        assert catalog_service.list_items(query="co-op")["count"] == 1
        assert catalog_service.list_items(query="linen")["count"] == 0

    def test_status_filter_and_sort(self, db_session):
        old = make_item(db_session, name="Old", days_old=10)
        new = make_item(db_session, name="New", days_old=1)
        gone = make_item(db_session, name="Gone", days_old=5)
        catalog_service.return_item(item_id=gone.id)

        active = catalog_service.list_items()
        assert [row["id"] for row in active["items"]] == [new.id, old.id]

        oldest_first = catalog_service.list_items(sort="oldest")
        assert [row["id"] for row in oldest_first["items"]] == [old.id, new.id]

        returned = catalog_service.list_items(status="RETURNED")
        assert [row["id"] for row in returned["items"]] == [gone.id]

        assert catalog_service.list_items(status="ALL")["count"] == 3

    def test_invalid_status_rejected(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.list_items(status="SOLD")

    def test_pagination(self, db_session):
        for i in range(5):
            make_item(db_session, name=f"Silk {i}", days_old=i)

        page = catalog_service.list_items(page=2, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 5
        assert page["pagination"]["total_pages"] == 3
        assert page["pagination"]["has_next"] is True
        assert page["pagination"]["has_prev"] is True

    def test_sellable_excludes_sold_out_and_returned(self, db_session):
        on_shelf = make_item(db_session, name="On shelf")
        make_item(db_session, name="Sold out", stock=0)
        returned = make_item(db_session, name="Returned")
        catalog_service.return_item(item_id=returned.id)

        assert [row["id"] for row in catalog_service.sellable_items()] == [on_shelf.id]


# =============================================================================
# UPDATE / RETURN / ADJUST
# =============================================================================


class TestItemMutations:

    def test_update_item_changes_price(self, db_session, silk_item):
        updated = catalog_service.update_item(item_id=silk_item.id, patch={"price_cents": 450000})
        assert updated["price_cents"] == 450000

    def test_update_unknown_item(self, db_session):
        with pytest.raises(ItemNotFoundError):
            catalog_service.update_item(item_id=9999, patch={"price_cents": 1})

    def test_return_item_soft_deletes(self, db_session, silk_item):
        returned = catalog_service.return_item(item_id=silk_item.id)

        assert returned["status"] == ITEM_STATUS_RETURNED
        assert returned["stock"] == 0
        assert returned["returned_at"] is not None
        assert db_session.query(Item).count() == 1

    def test_return_is_idempotent(self, db_session, silk_item):
        first = catalog_service.return_item(item_id=silk_item.id)
        second = catalog_service.return_item(item_id=silk_item.id)
        assert second["returned_at"] == first["returned_at"]

    def test_returned_item_cannot_be_edited_or_adjusted(self, db_session, silk_item):
        catalog_service.return_item(item_id=silk_item.id)

        with pytest.raises(ConflictError):
            catalog_service.update_item(item_id=silk_item.id, patch={"price_cents": 1})
        with pytest.raises(ConflictError):
            catalog_service.adjust_stock(item_id=silk_item.id, delta=1)

    def test_adjust_stock(self, db_session, silk_item):
        assert catalog_service.adjust_stock(item_id=silk_item.id, delta=2)["stock"] == 3
        assert catalog_service.adjust_stock(item_id=silk_item.id, delta=-3)["stock"] == 0

    def test_adjust_stock_cannot_go_negative(self, db_session, silk_item):
        with pytest.raises(ValidationError):
            catalog_service.adjust_stock(item_id=silk_item.id, delta=-2)

        db.session.expire_all()
        assert db_session.get(Item, silk_item.id).stock == 1

    def test_adjust_stock_zero_delta(self, db_session, silk_item):
        with pytest.raises(ValidationError):
            catalog_service.adjust_stock(item_id=silk_item.id, delta=0)


# =============================================================================
# IMAGES
# =============================================================================


def _upload(filename: str, data: bytes = b"\x89PNG fake") -> FileStorage:
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type="image/png")


class TestItemImages:

    def test_update_replaces_image_and_removes_old_file(self, db_session, silk_item):
        first = catalog_service.update_item(item_id=silk_item.id, patch={}, image=_upload("front.png"))
        old_file = storage_service.image_directory() / first["image_path"].rsplit("/", 1)[1]
        assert old_file.exists()

        second = catalog_service.update_item(
            item_id=silk_item.id, patch={"price_cents": 520000}, image=_upload("pallu.jpg"),
        )

        assert second["image_path"] != first["image_path"]
        assert second["image_path"].endswith(".jpg")
        assert second["price_cents"] == 520000
        assert not old_file.exists()

    def test_shared_image_kept_while_another_unit_uses_it(self, db_session):
        units = catalog_service.add_items(
            patch={"name": "Patola", "price_cents": 700000}, quantity=2, image=_upload("patola.png"),
        )
        shared = units[0]["image_path"]

        catalog_service.update_item(item_id=units[0]["id"], patch={}, image=_upload("patola-2.png"))

        assert (storage_service.image_directory() / shared.rsplit("/", 1)[1]).exists()

    def test_rejected_image_leaves_item_untouched(self, db_session, silk_item):
        with pytest.raises(ValidationError):
            catalog_service.update_item(
                item_id=silk_item.id, patch={"price_cents": 1}, image=_upload("evil.exe"),
            )

        db.session.expire_all()
        item = db_session.get(Item, silk_item.id)
        assert item.price_cents == 500000
        assert item.image_path is None
