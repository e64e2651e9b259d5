import pytest

import database
from database import DatabaseError


def test_init_db_is_idempotent():
    database.init_db()
    database.init_db()
    tables = database.list_tables()
    for table in database.TABLES:
        assert table in tables


def test_document_helpers_round_trip_values():
    mid = database.create_document(
        "contact_messages",
        {"name": "Asha", "email": "asha@giftchoice.in", "message": "Hello", "is_read": False},
    )
    row = database.get_document("contact_messages", mid)
    assert row["name"] == "Asha"
    assert row["is_read"] == 0
    assert database.as_datetime(row["created_at"]) is not None

    assert database.update_document("contact_messages", mid, {"is_read": True}) == 1
    assert database.get_document("contact_messages", mid)["is_read"] == 1

    assert database.delete_document("contact_messages", mid) == 1
    assert database.get_document("contact_messages", mid) is None


def test_json_columns_are_stored_as_text():
    cid = database.create_document(
        "categories",
        {"name": "Soft Toys", "slug": "soft-toys", "subcategories": [{"name": "Teddy", "slug": "teddy"}]},
    )
    row = database.get_document("categories", cid)
    assert database.loads_json(row["subcategories"]) == [{"name": "Teddy", "slug": "teddy"}]
    assert database.loads_json(None, []) == []


def test_transaction_rolls_back_when_callback_raises():
    def work(conn):
        database.create_document(
            "contact_messages",
            {"name": "Ravi", "email": "ravi@giftchoice.in", "message": "Hi"},
            conn=conn,
        )
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        database.transaction(work)

    assert database.query("SELECT COUNT(*) AS n FROM contact_messages")[0]["n"] == 0


def test_failed_child_insert_leaves_no_parent_order():
    def work(conn):
        order_id = database.create_document(
            "orders",
            {"customer_name": "Asha", "customer_phone": "9999999999", "total": 100},
            conn=conn,
        )
        # product_name is NOT NULL
        database.create_document(
            "order_items",
            {"order_id": order_id, "product_id": "p1", "quantity": 1, "price": 100},
            conn=conn,
        )

    with pytest.raises(DatabaseError):
        database.transaction(work)

    assert database.query("SELECT COUNT(*) AS n FROM orders")[0]["n"] == 0


def test_bad_sql_raises_database_error_with_detail():
    with pytest.raises(DatabaseError) as info:
        database.query("SELECT * FROM no_such_table")
    assert info.value.detail
    assert "no_such_table" in info.value.detail


def test_get_documents_filters_orders_and_limits():
    for i in range(3):
        database.create_document(
            "promotional_banners",
            {"title": f"Banner {i}", "display_order": 3 - i, "is_active": i != 1},
        )
    rows = database.get_documents("promotional_banners", {"is_active": True}, order_by="display_order ASC")
    assert [r["title"] for r in rows] == ["Banner 2", "Banner 0"]
    assert len(database.get_documents("promotional_banners", limit=1)) == 1
