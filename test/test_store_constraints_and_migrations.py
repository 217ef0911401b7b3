from pathlib import Path

import pytest
from conftest import add_product

from gstpos.domain.errors import ConflictError, NotFoundError, ValidationError
from gstpos.repositories.contracts import Search
from gstpos.repositories.sqlite_store import SqliteRecordStore


def _store(tmp_path: Path, name: str = "store.db") -> SqliteRecordStore:
    store = SqliteRecordStore(tmp_path / name)
    store.init_db()
    return store


def test_migrations_seed_default_settings(tmp_path: Path):
    store = _store(tmp_path)

    settings = {r["key"]: r["value"] for r in store.list_all("settings")}
    assert settings["invoice_prefix"] == "GST"
    assert settings["invoice_counter"] == "0"
    assert settings["financial_year"] == "2025/26"
    assert settings["default_cgst"] == "2.5"

    # re-running is a no-op
    store.init_db()
    assert len(store.list_all("settings")) == len(settings)


def test_records_get_fifteen_char_ids_and_timestamps(tmp_path: Path):
    store = _store(tmp_path)
    rec = store.create("customers", {"name": "Asha", "mobile": "9876543210"})

    assert len(rec["id"]) == 15
    assert rec["id"].isalnum()
    assert rec["created"] and rec["updated"]
    assert rec["email"] == ""


def test_unique_fields_raise_conflict(tmp_path: Path):
    store = _store(tmp_path)
    add_product(store, "QA-7001", "Silk", 100)
    store.create("customers", {"name": "Asha", "mobile": "9876543210"})

    with pytest.raises(ConflictError, match="product_code"):
        add_product(store, "QA-7001", "Other", 200)
    with pytest.raises(ConflictError):
        store.create("customers", {"name": "Asha 2", "mobile": "9876543210"})


def test_invoice_number_is_not_unique(tmp_path: Path):
    store = _store(tmp_path)
    customer = store.create("customers", {"name": "Asha", "mobile": "9876543210"})
    header = {
        "invoice_number": "GST-0001-2025/26",
        "invoice_date": "2025-06-01 10:00:00.000Z",
        "customer": customer["id"],
        "subtotal": 100,
        "grand_total": 100,
        "status": "revised",
    }
    store.create("invoices", header)
    store.create("invoices", {**header, "status": "completed"})

    assert store.list("invoices", {"invoice_number": "GST-0001-2025/26"}).total_items == 2


def test_required_select_and_relation_are_enforced(tmp_path: Path):
    store = _store(tmp_path)

    with pytest.raises(ValidationError, match="customers.mobile is required"):
        store.create("customers", {"name": "No mobile"})
    with pytest.raises(ValidationError, match="must be one of"):
        store.create(
            "invoices",
            {
                "invoice_number": "X",
                "invoice_date": "2025-06-01",
                "customer": "nobody",
                "subtotal": 1,
                "grand_total": 1,
                "status": "paid",
            },
        )
    with pytest.raises(ValidationError):
        store.create(
            "invoices",
            {
                "invoice_number": "X",
                "invoice_date": "2025-06-01",
                "customer": "nobody000000000",
                "subtotal": 1,
                "grand_total": 1,
                "status": "completed",
            },
        )


def test_get_and_update_missing_record(tmp_path: Path):
    store = _store(tmp_path)

    with pytest.raises(NotFoundError):
        store.get("products", "doesnotexist123")
    with pytest.raises(NotFoundError):
        store.update("products", "doesnotexist123", {"name": "x"})
    with pytest.raises(ValidationError, match="Unknown collection"):
        store.list("orders")


def test_list_filters_search_sort_and_pages(tmp_path: Path):
    store = _store(tmp_path)
    for i, (name, price) in enumerate([("Banarasi", 1500), ("Chanderi", 900), ("Bandhani", 1200), ("Tussar", 2000)]):
        add_product(store, f"QA-{7001 + i}", name, price, barcode=f"890{i}")

    cheap = store.list_all("products", {"retail_price": ("<", 1300)}, sort="retail_price")
    assert [r["name"] for r in cheap] == ["Chanderi", "Bandhani"]

    found = store.list_all("products", search=Search(("name", "barcode"), "band"), sort="-name")
    assert [r["name"] for r in found] == ["Bandhani"]

    both = store.list_all("products", {"product_code": ("in", ["QA-7001", "QA-7004"])}, sort="name")
    assert [r["name"] for r in both] == ["Banarasi", "Tussar"]

    ranged = store.list_all("products", {"retail_price": [(">=", 1000), ("<=", 1500)]}, sort="name")
    assert [r["name"] for r in ranged] == ["Banarasi", "Bandhani"]

    page = store.list("products", sort="name", page=2, per_page=3)
    assert page.total_items == 4
    assert page.total_pages == 2
    assert [r["name"] for r in page.items] == ["Tussar"]

    assert store.first("products", {"barcode": "8901"})["name"] == "Chanderi"
    assert store.first("products", {"barcode": "nope"}) is None

    with pytest.raises(ValidationError, match="Unknown field"):
        store.list("products", sort="-price")


def test_expand_places_related_record(tmp_path: Path):
    store = _store(tmp_path)
    customer = store.create("customers", {"name": "Asha", "mobile": "9876543210"})
    inv = store.create(
        "invoices",
        {
            "invoice_number": "GST-0001-2025/26",
            "invoice_date": "2025-06-01 10:00:00.000Z",
            "customer": customer["id"],
            "subtotal": 100,
            "grand_total": 100,
            "status": "completed",
        },
    )

    rec = store.get("invoices", inv["id"], expand=("customer",))
    assert rec["expand"]["customer"]["name"] == "Asha"
    assert "expand" not in store.get("invoices", inv["id"])


def test_increment_setting_and_field(tmp_path: Path):
    store = _store(tmp_path)
    p = add_product(store, "QA-1", "Silk", 100, stock=3)

    assert store.increment_setting("invoice_counter") == 1
    assert store.increment_setting("invoice_counter", by=2) == 3
    assert store.first("settings", {"key": "invoice_counter"})["value"] == "3"
    assert store.increment_setting("brand_new_counter") == 1

    assert store.increment_field("products", p.id, "current_stock", -5) == -2
    with pytest.raises(ValidationError, match="not a number field"):
        store.increment_field("products", p.id, "name", 1)


def test_migration_failure_restores_db(tmp_path: Path):
    class BrokenMigrationStore(SqliteRecordStore):
        def _migration_v2_seed_settings(self, cur):
            raise RuntimeError("forced migration failure")

    db = tmp_path / "broken.db"
    store = _store(tmp_path, "broken.db")

    conn = store._conn()
    cur = conn.cursor()
    cur.execute("DELETE FROM schema_migrations WHERE version = 2")
    conn.commit()
    conn.close()

    with pytest.raises(RuntimeError, match="Original database restored"):
        BrokenMigrationStore(db).run_migrations()

    conn = store._conn()
    cur = conn.cursor()
    cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
    after = int(cur.fetchone()[0])
    conn.close()

    assert after == 1
    assert store.integrity_check() == "ok"
