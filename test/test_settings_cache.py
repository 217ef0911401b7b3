from decimal import Decimal
from pathlib import Path

import pytest

from gstpos.domain.errors import NotFoundError
from gstpos.repositories.sqlite_store import SqliteRecordStore
from gstpos.services.settings_service import SettingsService


class CountingStore(SqliteRecordStore):
    settings_reads = 0

    def list_all(self, collection, *args, **kwargs):
        if collection == "settings":
            self.settings_reads += 1
        return super().list_all(collection, *args, **kwargs)


def _settings(tmp_path: Path):
    store = CountingStore(tmp_path / "settings.db")
    store.init_db()
    return store, SettingsService(store)


def test_settings_are_fetched_once_per_session(tmp_path: Path):
    store, settings = _settings(tmp_path)

    assert settings.invoice_prefix() == "GST"
    assert settings.financial_year() == "2025/26"
    assert settings.invoice_counter() == 0
    assert settings.default_state() == "Madhya Pradesh"
    assert store.settings_reads == 1


def test_update_invalidates_cache(tmp_path: Path):
    store, settings = _settings(tmp_path)
    settings.all()

    settings.update("default_cgst", "6")

    assert settings.default_cgst() == Decimal("6")
    assert store.settings_reads == 2


def test_external_writes_need_explicit_invalidate(tmp_path: Path):
    store, settings = _settings(tmp_path)
    assert settings.get("shop_name") == "-"

    row = store.first("settings", {"key": "shop_name"})
    store.update("settings", row["id"], {"value": "Harda Sarees"})
    assert settings.get("shop_name") == "-"

    settings.invalidate()
    assert settings.get("shop_name") == "Harda Sarees"


def test_bad_rates_fall_back_to_default(tmp_path: Path):
    _store, settings = _settings(tmp_path)
    settings.update("default_sgst", "abc")
    settings.update("default_cgst", "0")

    assert settings.default_sgst() == Decimal("2.5")
    assert settings.default_cgst() == Decimal("2.5")
    assert settings.get("missing_key", "fallback") == "fallback"


def test_update_unknown_key_raises(tmp_path: Path):
    _store, settings = _settings(tmp_path)

    with pytest.raises(NotFoundError):
        settings.update("no_such_setting", "1")
