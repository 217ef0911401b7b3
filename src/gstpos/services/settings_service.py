from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from gstpos.domain.errors import NotFoundError, ValidationError
from gstpos.domain.gst import DEFAULT_CGST_PCT, DEFAULT_SGST_PCT
from gstpos.domain.money import to_decimal

log = logging.getLogger("gstpos.settings")


class SettingsService:
    """Flat key -> value settings map, fetched once and cached until invalidated."""

    def __init__(self, store):
        self.store = store
        self._cache: Optional[dict[str, str]] = None

    def all(self) -> dict[str, str]:
        if self._cache is None:
            rows = self.store.list_all("settings")
            self._cache = {str(r["key"]): str(r.get("value") or "") for r in rows}
        return dict(self._cache)

    def get(self, key: str, fallback: str = "") -> str:
        value = self.all().get(key)
        return fallback if value in (None, "") else value

    def invalidate(self) -> None:
        self._cache = None

    def update(self, key: str, value: object) -> None:
        key = (key or "").strip()
        if not key:
            raise ValidationError("Setting key is required.")
        row = self.store.first("settings", {"key": key})
        if row is None:
            raise NotFoundError(f"Setting '{key}' not found.")
        self.store.update("settings", row["id"], {"value": str(value)})
        self.invalidate()
        log.info("setting_updated key=%s", key)

    # ---------- Typed accessors ----------
    def invoice_prefix(self) -> str:
        return self.get("invoice_prefix", "GST")

    def financial_year(self) -> str:
        return self.get("financial_year", "2025/26")

    def invoice_counter(self) -> int:
        try:
            return int(self.get("invoice_counter", "0"))
        except ValueError as e:
            raise ValidationError("Setting 'invoice_counter' is not an integer.") from e

    def _rate(self, key: str, default: Decimal) -> Decimal:
        try:
            rate = to_decimal(self.get(key, str(default)))
        except ValueError:
            log.warning("setting_invalid key=%s using_default=%s", key, default)
            return default
        return rate if rate > 0 else default

    def default_cgst(self) -> Decimal:
        return self._rate("default_cgst", DEFAULT_CGST_PCT)

    def default_sgst(self) -> Decimal:
        return self._rate("default_sgst", DEFAULT_SGST_PCT)

    def default_state(self) -> str:
        return self.get("default_state", "Madhya Pradesh")
