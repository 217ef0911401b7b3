from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

FILTER_OPS = ("=", "!=", "<", "<=", ">", ">=", "~", "in")


@dataclass(frozen=True)
class Page:
    items: list[dict]
    page: int
    per_page: int
    total_items: int

    @property
    def total_pages(self) -> int:
        if self.per_page <= 0:
            return 0
        return math.ceil(self.total_items / self.per_page)


@dataclass(frozen=True)
class Search:
    """Case-insensitive substring match of ``text`` against any of ``fields``."""

    fields: tuple[str, ...]
    text: str


def split_filter(value: object) -> tuple[str, object]:
    """``{"f": v}`` means equality, ``{"f": (op, v)}`` an explicit operator."""
    if isinstance(value, tuple) and len(value) == 2 and value[0] in FILTER_OPS:
        return value[0], value[1]
    return "=", value


def filter_terms(value: object) -> list[tuple[str, object]]:
    """Like ``split_filter`` but also accepts a list of ``(op, value)`` terms for one field."""
    if isinstance(value, list) and value and all(
        isinstance(v, tuple) and len(v) == 2 and v[0] in FILTER_OPS for v in value
    ):
        return list(value)
    return [split_filter(value)]


class RecordStore(Protocol):
    """Collection CRUD the billing core needs from the backing record store."""

    def create(self, collection: str, fields: dict) -> dict: ...
    def get(self, collection: str, record_id: str, expand: Iterable[str] = ()) -> dict: ...
    def update(self, collection: str, record_id: str, fields: dict) -> dict: ...
    def list(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        search: Optional[Search] = None,
        sort: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
        expand: Iterable[str] = (),
    ) -> Page: ...
    def list_all(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        search: Optional[Search] = None,
        sort: Optional[str] = None,
        expand: Iterable[str] = (),
    ) -> list[dict]: ...
    def first(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        sort: Optional[str] = None,
        expand: Iterable[str] = (),
    ) -> Optional[dict]: ...
    def increment_setting(self, key: str, by: int = 1) -> int: ...
    def increment_field(self, collection: str, record_id: str, field: str, delta: float) -> float: ...
