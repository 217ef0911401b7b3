from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Iterable, Optional

import requests

from gstpos.domain.errors import ConflictError, NotFoundError, StoreError, ValidationError
from gstpos.repositories.contracts import Page, Search, filter_terms

log = logging.getLogger("gstpos.store")

_FULL_LIST_PAGE = 200


def _literal(value: object) -> str:
    if value is None:
        return '""'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    # json string escaping matches the server's quoted literal syntax
    return json.dumps(str(value), ensure_ascii=False)


def render_filter(filters: Optional[dict] = None, search: Optional[Search] = None) -> str:
    """Render ``{field: value | (op, value)}`` plus a search into the server's filter syntax."""
    clauses: list[str] = []
    for name, raw in (filters or {}).items():
        for op, value in filter_terms(raw):
            if op == "in":
                options = [f"{name}={_literal(v)}" for v in value]
                clauses.append("(" + " || ".join(options) + ")" if options else "false")
            else:
                clauses.append(f"{name}{op}{_literal(value)}")
    if search and search.text:
        ors = [f"{name}~{_literal(search.text)}" for name in search.fields]
        clauses.append("(" + " || ".join(ors) + ")")
    return " && ".join(clauses)


class HttpRecordStore:
    """
    Record store client for a PocketBase-style REST API.

    Every call is a single request; errors are mapped onto the domain error
    taxonomy and never retried here.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = token

    def _url(self, collection: str, record_id: str | None = None) -> str:
        url = f"{self.base_url}/api/collections/{collection}/records"
        return f"{url}/{record_id}" if record_id else url

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            log.error("store_request_failed method=%s url=%s error=%s", method, url, e)
            raise StoreError(f"Record store unreachable: {e}") from e

        if r.status_code >= 400:
            raise self._translate(r)
        if not r.content:
            return {}
        try:
            return r.json()
        except ValueError as e:
            raise StoreError(f"Record store returned invalid JSON from {url}.") from e

    @staticmethod
    def _translate(r) -> Exception:
        try:
            body = r.json()
        except ValueError:
            body = {}
        message = body.get("message") or f"HTTP {r.status_code}"
        data = body.get("data") or {}
        if r.status_code == 404:
            return NotFoundError(message)
        if r.status_code == 400:
            details = [
                f"{field}: {err.get('message', '')}".strip()
                for field, err in data.items()
                if isinstance(err, dict)
            ]
            text = message + (" " + "; ".join(details) if details else "")
            codes = {err.get("code") for err in data.values() if isinstance(err, dict)}
            if "validation_not_unique" in codes:
                return ConflictError(text)
            return ValidationError(text)
        return StoreError(message)

    @staticmethod
    def _body(fields: dict) -> dict:
        out = {}
        for k, v in fields.items():
            if k in ("created", "updated", "expand"):
                continue
            out[k] = float(v) if isinstance(v, Decimal) else v
        return out

    def create(self, collection: str, fields: dict) -> dict:
        return self._request("POST", self._url(collection), json=self._body(fields))

    def get(self, collection: str, record_id: str, expand: Iterable[str] = ()) -> dict:
        params = {"expand": ",".join(expand)} if expand else None
        return self._request("GET", self._url(collection, record_id), params=params)

    def update(self, collection: str, record_id: str, fields: dict) -> dict:
        return self._request("PATCH", self._url(collection, record_id), json=self._body(fields))

    def _list_params(
        self,
        filters: Optional[dict],
        search: Optional[Search],
        sort: Optional[str],
        page: int,
        per_page: int,
        expand: Iterable[str],
    ) -> dict:
        params: dict = {"page": page, "perPage": per_page}
        rendered = render_filter(filters, search)
        if rendered:
            params["filter"] = rendered
        if sort:
            params["sort"] = sort
        if expand:
            params["expand"] = ",".join(expand)
        return params

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
    ) -> Page:
        params = self._list_params(filters, search, sort, page, per_page, expand)
        data = self._request("GET", self._url(collection), params=params)
        return Page(
            items=list(data.get("items") or []),
            page=int(data.get("page", page)),
            per_page=int(data.get("perPage", per_page)),
            total_items=int(data.get("totalItems", 0)),
        )

    def list_all(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        search: Optional[Search] = None,
        sort: Optional[str] = None,
        expand: Iterable[str] = (),
    ) -> list[dict]:
        items: list[dict] = []
        page = 1
        while True:
            result = self.list(
                collection, filters, search=search, sort=sort, page=page, per_page=_FULL_LIST_PAGE, expand=expand
            )
            items.extend(result.items)
            if not result.items or page >= result.total_pages:
                return items
            page += 1

    def first(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        sort: Optional[str] = None,
        expand: Iterable[str] = (),
    ) -> Optional[dict]:
        result = self.list(collection, filters, sort=sort, page=1, per_page=1, expand=expand)
        return result.items[0] if result.items else None

    def increment_setting(self, key: str, by: int = 1) -> int:
        """
        Read-then-write of an integer setting.

        The REST API offers no increment for text fields, so two clients
        calling this concurrently can both observe the same value.
        """
        row = self.first("settings", {"key": key})
        if row is None:
            value = int(by)
            self.create("settings", {"key": key, "value": str(value), "category": ""})
            return value
        value = int(row.get("value") or 0) + int(by)
        self.update("settings", row["id"], {"value": str(value)})
        return value

    def increment_field(self, collection: str, record_id: str, field: str, delta: float) -> float:
        # "field+" is applied server side in the same write
        rec = self._request("PATCH", self._url(collection, record_id), json={f"{field}+": float(delta)})
        return float(rec.get(field) or 0)
