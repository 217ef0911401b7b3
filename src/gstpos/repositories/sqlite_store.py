from __future__ import annotations

import logging
import secrets
import shutil
import sqlite3
import string
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from gstpos.domain.errors import ConflictError, NotFoundError, StoreError, ValidationError
from gstpos.repositories.contracts import Page, Search, filter_terms
from gstpos.repositories.schema import COLLECTIONS, DEFAULT_SETTINGS, Collection, Field

log = logging.getLogger("gstpos.store")

_ID_ALPHABET = string.ascii_lowercase + string.digits
_SQL_TYPES = {"number": "REAL", "bool": "INTEGER"}
_SYSTEM_COLUMNS = ("id", "created", "updated")
_SQL_OPS = {"=": "=", "!=": "!=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%fZ")


def _new_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(15))


class SqliteRecordStore:
    """Record store over a local SQLite file, one table per collection."""

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    # ---------- Migrations ----------
    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_collections),
                (2, self._migration_v2_seed_settings),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
                log.info("migration_applied version=%s db=%s", version, self.db_path)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _column_ddl(self, f: Field) -> str:
        ddl = f"{f.name} {_SQL_TYPES.get(f.type, 'TEXT')}"
        if f.required:
            ddl += " NOT NULL"
        if f.type == "relation":
            ddl += f" REFERENCES {f.collection}(id)"
        if f.type == "select":
            options = ", ".join(f"'{v}'" for v in f.values)
            ddl += f" CHECK({f.name} IS NULL OR {f.name} IN ({options}))"
        return ddl

    def _migration_v1_collections(self, cur: sqlite3.Cursor) -> None:
        # relation targets first
        order = ["products", "suppliers", "customers", "invoices", "invoice_items", "stock_movements", "settings"]
        for name in order:
            coll = COLLECTIONS[name]
            columns = [
                "id TEXT PRIMARY KEY",
                "created TEXT NOT NULL",
                "updated TEXT NOT NULL",
            ] + [self._column_ddl(f) for f in coll.fields]
            cur.execute(f"CREATE TABLE IF NOT EXISTS {name} (\n    " + ",\n    ".join(columns) + "\n)")
            for col in coll.unique:
                cur.execute(f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{name}_{col} ON {name} ({col})")
            for col in coll.indexes:
                cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{name}_{col} ON {name} ({col})")

    def _migration_v2_seed_settings(self, cur: sqlite3.Cursor) -> None:
        now = _now()
        for key, value, category in DEFAULT_SETTINGS:
            cur.execute(
                """
                INSERT OR IGNORE INTO settings (id, created, updated, key, value, category)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (_new_id(), now, now, key, value, category),
            )

    # ---------- Encoding ----------
    def _schema(self, collection: str) -> Collection:
        coll = COLLECTIONS.get(collection)
        if coll is None:
            raise ValidationError(f"Unknown collection '{collection}'.")
        return coll

    def _column(self, coll: Collection, name: str) -> Field | None:
        if name in _SYSTEM_COLUMNS:
            return None
        f = coll.get_field(name)
        if f is None:
            raise ValidationError(f"Unknown field '{coll.name}.{name}'.")
        return f

    @staticmethod
    def _encode(f: Field | None, value: object) -> object:
        if value is None:
            return None
        if f is None:
            return str(value)
        if f.type == "number":
            if value == "":
                return None
            return float(value) if isinstance(value, (Decimal, str)) else value
        if f.type == "bool":
            return 1 if value else 0
        if f.type in ("relation", "select"):
            return str(value) or None
        return str(value)

    @staticmethod
    def _decode(f: Field, value: object) -> object:
        if f.type == "bool":
            return bool(value) if value is not None else False
        if f.type == "number":
            return value
        return "" if value is None else value

    def _validated(self, coll: Collection, fields: dict, *, creating: bool) -> dict:
        out: dict = {}
        for name, value in fields.items():
            if name in ("id", "created", "updated", "expand") or coll.get_field(name) is None:
                continue
            f = coll.get_field(name)
            if f.required and value in (None, ""):
                raise ValidationError(f"{coll.name}.{name} is required.")
            if f.type == "select" and value not in (None, "") and value not in f.values:
                raise ValidationError(f"{coll.name}.{name} must be one of {', '.join(f.values)}.")
            out[name] = self._encode(f, value)
        if creating:
            for f in coll.fields:
                if f.required and out.get(f.name) in (None, ""):
                    raise ValidationError(f"{coll.name}.{f.name} is required.")
        return out

    def _row_to_record(self, coll: Collection, columns: list[str], row: tuple) -> dict:
        rec: dict = {}
        for col, value in zip(columns, row):
            f = coll.get_field(col)
            rec[col] = self._decode(f, value) if f else value
        return rec

    @staticmethod
    def _translate(exc: sqlite3.Error, collection: str) -> Exception:
        msg = str(exc)
        if "UNIQUE constraint failed" in msg:
            return ConflictError(f"{collection}: {msg.split(':', 1)[1].strip()} already exists.")
        if isinstance(exc, sqlite3.IntegrityError):
            return ValidationError(f"{collection}: {msg}")
        return StoreError(f"{collection}: {msg}")

    # ---------- CRUD ----------
    def create(self, collection: str, fields: dict) -> dict:
        coll = self._schema(collection)
        values = self._validated(coll, fields, creating=True)
        record_id = str(fields.get("id") or _new_id())
        now = _now()
        cols = ["id", "created", "updated"] + list(values)
        params = [record_id, now, now] + list(values.values())

        conn = self._conn()
        try:
            conn.execute(
                f"INSERT INTO {collection} ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
                params,
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise self._translate(exc, collection) from exc
        finally:
            conn.close()
        return self.get(collection, record_id)

    def get(self, collection: str, record_id: str, expand: Iterable[str] = ()) -> dict:
        coll = self._schema(collection)
        conn = self._conn()
        try:
            cur = conn.execute(f"SELECT * FROM {collection} WHERE id = ?", (str(record_id),))
            row = cur.fetchone()
            columns = [d[0] for d in cur.description]
        finally:
            conn.close()
        if not row:
            raise NotFoundError(f"{collection} record '{record_id}' not found.")
        rec = self._row_to_record(coll, columns, row)
        self._expand(coll, [rec], expand)
        return rec

    def update(self, collection: str, record_id: str, fields: dict) -> dict:
        coll = self._schema(collection)
        values = self._validated(coll, fields, creating=False)
        values["updated"] = _now()
        assignments = ", ".join(f"{k} = ?" for k in values)

        conn = self._conn()
        try:
            cur = conn.execute(
                f"UPDATE {collection} SET {assignments} WHERE id = ?",
                list(values.values()) + [str(record_id)],
            )
            changed = cur.rowcount
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise self._translate(exc, collection) from exc
        finally:
            conn.close()
        if not changed:
            raise NotFoundError(f"{collection} record '{record_id}' not found.")
        return self.get(collection, record_id)

    # ---------- Queries ----------
    def _where(self, coll: Collection, filters: Optional[dict], search: Optional[Search]) -> tuple[str, list]:
        clauses: list[str] = []
        params: list = []
        for name, raw in (filters or {}).items():
            f = self._column(coll, name)
            for op, value in filter_terms(raw):
                if op == "in":
                    options = [self._encode(f, v) for v in value]
                    if not options:
                        clauses.append("0")
                        continue
                    clauses.append(f"{name} IN ({', '.join('?' for _ in options)})")
                    params.extend(options)
                elif op == "~":
                    clauses.append(f"{name} LIKE ?")
                    params.append(f"%{value}%")
                elif value is None or (value == "" and f is not None and f.type == "relation"):
                    clauses.append(f"{name} IS NULL" if op == "=" else f"{name} IS NOT NULL")
                else:
                    clauses.append(f"{name} {_SQL_OPS[op]} ?")
                    params.append(self._encode(f, value))

        if search and search.text:
            ors = []
            for name in search.fields:
                self._column(coll, name)
                ors.append(f"{name} LIKE ?")
                params.append(f"%{search.text}%")
            clauses.append("(" + " OR ".join(ors) + ")")

        return (" WHERE " + " AND ".join(clauses)) if clauses else "", params

    def _order_by(self, coll: Collection, sort: Optional[str]) -> str:
        if not sort:
            return " ORDER BY rowid"
        parts = []
        direction = "ASC"
        for key in sort.split(","):
            key = key.strip()
            direction = "DESC" if key.startswith("-") else "ASC"
            name = key.lstrip("-+")
            self._column(coll, name)
            parts.append(f"{name} {direction}")
        # stable order for records created within the same tick
        parts.append(f"rowid {direction}")
        return " ORDER BY " + ", ".join(parts)

    def _select(
        self,
        collection: str,
        filters: Optional[dict],
        search: Optional[Search],
        sort: Optional[str],
        limit: Optional[int],
        offset: int,
        expand: Iterable[str],
    ) -> tuple[list[dict], int]:
        coll = self._schema(collection)
        where, params = self._where(coll, filters, search)
        sql = f"SELECT * FROM {collection}{where}{self._order_by(coll, sort)}"
        page_params = list(params)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            page_params += [int(limit), int(offset)]

        conn = self._conn()
        try:
            cur = conn.execute(sql, page_params)
            rows = cur.fetchall()
            columns = [d[0] for d in cur.description]
            total = conn.execute(f"SELECT COUNT(*) FROM {collection}{where}", params).fetchone()[0]
        except sqlite3.Error as exc:
            raise self._translate(exc, collection) from exc
        finally:
            conn.close()

        records = [self._row_to_record(coll, columns, r) for r in rows]
        self._expand(coll, records, expand)
        return records, int(total)

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
        page = max(1, int(page))
        per_page = max(1, int(per_page))
        items, total = self._select(collection, filters, search, sort, per_page, (page - 1) * per_page, expand)
        return Page(items=items, page=page, per_page=per_page, total_items=total)

    def list_all(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        search: Optional[Search] = None,
        sort: Optional[str] = None,
        expand: Iterable[str] = (),
    ) -> list[dict]:
        items, _total = self._select(collection, filters, search, sort, None, 0, expand)
        return items

    def first(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        sort: Optional[str] = None,
        expand: Iterable[str] = (),
    ) -> Optional[dict]:
        items, _total = self._select(collection, filters, None, sort, 1, 0, expand)
        return items[0] if items else None

    def _expand(self, coll: Collection, records: list[dict], expand: Iterable[str]) -> None:
        for name in expand:
            f = coll.get_field(name)
            if f is None or f.type != "relation":
                raise ValidationError(f"Cannot expand '{coll.name}.{name}'.")
            for rec in records:
                target_id = rec.get(name)
                if not target_id:
                    continue
                try:
                    related = self.get(f.collection, target_id)
                except NotFoundError:
                    continue
                rec.setdefault("expand", {})[name] = related

    # ---------- Atomic counters ----------
    def increment_setting(self, key: str, by: int = 1) -> int:
        """Increment-and-fetch of an integer setting inside one write transaction."""
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cur.fetchone()
            now = _now()
            if row is None:
                value = int(by)
                cur.execute(
                    "INSERT INTO settings (id, created, updated, key, value, category) VALUES (?, ?, ?, ?, ?, '')",
                    (_new_id(), now, now, key, str(value)),
                )
            else:
                value = int(row[0] or 0) + int(by)
                cur.execute("UPDATE settings SET value = ?, updated = ? WHERE key = ?", (str(value), now, key))
            conn.commit()
            return value
        except sqlite3.Error as exc:
            conn.rollback()
            raise self._translate(exc, "settings") from exc
        finally:
            conn.close()

    def increment_field(self, collection: str, record_id: str, field: str, delta: float) -> float:
        coll = self._schema(collection)
        f = self._column(coll, field)
        if f is None or f.type != "number":
            raise ValidationError(f"{collection}.{field} is not a number field.")
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute(
                f"UPDATE {collection} SET {field} = COALESCE({field}, 0) + ?, updated = ? WHERE id = ?",
                (float(delta), _now(), str(record_id)),
            )
            if cur.rowcount == 0:
                conn.rollback()
                raise NotFoundError(f"{collection} record '{record_id}' not found.")
            cur.execute(f"SELECT {field} FROM {collection} WHERE id = ?", (str(record_id),))
            value = float(cur.fetchone()[0])
            conn.commit()
            return value
        except sqlite3.Error as exc:
            conn.rollback()
            raise self._translate(exc, collection) from exc
        finally:
            conn.close()

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"
