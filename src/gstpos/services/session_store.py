from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

from gstpos.domain.cart import Cart
from gstpos.domain.errors import ValidationError

log = logging.getLogger("gstpos.sessions")

_SESSION_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class CartSessionStore:
    """Keeps one cart snapshot per checkout session so a reload resumes the sale."""

    def __init__(self, sessions_dir: Path | str):
        self.sessions_dir = Path(sessions_dir)

    def _path(self, session_id: str) -> Path:
        if not _SESSION_ID.match(session_id or ""):
            raise ValidationError("Session id may only contain letters, digits, '_' and '-'.")
        return self.sessions_dir / f"cart_{session_id}.json"

    def save(self, session_id: str, cart: Cart) -> Path:
        path = self._path(session_id)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(cart.to_snapshot(), ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)
        return path

    def load(self, session_id: str) -> Cart:
        path = self._path(session_id)
        if not path.exists():
            return Cart()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            log.warning("cart_snapshot_unreadable session=%s error=%s", session_id, e)
            return Cart()
        return Cart.from_snapshot(data)

    def discard(self, session_id: str) -> None:
        self._path(session_id).unlink(missing_ok=True)
