"""Key-value persistence for the inventory."""

from __future__ import annotations

import json
import os
import sqlite3
from pathlib import Path
from typing import Callable, TypeVar

import structlog

from .models import BookRecord, Inventory

log = structlog.get_logger()

ISBN_LIST_KEY = "isbnList"
DETAILS_KEY = "bookDetails"
RATINGS_KEY = "ratings"

T = TypeVar("T")


def _parse_isbn_list(data: object) -> list[str]:
    if not isinstance(data, list) or not all(isinstance(i, str) for i in data):
        raise ValueError("expected a list of strings")
    return data


def _parse_details(data: object) -> dict[str, BookRecord]:
    if not isinstance(data, dict):
        raise ValueError("expected an object")
    return {isbn: BookRecord.from_response(isbn, body) for isbn, body in data.items()}


def _parse_ratings(data: object) -> dict[str, int]:
    if not isinstance(data, dict):
        raise ValueError("expected an object")
    for isbn, rating in data.items():
        if not isinstance(rating, int) or isinstance(rating, bool):
            raise ValueError(f"rating for {isbn} is not an integer")
    return data


class KeyValueStore:
    """Load and save an Inventory as three independent JSON values.

    Subclasses provide raw string access through ``_get`` and ``_put_many``.
    """

    def _get(self, key: str) -> str | None:
        raise NotImplementedError

    def _put_many(self, items: dict[str, str]) -> None:
        raise NotImplementedError

    def _read(self, key: str, parse: Callable[[object], T], default: T) -> T:
        raw = self._get(key)
        if raw is None:
            return default
        try:
            return parse(json.loads(raw))
        except (ValueError, RecursionError) as e:
            # json.JSONDecodeError is a ValueError too
            log.warning("store_field_invalid", key=key, error=str(e))
            return default

    def load(self) -> Inventory:
        """Read the inventory; each unreadable field falls back to empty."""
        inventory = Inventory(
            isbns=self._read(ISBN_LIST_KEY, _parse_isbn_list, []),
            metadata=self._read(DETAILS_KEY, _parse_details, {}),
            ratings=self._read(RATINGS_KEY, _parse_ratings, {}),
        )
        log.debug("store_loaded", books=len(inventory.isbns))
        return inventory

    def save(self, inventory: Inventory) -> None:
        """Overwrite all three fields with the current inventory."""
        details = {
            isbn: record.to_response(isbn) for isbn, record in inventory.metadata.items()
        }
        self._put_many(
            {
                ISBN_LIST_KEY: json.dumps(inventory.isbns),
                DETAILS_KEY: json.dumps(details),
                RATINGS_KEY: json.dumps(inventory.ratings),
            }
        )
        log.debug("store_saved", books=len(inventory.isbns))


class MemoryStore(KeyValueStore):
    """In-process store; ``values`` holds the raw serialized strings."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(values or {})

    def _get(self, key: str) -> str | None:
        return self.values.get(key)

    def _put_many(self, items: dict[str, str]) -> None:
        self.values.update(items)


class SQLiteStore(KeyValueStore):
    """Persist the inventory in a local SQLite database."""

    def __init__(self, db_path: Path | None = None):
        if db_path is None:
            data_dir = Path(os.environ.get("DATA_DIR", ".data"))
            data_dir.mkdir(parents=True, exist_ok=True)
            db_path = data_dir / "shelfkeeper.db"

        self.db_path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute(
            "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT)"
        )
        self._conn.commit()

    def _get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _put_many(self, items: dict[str, str]) -> None:
        with self._conn:
            self._conn.executemany(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                list(items.items()),
            )

    def close(self) -> None:
        self._conn.close()
