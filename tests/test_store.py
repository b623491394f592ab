"""Tests for BookRecord parsing and the key-value stores."""

from __future__ import annotations

import json

import pytest

from shelfkeeper.core.models import BookRecord, Inventory
from shelfkeeper.core.store import (
    DETAILS_KEY,
    ISBN_LIST_KEY,
    RATINGS_KEY,
    MemoryStore,
    SQLiteStore,
)


def _inventory() -> Inventory:
    return Inventory(
        isbns=["0306406152", "9780306406157", "0306406152"],
        metadata={
            "0306406152": BookRecord(title="Signal Processing", authors=["Ann Author"]),
            "9780306406157": BookRecord(),
        },
        ratings={"0306406152": 4, "9780306406157": 0},
    )


# ===========================================================================
# BookRecord
# ===========================================================================


class TestBookRecord:
    def test_parses_title_and_authors(self):
        payload = {
            "ISBN:0306406152": {
                "title": "Signal Processing",
                "authors": [{"name": "Ann Author", "url": "https://x"}],
                "publishers": [{"name": "Ignored"}],
            }
        }
        record = BookRecord.from_response("0306406152", payload)
        assert record == BookRecord(title="Signal Processing", authors=["Ann Author"])

    def test_missing_entry_is_empty_record(self):
        assert BookRecord.from_response("0306406152", {}) == BookRecord()

    def test_entry_for_other_isbn_is_ignored(self):
        payload = {"ISBN:123456789X": {"title": "Other"}}
        assert BookRecord.from_response("0306406152", payload) == BookRecord()

    def test_optional_fields(self):
        payload = {"ISBN:0306406152": {"title": "Only Title"}}
        record = BookRecord.from_response("0306406152", payload)
        assert record.title == "Only Title"
        assert record.authors is None

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            "text",
            {"ISBN:0306406152": "nope"},
            {"ISBN:0306406152": {"title": 12}},
            {"ISBN:0306406152": {"authors": "Ann"}},
            {"ISBN:0306406152": {"authors": [{"key": "/authors/OL1A"}]}},
        ],
    )
    def test_malformed_payload_raises(self, payload):
        with pytest.raises(ValueError):
            BookRecord.from_response("0306406152", payload)

    def test_to_response_uses_books_api_shape(self):
        record = BookRecord(title="T", authors=["A", "B"])
        assert record.to_response("0306406152") == {
            "ISBN:0306406152": {"title": "T", "authors": [{"name": "A"}, {"name": "B"}]}
        }

    def test_empty_record_serialises_to_empty_object(self):
        assert BookRecord().to_response("0306406152") == {}


# ===========================================================================
# MemoryStore
# ===========================================================================


class TestMemoryStore:
    def test_empty_store_loads_empty_inventory(self):
        assert MemoryStore().load() == Inventory()

    def test_save_then_load(self):
        store = MemoryStore()
        inventory = _inventory()
        store.save(inventory)
        assert store.load() == inventory

    def test_save_writes_three_keys(self):
        store = MemoryStore()
        store.save(_inventory())
        assert set(store.values) == {ISBN_LIST_KEY, DETAILS_KEY, RATINGS_KEY}
        assert json.loads(store.values[ISBN_LIST_KEY]) == [
            "0306406152",
            "9780306406157",
            "0306406152",
        ]
        details = json.loads(store.values[DETAILS_KEY])
        assert details["0306406152"]["ISBN:0306406152"]["title"] == "Signal Processing"
        assert details["9780306406157"] == {}

    def test_save_overwrites(self):
        store = MemoryStore()
        store.save(_inventory())
        store.save(Inventory(isbns=["123456789X"], ratings={"123456789X": 2}))
        loaded = store.load()
        assert loaded.isbns == ["123456789X"]
        assert loaded.metadata == {}
        assert loaded.ratings == {"123456789X": 2}

    def test_corrupt_ratings_do_not_affect_other_fields(self):
        store = MemoryStore()
        store.save(_inventory())
        store.values[RATINGS_KEY] = "{not json"
        loaded = store.load()
        assert loaded.isbns == _inventory().isbns
        assert loaded.metadata == _inventory().metadata
        assert loaded.ratings == {}

    def test_deeply_nested_field_defaults(self):
        store = MemoryStore({ISBN_LIST_KEY: '["0306406152"]', RATINGS_KEY: "[" * 100000})
        loaded = store.load()
        assert loaded.isbns == ["0306406152"]
        assert loaded.ratings == {}

    @pytest.mark.parametrize(
        "key, raw",
        [
            (ISBN_LIST_KEY, '{"a": 1}'),
            (ISBN_LIST_KEY, "[1, 2]"),
            (DETAILS_KEY, "[]"),
            (DETAILS_KEY, '{"0306406152": {"ISBN:0306406152": {"title": 5}}}'),
            (RATINGS_KEY, '{"0306406152": "five"}'),
            (RATINGS_KEY, '{"0306406152": true}'),
            (RATINGS_KEY, "null"),
        ],
    )
    def test_wrong_shape_defaults_field(self, key, raw):
        store = MemoryStore()
        store.save(_inventory())
        store.values[key] = raw
        loaded = store.load()
        expected = _inventory()
        if key == ISBN_LIST_KEY:
            expected.isbns = []
        elif key == DETAILS_KEY:
            expected.metadata = {}
        else:
            expected.ratings = {}
        assert loaded == expected

    def test_reads_raw_books_api_responses(self):
        store = MemoryStore(
            {
                ISBN_LIST_KEY: '["0306406152"]',
                DETAILS_KEY: json.dumps(
                    {
                        "0306406152": {
                            "ISBN:0306406152": {
                                "title": "Signal Processing",
                                "authors": [{"name": "Ann Author"}],
                                "number_of_pages": 300,
                            }
                        }
                    }
                ),
            }
        )
        loaded = store.load()
        assert loaded.metadata["0306406152"].authors == ["Ann Author"]
        assert loaded.ratings == {}


# ===========================================================================
# SQLiteStore
# ===========================================================================


class TestSQLiteStore:
    def test_round_trip_survives_reopen(self, tmp_path):
        db = tmp_path / "shelf.db"
        store = SQLiteStore(db)
        store.save(_inventory())
        store.close()

        reopened = SQLiteStore(db)
        assert reopened.load() == _inventory()
        reopened.close()

    def test_new_database_is_empty(self, tmp_path):
        store = SQLiteStore(tmp_path / "fresh.db")
        assert store.load() == Inventory()
        store.close()

    def test_default_path_uses_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
        store = SQLiteStore()
        assert store.db_path == tmp_path / "data" / "shelfkeeper.db"
        assert store.db_path.parent.is_dir()
        store.close()

    def test_corrupt_field_in_database(self, tmp_path):
        store = SQLiteStore(tmp_path / "shelf.db")
        store.save(_inventory())
        store._put_many({RATINGS_KEY: "]["})
        loaded = store.load()
        assert loaded.isbns == _inventory().isbns
        assert loaded.ratings == {}
        store.close()
