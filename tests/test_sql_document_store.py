"""
SQL document store tests.

Covers CRUD, the constrained query model (equality + one array membership),
array_union idempotence and bounded write batches.
"""

from datetime import datetime, timedelta, timezone

import pytest

from visita.core.exceptions import NotFoundError
from visita.store import (
    ARRAY_CONTAINS,
    EQUALS,
    BatchLimitExceeded,
    Filter,
    UnsupportedQueryError,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _note(store, roles, minutes, **extra):
    return store.create(
        "notifications",
        {"recipients": {"roles": roles, "dioceses": ["tagbilaran"]}, **extra},
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestCrud:
    def test_create_and_get(self, store):
        doc_id = store.create("churches", {"name": "Loboc", "status": "draft"})
        doc = store.get("churches", doc_id)
        assert doc == {"id": doc_id, "name": "Loboc", "status": "draft"}

    def test_create_with_explicit_id(self, store):
        assert store.create("churches", {"name": "Dauis"}, doc_id="dauis") == "dauis"
        assert store.get("churches", "dauis")["name"] == "Dauis"

    def test_get_missing(self, store):
        assert store.get("churches", "nope") is None

    def test_collections_are_separate(self, store):
        store.create("churches", {"name": "A"}, doc_id="x")
        assert store.get("users", "x") is None

    def test_update_merges(self, store):
        store.create("churches", {"name": "Loboc", "status": "draft"}, doc_id="loboc")
        doc = store.update("churches", "loboc", {"status": "pending"})
        assert doc == {"id": "loboc", "name": "Loboc", "status": "pending"}
        assert store.query("churches", [Filter("status", EQUALS, "pending")])[0]["id"] == "loboc"
        assert store.query("churches", [Filter("status", EQUALS, "draft")]) == []

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update("churches", "ghost", {"status": "pending"})

    def test_delete(self, store):
        store.create("churches", {"name": "Loboc"}, doc_id="loboc")
        assert store.delete("churches", "loboc") is True
        assert store.delete("churches", "loboc") is False
        assert store.get("churches", "loboc") is None


class TestQuery:
    def test_array_contains_on_nested_path(self, store):
        a = _note(store, ["parish"], 1)
        _note(store, ["diocesan_office"], 2)
        ids = [d["id"] for d in store.query("notifications", [Filter("recipients.roles", ARRAY_CONTAINS, "parish")])]
        assert ids == [a]

    def test_newest_first_and_limit(self, store):
        old = _note(store, ["parish"], 1)
        mid = _note(store, ["parish"], 2)
        new = _note(store, ["parish"], 3)
        docs = store.query("notifications", [Filter("recipients.roles", ARRAY_CONTAINS, "parish")])
        assert [d["id"] for d in docs] == [new, mid, old]
        limited = store.query("notifications", [Filter("recipients.roles", ARRAY_CONTAINS, "parish")], limit=2)
        assert [d["id"] for d in limited] == [new, mid]

    def test_ascending(self, store):
        old = _note(store, ["parish"], 1)
        new = _note(store, ["parish"], 2)
        docs = store.query("notifications", [], descending=False)
        assert [d["id"] for d in docs] == [old, new]

    def test_equality_does_not_match_array_items(self, store):
        _note(store, ["parish"], 1)
        assert store.query("notifications", [Filter("recipients.roles", EQUALS, "parish")]) == []

    def test_equality_and_one_array_filter_combine(self, store):
        hit = _note(store, ["parish"], 1, type="church_approved")
        _note(store, ["parish"], 2, type="revision_requested")
        docs = store.query("notifications", [
            Filter("recipients.roles", ARRAY_CONTAINS, "parish"),
            Filter("type", EQUALS, "church_approved"),
        ])
        assert [d["id"] for d in docs] == [hit]

    def test_values_keep_their_type(self, store):
        store.create("feedback", {"rating": 5}, doc_id="num")
        store.create("feedback", {"rating": "5"}, doc_id="text")
        assert [d["id"] for d in store.query("feedback", [Filter("rating", EQUALS, 5)])] == ["num"]

    def test_two_array_filters_rejected(self, store):
        with pytest.raises(UnsupportedQueryError):
            store.query("notifications", [
                Filter("recipients.roles", ARRAY_CONTAINS, "parish"),
                Filter("recipients.dioceses", ARRAY_CONTAINS, "tagbilaran"),
            ])

    def test_unsupported_order_rejected(self, store):
        with pytest.raises(UnsupportedQueryError):
            store.query("notifications", [], order_by="priority")

    def test_unknown_operator_rejected(self):
        with pytest.raises(UnsupportedQueryError):
            Filter("type", "!=", "x")


class TestArrayUnion:
    def test_appends_once(self, store):
        nid = _note(store, ["parish"], 1, readBy=[])
        store.array_union("notifications", nid, "readBy", ["u1"])
        doc = store.array_union("notifications", nid, "readBy", ["u1", "u2"])
        assert doc["readBy"] == ["u1", "u2"]
        assert [d["id"] for d in store.query("notifications", [Filter("readBy", ARRAY_CONTAINS, "u2")])] == [nid]

    def test_missing_document(self, store):
        with pytest.raises(NotFoundError):
            store.array_union("notifications", "ghost", "readBy", ["u1"])


class TestBatch:
    def test_commit_applies_all(self, store):
        a = store.create("notifications", {"x": 1})
        b = store.create("notifications", {"x": 2})
        batch = store.batch()
        batch.delete("notifications", a).update("notifications", b, {"x": 3}).set("notifications", "c", {"x": 4})
        assert batch.commit() == 3
        assert store.get("notifications", a) is None
        assert store.get("notifications", b)["x"] == 3
        assert store.get("notifications", "c") == {"id": "c", "x": 4}

    def test_limit_enforced(self, store):
        batch = store.batch()
        for i in range(store.max_batch_writes + 1):
            batch.delete("notifications", f"n{i}")
        with pytest.raises(BatchLimitExceeded):
            batch.commit()

    def test_failed_batch_rolls_back(self, store):
        a = store.create("notifications", {"x": 1})
        batch = store.batch()
        batch.delete("notifications", a).update("notifications", "ghost", {"x": 2})
        with pytest.raises(NotFoundError):
            batch.commit()
        assert store.get("notifications", a) is not None
