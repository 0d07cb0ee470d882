#!/usr/bin/env python3
"""
Document store smoke-check over a temporary SQLite file.

What it validates:
- get/set/add/update/delete, merge writes and missing-document errors
- increment and batch_update semantics
- query filters (==, !=, <, >=, in, array-contains), ordering and limit
- invalid fields/operators are rejected
- transaction rollback leaves no partial writes

Run:
  python3 scripts/smoke_document_store.py
"""

from __future__ import annotations

import asyncio
import shutil
import sys
import tempfile
from pathlib import Path


def _setup_import_path() -> None:
    for candidate in (
        Path(__file__).resolve().parents[1] / "src",
        Path.cwd() / "src",
    ):
        if candidate.exists():
            sys.path.insert(0, str(candidate))
            return


_setup_import_path()

from database import DocumentNotFoundError, DocumentStore, InvalidQueryError  # noqa: E402


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


async def _check_crud(store: DocumentStore) -> None:
    _assert(await store.get("things", "missing") is None, "missing doc must read as None")

    await store.set("things", "a", {"name": "alpha", "count": 1})
    _assert(await store.get("things", "a") == {"name": "alpha", "count": 1}, "set must persist data")

    await store.set("things", "a", {"color": "red"}, merge=True)
    _assert(
        await store.get("things", "a") == {"name": "alpha", "count": 1, "color": "red"},
        "merge set must keep existing fields",
    )
    await store.set("things", "a", {"name": "replaced"})
    _assert(await store.get("things", "a") == {"name": "replaced"}, "plain set must overwrite")

    await store.set("things", "fresh", {"x": 1}, merge=True)
    _assert(await store.get("things", "fresh") == {"x": 1}, "merge set must create missing docs")

    new_id = await store.add("things", {"name": "generated"})
    _assert(len(new_id) == 20, f"generated ids must be 20 hex chars, got {new_id!r}")
    _assert((await store.get("things", new_id) or {}).get("name") == "generated", "add must persist data")

    updated = await store.update("things", "a", {"count": 7})
    _assert(updated == {"name": "replaced", "count": 7}, f"update must return merged doc, got {updated}")

    try:
        await store.update("things", "ghost", {"count": 1})
    except DocumentNotFoundError:
        pass
    else:
        raise AssertionError("update of a missing doc must raise DocumentNotFoundError")
    _assert(await store.get("things", "ghost") is None, "failed update must not create the doc")

    _assert(await store.delete("things", "fresh") is True, "delete must report removal")
    _assert(await store.delete("things", "fresh") is False, "second delete must report nothing removed")
    _assert(await store.get("things", "fresh") is None, "deleted doc must be gone")

    # Collections are independent namespaces.
    await store.set("other", "a", {"name": "elsewhere"})
    _assert((await store.get("things", "a") or {}).get("name") == "replaced", "collections must not collide")


async def _check_increment_and_batch(store: DocumentStore) -> None:
    await store.set("counters", "c1", {"used": 2, "label": "one"})
    result = await store.increment("counters", "c1", {"used": 1, "fresh": 3}, extra={"touched": True})
    _assert(result == {"used": 3, "label": "one", "fresh": 3, "touched": True}, f"increment result: {result}")
    _assert(await store.increment("counters", "nope", {"used": 1}) is None, "missing doc increment must be None")
    _assert(await store.get("counters", "nope") is None, "increment must not create docs")

    await store.set("counters", "c2", {"used": 5})
    changed = await store.batch_update(
        "counters",
        {"c1": {"used": 0}, "c2": {"used": 0}, "c3": {"used": 0}},
    )
    _assert(changed == 2, f"batch_update must skip missing docs, changed={changed}")
    _assert((await store.get("counters", "c1") or {}).get("used") == 0, "c1 must be reset")
    _assert((await store.get("counters", "c2") or {}).get("used") == 0, "c2 must be reset")
    _assert(await store.get("counters", "c3") is None, "batch_update must not create docs")


async def _check_queries(store: DocumentStore) -> None:
    rows = [
        ("m1", {"status": "ACTIVE", "isActive": True, "rank": 3, "tags": ["food", "art"], "createdAt": "2026-01-03"}),
        ("m2", {"status": "ACTIVE", "isActive": False, "rank": 1, "tags": ["food"], "createdAt": "2026-01-01"}),
        ("m3", {"status": "DRAFT", "isActive": False, "rank": 2, "tags": [], "createdAt": "2026-01-02"}),
        ("m4", {"status": "PAUSED", "isActive": False, "rank": 5, "createdAt": "2026-01-04", "meta": {"city": "Kyiv"}}),
    ]
    for doc_id, data in rows:
        await store.set("items", doc_id, data)

    def ids(docs) -> list[str]:
        return [doc.id for doc in docs]

    active = await store.query("items", [("status", "==", "ACTIVE")], order_by="rank")
    _assert(ids(active) == ["m2", "m1"], f"== with order_by: {ids(active)}")

    flagged = await store.query("items", [("isActive", "==", True)])
    _assert(ids(flagged) == ["m1"], f"bool equality: {ids(flagged)}")

    not_draft = await store.query("items", [("status", "!=", "DRAFT")], order_by="rank", descending=True)
    _assert(ids(not_draft) == ["m4", "m1", "m2"], f"!= descending: {ids(not_draft)}")

    low = await store.query("items", [("rank", "<", 3)], order_by="rank")
    _assert(ids(low) == ["m2", "m3"], f"< filter: {ids(low)}")
    high = await store.query("items", [("rank", ">=", 3)], order_by="rank")
    _assert(ids(high) == ["m1", "m4"], f">= filter: {ids(high)}")

    some = await store.query("items", [("status", "in", ["DRAFT", "PAUSED"])], order_by="rank")
    _assert(ids(some) == ["m3", "m4"], f"in filter: {ids(some)}")
    _assert(await store.query("items", [("status", "in", [])]) == [], "empty in must match nothing")

    tagged = await store.query("items", [("tags", "array-contains", "food")], order_by="createdAt")
    _assert(ids(tagged) == ["m2", "m1"], f"array-contains: {ids(tagged)}")

    nested = await store.query("items", [("meta.city", "==", "Kyiv")])
    _assert(ids(nested) == ["m4"], f"dotted field: {ids(nested)}")

    combined = await store.query(
        "items",
        [("status", "==", "ACTIVE"), ("tags", "array-contains", "art")],
    )
    _assert(ids(combined) == ["m1"], f"filters must AND together: {ids(combined)}")

    newest = await store.query("items", order_by="createdAt", descending=True, limit=2)
    _assert(ids(newest) == ["m4", "m1"], f"limit: {ids(newest)}")
    _assert(newest[0].data.get("meta") == {"city": "Kyiv"}, "query must decode document data")

    _assert(sorted(await store.list_ids("items")) == ["m1", "m2", "m3", "m4"], "list_ids must list the collection")

    for bad_filters in ([("rank;DROP", "==", 1)], [("rank", "~", 1)]):
        try:
            await store.query("items", bad_filters)
        except InvalidQueryError:
            pass
        else:
            raise AssertionError(f"{bad_filters} must raise InvalidQueryError")


async def _check_transaction(store: DocumentStore) -> None:
    await store.set("tx", "keep", {"value": 1})
    try:
        async with store.transaction() as tx:
            await tx.set("tx", "keep", {"value": 2})
            await tx.set("tx", "temp", {"value": 3})
            raise RuntimeError("abort")
    except RuntimeError:
        pass
    _assert(await store.get("tx", "keep") == {"value": 1}, "rollback must restore the original doc")
    _assert(await store.get("tx", "temp") is None, "rollback must discard new docs")

    async with store.transaction() as tx:
        current = await tx.get("tx", "keep") or {}
        await tx.update("tx", "keep", {"value": current.get("value", 0) + 10})
    _assert(await store.get("tx", "keep") == {"value": 11}, "committed transaction must persist")


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await store.init()
    # init is idempotent
    await store.init()
    await _check_crud(store)
    await _check_increment_and_batch(store)
    await _check_queries(store)
    await _check_transaction(store)


def main() -> None:
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-store-"))
    try:
        asyncio.run(_run_checks(tmpdir / "state.db"))
        print("OK: document store smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
