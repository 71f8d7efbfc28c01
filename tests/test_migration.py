import json

import pytest

from rates_store.migration import LegacyMigrator, legacy_date, normalize_rates
from rates_store.upsert import CollectionRef
from rates_utils.errors import MigrationRecordError
from conftest import FakeDocumentStore

LEGACY = CollectionRef("old_db", "old_coll")
RATES = CollectionRef("rates_db", "rates_coll")
META = CollectionRef("meta_db", "meta_coll")


def _seed_legacy(store, n, **extra):
    for i in range(n):
        day = f"{(i % 28) + 1:02d}{(i // 28) % 12 + 1:02d}{2020 + i // 336}"
        store.seed("old_db", "old_coll", f"legacy{i}", {
            "date": day, "fiatRates": [["USD", 1]], "cryptoRates": '[["BTC",1]]', **extra,
        })


def _migrator(store, **kw):
    return LegacyMigrator(store, LEGACY, RATES, META, page_size=kw.pop("page_size", 100), **kw)


def test_migrates_every_record_across_pages(store):
    _seed_legacy(store, 250)
    stats = _migrator(store).run()
    assert stats.scanned == 250
    assert stats.migrated == 250
    assert len(store.docs("rates_db", "rates_coll")) == 250
    # 3페이지(100, 100, 50) 요청 후 종료
    legacy_lists = [c for c in store.calls if c[0] == "list" and c[1] == "old_coll"]
    assert len(legacy_lists) == 3


def test_exact_multiple_of_page_size_stops_on_empty_page(store):
    _seed_legacy(store, 4)
    stats = _migrator(store, page_size=2).run()
    assert stats.scanned == 4
    legacy_lists = [c for c in store.calls if c[0] == "list" and c[1] == "old_coll"]
    assert len(legacy_lists) == 3


def test_pages_newest_first_with_cursor(store):
    _seed_legacy(store, 3)
    _migrator(store, page_size=2).run()
    legacy_lists = [c for c in store.calls if c[0] == "list" and c[1] == "old_coll"]
    first_q = [json.loads(q) for q in legacy_lists[0][2]]
    assert {"method": "orderDesc", "attribute": "$createdAt"} in first_q
    assert {"method": "limit", "values": [2]} in first_q
    second_q = [json.loads(q) for q in legacy_lists[1][2]]
    # 내림차순이라 첫 페이지 마지막은 legacy1
    assert {"method": "cursorAfter", "values": ["legacy1"]} in second_q


def test_migration_twice_does_not_duplicate(store):
    _seed_legacy(store, 30)
    _migrator(store).run()
    _migrator(store).run()
    rates = store.docs("rates_db", "rates_coll")
    assert len(rates) == 30
    assert len({d["date"] for d in rates}) == 30


def test_normalizes_raw_and_string_rates():
    doc = {"fiatRates": [["USD", 1]], "cryptoRates": '[["BTC",1]]'}
    assert normalize_rates(doc, "01012024") == {
        "date": "01012024", "fiatRates": '[["USD",1]]', "cryptoRates": '[["BTC",1]]',
    }
    assert normalize_rates({}, "01012024") == {"date": "01012024", "fiatRates": "{}", "cryptoRates": "[]"}


def test_date_falls_back_to_valid_document_id():
    assert legacy_date({"$id": "05062024"}) == "05062024"
    assert legacy_date({"$id": "x", "date": "05062024"}) == "05062024"


def test_invalid_id_date_is_rejected():
    with pytest.raises(MigrationRecordError):
        legacy_date({"$id": "6507f1c2a9e3b"})


def test_invalid_dates_are_skipped_and_do_not_stop_batch(store):
    _seed_legacy(store, 2)
    store.seed("old_db", "old_coll", "6507f1c2a9e3b", {"fiatRates": "[]"})
    stats = _migrator(store).run()
    assert stats.scanned == 3
    assert stats.skipped == 1
    assert stats.migrated == 2


def test_per_record_write_failures_are_tolerated():
    store = FakeDocumentStore(fail={("create", "rates_coll"), ("update", "rates_coll")})
    _seed_legacy(store, 3)
    stats = _migrator(store).run()
    assert stats.scanned == 3
    assert stats.failed == 3
    assert stats.migrated == 0


def test_meta_blob_migrated_and_stripped_when_enabled(store):
    _seed_legacy(store, 2, cryptoMeta={"BTC": {"name": "Bitcoin"}})
    stats = _migrator(store, migrate_meta=True).run()
    assert stats.meta_migrated == 2
    assert stats.stripped == 2
    meta_docs = store.docs("meta_db", "meta_coll")
    assert {d["$id"] for d in meta_docs} == {d["date"] for d in meta_docs}
    assert json.loads(meta_docs[0]["cryptoMeta"]) == {"BTC": {"name": "Bitcoin"}}
    assert all(d["cryptoMeta"] is None for d in store.docs("old_db", "old_coll"))


def test_meta_left_alone_by_default(store):
    _seed_legacy(store, 2, cryptoMeta='{"BTC":{}}')
    stats = _migrator(store).run()
    assert stats.meta_migrated == 0
    assert store.docs("meta_db", "meta_coll") == []
    assert all(d["cryptoMeta"] == '{"BTC":{}}' for d in store.docs("old_db", "old_coll"))


def test_strip_failure_is_tolerated():
    store = FakeDocumentStore(fail={("update", "old_coll")})
    _seed_legacy(store, 1, cryptoMeta='{"BTC":{}}')
    stats = _migrator(store, migrate_meta=True).run()
    assert stats.meta_migrated == 1
    assert stats.stripped == 0
    assert stats.failed == 0


def test_meta_migration_requires_meta_collection(store):
    with pytest.raises(ValueError):
        LegacyMigrator(store, LEGACY, RATES, None, migrate_meta=True)
