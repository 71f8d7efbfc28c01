"""
레거시 컬렉션 → 새 환율(선택적으로 메타) 컬렉션 일회성 이관.

- $createdAt 내림차순, 페이지 100건, 마지막 문서 ID 기준 cursorAfter
- 레코드 단위 실패는 로그만 남기고 계속 진행(best-effort)
- 날짜는 date 필드, 없으면 문서 ID. 어느 쪽이든 DDMMYYYY 검증을 통과해야 한다
- migrate_meta=True 면 내장 cryptoMeta 를 메타 컬렉션으로 옮기고 원본에서 비운다
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List, Optional

from rates_load.transform import compact_json
from rates_utils.errors import DocumentStoreError, MigrationRecordError, PersistenceError
from rates_utils.logging_config import get_logger
from rates_utils.logger import timeit, with_context
from rates_utils.time_utils import parse_date_key
from .documents import DocumentStore, Query
from .upsert import CollectionRef, upsert_meta, upsert_rates

log = with_context(get_logger(__name__), svc="migration")

LEGACY_PAGE_SIZE = 100


@dataclass
class MigrationStats:
    scanned: int = 0
    migrated: int = 0
    meta_migrated: int = 0
    stripped: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def legacy_date(doc: Dict[str, Any]) -> str:
    raw = doc.get("date") or doc.get("$id")
    try:
        parse_date_key(raw)
    except (TypeError, ValueError) as e:
        raise MigrationRecordError(str(doc.get("$id")), f"no usable date: {e}") from e
    return raw.strip()


def _as_json_string(value: Any, default: Any) -> str:
    # 이미 직렬화된 문자열이면 그대로
    if isinstance(value, str):
        return value
    return compact_json(default if value is None else value)


def normalize_rates(doc: Dict[str, Any], date: str) -> Dict[str, str]:
    return {
        "date": date,
        "fiatRates": _as_json_string(doc.get("fiatRates"), {}),
        "cryptoRates": _as_json_string(doc.get("cryptoRates"), []),
    }


def iter_legacy_pages(store: DocumentStore, legacy: CollectionRef,
                      page_size: int = LEGACY_PAGE_SIZE) -> Iterator[List[Dict[str, Any]]]:
    cursor: Optional[str] = None
    while True:
        queries = [Query.order_desc("$createdAt"), Query.limit(page_size)]
        if cursor:
            queries.append(Query.cursor_after(cursor))
        page = store.list_documents(legacy.database_id, legacy.collection_id, queries)
        docs = page.get("documents") or []
        if not docs:
            return
        yield docs
        if len(docs) < page_size:
            return
        cursor = docs[-1]["$id"]


class LegacyMigrator:
    def __init__(
        self,
        store: DocumentStore,
        legacy: CollectionRef,
        rates: CollectionRef,
        meta: Optional[CollectionRef] = None,
        *,
        migrate_meta: bool = False,
        page_size: int = LEGACY_PAGE_SIZE,
    ):
        if migrate_meta and meta is None:
            raise ValueError("migrate_meta requires a meta collection")
        self.store = store
        self.legacy = legacy
        self.rates = rates
        self.meta = meta
        self.migrate_meta = migrate_meta
        self.page_size = page_size
        self.stats = MigrationStats()

    @timeit(log, "legacy_migration")
    def run(self) -> MigrationStats:
        log.info("migration_begin", extra={
            "legacy": str(self.legacy), "rates": str(self.rates), "with_meta": self.migrate_meta,
        })
        for docs in iter_legacy_pages(self.store, self.legacy, self.page_size):
            for doc in docs:
                self.stats.scanned += 1
                try:
                    self._migrate_one(doc)
                except MigrationRecordError as e:
                    log.warning("migration_record_failed", extra={"doc_id": e.doc_id, "reason": e.reason})
        log.info("migration_complete", extra=self.stats.as_dict())
        return self.stats

    def _migrate_one(self, doc: Dict[str, Any]) -> None:
        doc_id = str(doc.get("$id"))
        try:
            date = legacy_date(doc)
        except MigrationRecordError:
            self.stats.skipped += 1
            raise

        try:
            upsert_rates(self.store, self.rates, date, normalize_rates(doc, date))
        except PersistenceError as e:
            self.stats.failed += 1
            raise MigrationRecordError(doc_id, f"rates upsert for {date} failed: {e.cause}") from e
        self.stats.migrated += 1

        if self.migrate_meta and doc.get("cryptoMeta"):
            self._migrate_meta(doc_id, date, doc["cryptoMeta"])

    def _migrate_meta(self, doc_id: str, date: str, blob: Any) -> None:
        record = {"date": date, "cryptoMeta": _as_json_string(blob, {})}
        try:
            upsert_meta(self.store, self.meta, date, record)
        except PersistenceError as e:
            self.stats.failed += 1
            raise MigrationRecordError(doc_id, f"meta upsert for {date} failed: {e.cause}") from e
        self.stats.meta_migrated += 1

        # 레거시 문서 크기 줄이기. 실패해도 이관 자체는 성공으로 본다
        try:
            self.store.update_document(self.legacy.database_id, self.legacy.collection_id,
                                       doc_id, {"cryptoMeta": None})
        except DocumentStoreError as e:
            log.warning("legacy_meta_strip_failed", extra={"doc_id": doc_id, "err": str(e)})
        else:
            self.stats.stripped += 1
