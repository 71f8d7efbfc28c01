"""
날짜 키 업서트 상태 기계.

    LOOKUP ─┬─ 일치 있음 → FOUND → UPDATE ─ 실패 → FAILED
            ├─ 일치 없음 → NOT_FOUND → CREATE ─ 실패 ─┐
            └─ 조회 실패 ─────────────────────────────┤
                                      CREATE_BY_ID ─ 실패 → UPDATE_BY_ID ─ 실패 → FAILED
                                           └ 성공 → DONE         └ 성공 → DONE

- 환율 스토어: LOOKUP 부터 시작 (date 필드 equal 쿼리)
- 메타 스토어: CREATE_BY_ID 부터 시작 (문서 ID = 날짜 키)
- 찾은 문서의 갱신이 실패하면 바로 FAILED. 날짜 ID로 새로 만들면 같은 날짜가 두 건이 된다.
- FAILED 는 마지막 하위 오류를 담아 PersistenceError 로 올라간다.
- 스토어 오류(DocumentStoreError)만 다른 경로로 넘기고, 그 밖의 예외는 그대로 전파한다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from rates_utils.errors import DocumentStoreError, PersistenceError
from rates_utils.logging_config import get_logger
from rates_utils.logger import with_context
from .documents import DocumentStore, Query, unique_id

log = with_context(get_logger(__name__), svc="upsert")


class UpsertState(Enum):
    LOOKUP = "lookup"
    FOUND = "found"
    NOT_FOUND = "not_found"
    UPDATE = "update"
    CREATE = "create"
    CREATE_BY_ID = "create_by_id"
    UPDATE_BY_ID = "update_by_id"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class CollectionRef:
    database_id: str
    collection_id: str

    def __str__(self) -> str:
        return f"{self.database_id}/{self.collection_id}"


@dataclass
class UpsertResult:
    doc_id: str
    action: str      # "created" | "updated"
    strategy: str    # "query" | "id"
    trace: List[UpsertState] = field(default_factory=list)


class Upserter:
    """
    한 번 쓰고 버리는 업서트 실행기. run() 이 상태를 따라가며 trace 에 방문 순서를 남긴다.

    key 는 조회 값(date 필드)이자 ID 대체 경로의 문서 ID.
    """

    def __init__(
        self,
        store: DocumentStore,
        target: CollectionRef,
        key: str,
        data: Dict[str, Any],
        *,
        key_field: str = "date",
        by_query: bool = True,
        label: str = "Rates",
    ):
        self.store = store
        self.target = target
        self.key = key
        self.data = data
        self.key_field = key_field
        self.start = UpsertState.LOOKUP if by_query else UpsertState.CREATE_BY_ID
        self.label = label
        self.log = log.bind(doc=label, key=key, target=str(target))

        self.trace: List[UpsertState] = []
        self.doc_id: Optional[str] = None
        self.action: Optional[str] = None
        self.strategy: Optional[str] = None
        self.last_error: Optional[DocumentStoreError] = None

        self._handlers: Dict[UpsertState, Callable[[], UpsertState]] = {
            UpsertState.LOOKUP: self._lookup,
            UpsertState.FOUND: lambda: UpsertState.UPDATE,
            UpsertState.NOT_FOUND: self._not_found,
            UpsertState.UPDATE: self._update,
            UpsertState.CREATE: self._create,
            UpsertState.CREATE_BY_ID: self._create_by_id,
            UpsertState.UPDATE_BY_ID: self._update_by_id,
        }

    def run(self) -> UpsertResult:
        state = self.start
        while state not in (UpsertState.DONE, UpsertState.FAILED):
            self.trace.append(state)
            state = self._handlers[state]()
        self.trace.append(state)

        if state is UpsertState.FAILED:
            self.log.error("upsert_failed", extra={"err": str(self.last_error)})
            raise PersistenceError(self.doc_id or self.key, self.last_error, label=self.label)

        self.log.info("upsert_done", extra={
            "doc_id": self.doc_id, "action": self.action, "strategy": self.strategy,
        })
        return UpsertResult(self.doc_id, self.action, self.strategy, list(self.trace))

    # -- 상태 핸들러 ------------------------------------------------------------
    def _lookup(self) -> UpsertState:
        try:
            found = self.store.list_documents(
                self.target.database_id, self.target.collection_id,
                [Query.equal(self.key_field, self.key)],
            )
        except DocumentStoreError as e:
            # 예: "Attribute not found in schema: date" (인덱스/속성 없음)
            self.last_error = e
            self.log.warning("lookup_failed_fallback_to_id", extra={"err": str(e)})
            return UpsertState.CREATE_BY_ID

        docs = found.get("documents") or []
        if docs:
            self.doc_id = docs[0]["$id"]
            return UpsertState.FOUND
        return UpsertState.NOT_FOUND

    def _not_found(self) -> UpsertState:
        self.doc_id = unique_id()
        return UpsertState.CREATE

    def _write(self, create: bool, strategy: str, on_error: UpsertState) -> UpsertState:
        op = self.store.create_document if create else self.store.update_document
        try:
            op(self.target.database_id, self.target.collection_id, self.doc_id, self.data)
        except DocumentStoreError as e:
            self.last_error = e
            self.log.warning("write_failed", extra={
                "op": "create" if create else "update", "strategy": strategy,
                "doc_id": self.doc_id, "err": str(e), "conflict": e.already_exists,
                "next": on_error.value,
            })
            return on_error
        self.action = "created" if create else "updated"
        self.strategy = strategy
        return UpsertState.DONE

    def _update(self) -> UpsertState:
        return self._write(False, "query", UpsertState.FAILED)

    def _create(self) -> UpsertState:
        return self._write(True, "query", UpsertState.CREATE_BY_ID)

    def _create_by_id(self) -> UpsertState:
        # 하루에 하나로 고정되는 ID.
        # 409 가 아닌 실패도 UPDATE_BY_ID 로 간다. 충돌 여부는 로그(conflict)에만 남긴다.
        self.doc_id = self.key
        return self._write(True, "id", UpsertState.UPDATE_BY_ID)

    def _update_by_id(self) -> UpsertState:
        return self._write(False, "id", UpsertState.FAILED)


def upsert_rates(store: DocumentStore, target: CollectionRef, date: str, record: Dict[str, Any]) -> UpsertResult:
    """date 필드로 찾아서 갱신, 없으면 새 ID로 생성. 조회가 안 되면 날짜를 ID로 쓴다."""
    return Upserter(store, target, date, record, by_query=True, label="Rates").run()


def upsert_meta(store: DocumentStore, target: CollectionRef, date: str, record: Dict[str, Any]) -> UpsertResult:
    """조회 없이 날짜 ID로 생성, 실패하면 같은 ID로 갱신."""
    return Upserter(store, target, date, record, by_query=False, label="cryptoMeta").run()
