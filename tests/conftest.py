"""
공용 픽스처

- FakeDocumentStore: Appwrite 쿼리 의미(equal/orderDesc/limit/cursorAfter)를 흉내 내는 인메모리 스토어
- fake_response(): requests.Response 대용 Mock
- settings / base_env: 필수 키가 모두 채워진 설정
"""
import itertools
import json
from unittest.mock import Mock

import pytest

from rates_utils.config import Settings
from rates_utils.errors import DocumentStoreError


class FakeDocumentStore:
    def __init__(self, unqueryable=(), fail=()):
        # (db, coll) -> {doc_id: doc}
        self.collections = {}
        self.unqueryable = set(unqueryable)
        # {("create", "rates_coll"), ("update", "*"), ("list", "legacy_coll") ...}
        self.fail = set(fail)
        self.calls = []
        self._seq = itertools.count(1)

    # -- 헬퍼 ---------------------------------------------------------------
    def _coll(self, db, coll):
        return self.collections.setdefault((db, coll), {})

    def _maybe_fail(self, op, coll):
        if (op, coll) in self.fail or (op, "*") in self.fail:
            raise DocumentStoreError(f"injected {op} failure on {coll}", status=500,
                                     error_type="general_unknown")

    def docs(self, db, coll):
        return list(self._coll(db, coll).values())

    def seed(self, db, coll, doc_id, data):
        self._coll(db, coll)[doc_id] = {"$id": doc_id, "$createdAt": next(self._seq), **data}

    @property
    def writes(self):
        return [c for c in self.calls if c[0] in ("create", "update")]

    # -- DocumentStore 기능 ----------------------------------------------------
    def list_documents(self, database_id, collection_id, queries=()):
        self.calls.append(("list", collection_id, list(queries)))
        self._maybe_fail("list", collection_id)
        docs = list(self._coll(database_id, collection_id).values())
        limit = 25
        cursor = None
        for raw in queries:
            q = json.loads(raw)
            method = q["method"]
            if method == "equal":
                if q["attribute"] in self.unqueryable:
                    raise DocumentStoreError(f"Invalid query: Attribute not found in schema: {q['attribute']}",
                                             status=400, error_type="general_query_invalid")
                docs = [d for d in docs if d.get(q["attribute"]) in q["values"]]
            elif method == "orderDesc":
                docs.sort(key=lambda d: d[q["attribute"]], reverse=True)
            elif method == "limit":
                limit = q["values"][0]
            elif method == "cursorAfter":
                cursor = q["values"][0]
        if cursor is not None:
            ids = [d["$id"] for d in docs]
            if cursor not in ids:
                raise DocumentStoreError(f"Document '{cursor}' for the 'cursor' value not found.",
                                         status=400, error_type="general_cursor_not_found")
            docs = docs[ids.index(cursor) + 1:]
        total = len(docs)
        return {"total": total, "documents": [dict(d) for d in docs[:limit]]}

    def create_document(self, database_id, collection_id, document_id, data):
        self.calls.append(("create", collection_id, document_id))
        self._maybe_fail("create", collection_id)
        coll = self._coll(database_id, collection_id)
        if document_id in coll:
            raise DocumentStoreError("Document with the requested ID already exists.",
                                     status=409, error_type="document_already_exists")
        coll[document_id] = {"$id": document_id, "$createdAt": next(self._seq), **data}
        return dict(coll[document_id])

    def update_document(self, database_id, collection_id, document_id, data):
        self.calls.append(("update", collection_id, document_id))
        self._maybe_fail("update", collection_id)
        coll = self._coll(database_id, collection_id)
        if document_id not in coll:
            raise DocumentStoreError("Document with the requested ID could not be found.",
                                     status=404, error_type="document_not_found")
        coll[document_id].update(data)
        return dict(coll[document_id])

    def close(self):
        pass


def fake_response(status=200, body=None, json_error=None):
    r = Mock()
    r.status_code = status
    if json_error is not None:
        r.json.side_effect = json_error
    else:
        r.json.return_value = body if body is not None else {}
    return r


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def base_env():
    return {
        "PROJECT_ID": "proj",
        "APPWRITE_API_KEY": "aw-secret",
        "RATES_API_KEY": "fiat-key",
        "RATES1_DATABASE_ID": "rates_db",
        "RATES_COMBINED_COLLECTION_ID": "rates_coll",
        "CRYPTOMETA_DATABASE_ID": "meta_db",
        "CRYPTOMETA_COLLECTION_ID": "meta_coll",
        "CRYPTORANK_API_KEY": "crypto-key",
    }


@pytest.fixture
def settings():
    return Settings(
        project_id="proj",
        appwrite_api_key="aw-secret",
        rates_api_key="fiat-key",
        rates_database_id="rates_db",
        rates_collection_id="rates_coll",
        meta_database_id="meta_db",
        meta_collection_id="meta_coll",
        crypto_api_key="crypto-key",
    )


@pytest.fixture
def no_sleep(monkeypatch):
    """rates_load.http 의 time.sleep 을 기록만 하는 가짜로 교체."""
    import rates_load.http as http

    waits = []
    monkeypatch.setattr(http.time, "sleep", waits.append)
    return waits
