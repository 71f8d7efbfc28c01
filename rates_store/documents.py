"""
Appwrite Databases REST 클라이언트 (requests).

업서트/마이그레이션은 DocumentStore 가 정의한 세 가지 기능만 쓴다:
list_documents / create_document / update_document.
테스트는 같은 기능을 가진 인메모리 가짜 스토어를 쓴다.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from rates_utils.errors import DocumentStoreError
from rates_utils.logging_config import get_logger
from rates_utils.logger import log_request, with_context

log = with_context(get_logger(__name__), svc="doc-store")


class Query:
    """Appwrite 1.5+ JSON 쿼리 문자열 빌더."""

    @staticmethod
    def _q(method: str, attribute: Optional[str] = None, values: Optional[list] = None) -> str:
        body: Dict[str, Any] = {"method": method}
        if attribute is not None:
            body["attribute"] = attribute
        if values is not None:
            body["values"] = values
        return json.dumps(body, separators=(",", ":"))

    @staticmethod
    def equal(attribute: str, value: Any) -> str:
        values = value if isinstance(value, list) else [value]
        return Query._q("equal", attribute, values)

    @staticmethod
    def order_desc(attribute: str) -> str:
        return Query._q("orderDesc", attribute)

    @staticmethod
    def limit(n: int) -> str:
        return Query._q("limit", values=[n])

    @staticmethod
    def cursor_after(document_id: str) -> str:
        return Query._q("cursorAfter", values=[document_id])


def unique_id() -> str:
    # Appwrite ID 규칙: 36자 이하, 영숫자로 시작
    return uuid.uuid4().hex


class DocumentStore(Protocol):
    def list_documents(self, database_id: str, collection_id: str,
                       queries: Sequence[str] = ()) -> Dict[str, Any]: ...

    def create_document(self, database_id: str, collection_id: str,
                        document_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    def update_document(self, database_id: str, collection_id: str,
                        document_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...


class AppwriteDocumentStore:
    """
    /databases/{db}/collections/{coll}/documents 엔드포인트 래퍼.
    2xx 가 아닌 응답과 네트워크 오류는 모두 DocumentStoreError 로 바꾼다.
    재시도는 하지 않는다(업서트 상태 기계가 대체 경로를 고른다).
    """

    def __init__(self, endpoint: str, project_id: str, api_key: str,
                 *, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "X-Appwrite-Project": project_id,
            "X-Appwrite-Key": api_key,
            "Content-Type": "application/json",
        })

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "AppwriteDocumentStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _url(self, database_id: str, collection_id: str, document_id: Optional[str] = None) -> str:
        url = f"{self.endpoint}/databases/{database_id}/collections/{collection_id}/documents"
        return f"{url}/{document_id}" if document_id else url

    def _call(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            log_request(log, method, url, note=repr(e), level="WARNING")
            raise DocumentStoreError(f"{method} {url}: {e}") from e

        log_request(log, method, url, params=kwargs.get("params"), status=r.status_code, level="DEBUG")
        if not 200 <= r.status_code < 300:
            try:
                body = r.json()
            except ValueError:
                body = {}
            message = body.get("message") if isinstance(body, dict) else None
            error_type = body.get("type") if isinstance(body, dict) else None
            raise DocumentStoreError(message or f"HTTP {r.status_code}", status=r.status_code,
                                     error_type=error_type)
        try:
            return r.json()
        except ValueError as e:
            raise DocumentStoreError(f"{method} {url}: invalid JSON body", status=r.status_code) from e

    def list_documents(self, database_id: str, collection_id: str,
                       queries: Sequence[str] = ()) -> Dict[str, Any]:
        params: Dict[str, List[str]] = {"queries[]": list(queries)} if queries else {}
        return self._call("GET", self._url(database_id, collection_id), params=params)

    def create_document(self, database_id: str, collection_id: str,
                        document_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("POST", self._url(database_id, collection_id),
                          json={"documentId": document_id, "data": data})

    def update_document(self, database_id: str, collection_id: str,
                        document_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("PATCH", self._url(database_id, collection_id, document_id),
                          json={"data": data})
