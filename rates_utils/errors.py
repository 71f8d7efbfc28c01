"""잡 전체에서 쓰는 예외 계층. run_job 최상단에서 실패 결과(dict)로 변환된다."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class RatesJobError(Exception):
    """모든 잡 예외의 루트. details()는 실패 응답에 그대로 합쳐진다."""

    message = "Rates job failed"

    def details(self) -> Dict[str, Any]:
        return {}


class ConfigError(RatesJobError):
    message = "Missing required env vars"

    def __init__(self, missing: Sequence[str] = (), invalid: Optional[Dict[str, str]] = None):
        self.missing = list(missing)
        self.invalid = dict(invalid or {})
        if self.missing:
            text = f"missing env: {', '.join(self.missing)}"
        else:
            text = "invalid env: " + ", ".join(f"{k}={v!r}" for k, v in self.invalid.items())
            self.message = "Invalid env vars"
        super().__init__(text)

    def details(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.missing:
            out["missingEnv"] = self.missing
        if self.invalid:
            out["invalidEnv"] = sorted(self.invalid)
        return out


class UpstreamFetchError(RatesJobError):
    """재시도를 모두 소진한 HTTP 호출."""

    message = "Upstream fetch failed"

    def __init__(self, url: str, attempts: int, reason: str):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        self.source: Optional[str] = None
        super().__init__(f"{url} failed after {attempts} attempt(s): {reason}")

    def for_source(self, source: str) -> "UpstreamFetchError":
        # "Fiat fetch failed" / "Crypto fetch failed"
        self.source = source
        self.message = f"{source.capitalize()} fetch failed"
        return self

    def details(self) -> Dict[str, Any]:
        out = {"reason": str(self), "url": self.url, "attempts": self.attempts}
        if self.source:
            out["source"] = self.source
        return out


class SanityCheckError(RatesJobError):
    message = "Sanity check failed"

    def __init__(self, missing_fiat: Sequence[str], has_btc: bool):
        self.missing_fiat = list(missing_fiat)
        self.has_btc = has_btc
        super().__init__(f"missing fiat={self.missing_fiat}, hasBTC={has_btc}")

    def details(self) -> Dict[str, Any]:
        return {"missingFiat": self.missing_fiat, "hasBTC": self.has_btc}


class DocumentStoreError(RatesJobError):
    """단일 스토어 호출 실패(HTTP 에러 응답 또는 네트워크 오류)."""

    message = "Document store call failed"

    def __init__(self, message: str, status: Optional[int] = None, error_type: Optional[str] = None):
        self.status = status
        self.error_type = error_type
        super().__init__(message)

    @property
    def already_exists(self) -> bool:
        return self.status == 409 or self.error_type == "document_already_exists"


class PersistenceError(RatesJobError):
    """업서트 전략을 모두 소진했다. cause 는 마지막 하위 오류."""

    def __init__(self, doc_id: str, cause: Optional[BaseException], label: str = "Rates"):
        self.doc_id = doc_id
        self.cause = cause
        self.label = label
        self.message = f"{label} upsert failed"
        super().__init__(f"{label} upsert of {doc_id!r} failed: {cause}")

    def details(self) -> Dict[str, Any]:
        return {"e": str(self.cause), "docId": self.doc_id}


class MigrationRecordError(RatesJobError):
    """레거시 레코드 1건 실패. 배치는 계속 진행된다."""

    message = "Legacy record migration failed"

    def __init__(self, doc_id: str, reason: str):
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"legacy record {doc_id!r}: {reason}")
