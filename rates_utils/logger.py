"""
logger.py
=========
잡 전용 로깅 헬퍼.

- ContextAdapter / with_context(): 모든 로그에 공통 컨텍스트(svc, date ...) 부착
- timeit(): 상위 루틴 실행시간(ms)과 성공 여부 로깅
- log_request(): 외부 API 호출 요약(메서드/URL/상태/시도/대기)
- attached_hooks(): 실행 동안만 context 훅 핸들러를 루트 로거에 붙이는 컨텍스트 매니저
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, ParamSpec, TypeVar

from .logging_config import ContextHookHandler, safe_params

P = ParamSpec("P")
T = TypeVar("T")


class ContextAdapter(logging.LoggerAdapter):
    """
    extra를 'ctx' 하나로 모아 포맷터에 넘긴다.
    바인딩된 컨텍스트와 호출 측 extra가 겹치면 호출 측 값이 이긴다.
    """

    def process(self, msg, kwargs):
        call_extra: Dict[str, Any] = kwargs.pop("extra", {}) or {}
        kwargs["extra"] = {"ctx": {**(self.extra or {}), **call_extra}}
        return msg, kwargs

    def bind(self, **ctx) -> "ContextAdapter":
        """현재 컨텍스트에 키를 더한 새 어댑터."""
        return ContextAdapter(self.logger, {**(self.extra or {}), **ctx})


def with_context(logger: logging.Logger, **ctx) -> ContextAdapter:
    """
    사용 예)
        log = with_context(get_logger(__name__), svc="rates-job")
        log.info("rates_upserted", extra={"doc_id": "19102026"})
    """
    return ContextAdapter(logger, ctx)


def timeit(logger: logging.Logger, label: str) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    시작 시 DEBUG '{label} start', 종료 시 INFO '{label} done' + duration_ms, success.
    예외는 그대로 다시 던진다.
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            t0 = time.perf_counter()
            logger.debug(f"{label} start")
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                dt_ms = (time.perf_counter() - t0) * 1000.0
                logger.info(
                    f"{label} done",
                    extra={"duration_ms": round(dt_ms, 2), "success": success},
                )
        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper
    return decorator


def log_request(
    logger: logging.Logger,
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, Any]] = None,
    status: Optional[int] = None,
    attempt: Optional[int] = None,
    max_attempts: Optional[int] = None,
    wait_s: Optional[float] = None,
    note: Optional[str] = None,
    level: str = "INFO",
) -> None:
    """
    외부 API 호출 요약 로그. params/headers 는 safe_params로 마스킹한 뒤 남긴다.
    attempt 는 1부터 센다.
    """
    payload: Dict[str, Any] = {"method": method, "url": url}

    if params is not None:
        payload["params"] = safe_params(params)
    if headers is not None:
        payload["headers"] = safe_params(headers)
    if status is not None:
        payload["status"] = status
    if attempt is not None:
        payload["attempt"] = attempt if max_attempts is None else f"{attempt}/{max_attempts}"
    if wait_s is not None:
        payload["wait_s"] = round(wait_s, 3)
    if note:
        payload["note"] = note

    lvl = getattr(logging, level.upper(), logging.INFO)
    logger.log(lvl, "http_call", extra=payload)


@contextmanager
def attached_hooks(
    log_hook: Optional[Callable[[str], Any]],
    error_hook: Optional[Callable[[str], Any]] = None,
) -> Iterator[Optional[ContextHookHandler]]:
    """
    with 블록 동안 루트 로거에 ContextHookHandler를 붙인다.
    log_hook 이 없으면 아무것도 붙이지 않는다.
    """
    if log_hook is None:
        yield None
        return
    handler = ContextHookHandler(log_hook, error_hook)
    root = logging.getLogger()
    root.addHandler(handler)
    try:
        yield handler
    finally:
        root.removeHandler(handler)
