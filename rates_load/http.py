"""
재시도 HTTP GET.

- 2xx 가 아니거나, 네트워크/타임아웃 오류거나, 본문이 JSON이 아니면 실패로 본다.
- 실패한 시도마다 경고 로그를 남기고 2**attempt 초(1부터 셈) 기다린 뒤 재시도.
- 마지막 시도까지 실패하면 UpstreamFetchError. 마지막 시도 뒤에는 기다리지 않는다.
"""
from contextlib import nullcontext
import logging
import time
from typing import Any, Dict, Optional

import requests

from rates_utils.errors import UpstreamFetchError
from rates_utils.logging_config import get_logger
from rates_utils.logger import log_request, with_context

log = with_context(get_logger(__name__), svc="rates-http")

DEFAULT_TIMEOUT_S = 10.0


def backoff_seconds(attempt: int) -> int:
    return 2 ** attempt


def fetch_with_retry(
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_attempts: int = 3,
    timeout: float = DEFAULT_TIMEOUT_S,
    session: Optional[requests.Session] = None,
    logger: Optional[logging.LoggerAdapter] = None,
) -> Any:
    """
    url 에 GET 을 보내고 파싱된 JSON 본문을 돌려준다.
    timeout 은 시도 1회당 requests 타임아웃(전체 재시도 예산과 별개).
    session 을 넘기면 그 세션을 쓰고 닫지 않는다.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
    lg = logger or log

    with (nullcontext(session) if session is not None else requests.Session()) as s:
        for attempt in range(1, max_attempts + 1):
            log_request(lg, "GET", url, params=params, headers=headers,
                        attempt=attempt, max_attempts=max_attempts, level="DEBUG")
            try:
                r = s.get(url, params=params, headers=headers, timeout=timeout)
            except requests.exceptions.RequestException as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                if 200 <= r.status_code < 300:
                    try:
                        data = r.json()
                    except ValueError as e:
                        reason = f"invalid JSON body: {e}"
                    else:
                        log_request(lg, "GET", url, status=r.status_code, attempt=attempt, level="DEBUG")
                        return data
                else:
                    reason = f"HTTP {r.status_code}"

            lg.warning("fetch_attempt_failed", extra={
                "url": url, "attempt": f"{attempt}/{max_attempts}", "reason": reason,
            })
            if attempt == max_attempts:
                lg.error("fetch_failed", extra={"url": url, "attempts": attempt, "reason": reason})
                raise UpstreamFetchError(url, attempt, reason)

            wait = backoff_seconds(attempt)
            log_request(lg, "GET", url, attempt=attempt, max_attempts=max_attempts,
                        wait_s=wait, note="backoff", level="INFO")
            time.sleep(wait)
