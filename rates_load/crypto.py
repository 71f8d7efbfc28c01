"""
암호화폐 시세/메타 수집 (cryptorank.io v2 /currencies).

- limit=100, skip=0 부터 100씩 증가
- 페이지가 100행 미만이면 종료
- 페이지 수 상한(max_pages, 기본 10 = 1000행)에 닿으면 종료: 함수 실행 시간 제한 때문
- 페이지당 최대 3번 시도
- API 키가 없으면 빈 리스트(상위에서 sanity check 가 BTC 부재로 실패시킨다)
"""
from typing import Any, Dict, List, Optional

import requests

from rates_utils.errors import UpstreamFetchError
from rates_utils.logging_config import get_logger
from rates_utils.logger import timeit, with_context
from .http import DEFAULT_TIMEOUT_S, fetch_with_retry

log = with_context(get_logger(__name__), svc="crypto-loader")

CRYPTO_URL = "https://api.cryptorank.io/v2/currencies"
PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 10
CRYPTO_MAX_ATTEMPTS = 3


@timeit(log, "crypto_market_data")
def fetch_crypto_market_data(
    api_key: Optional[str],
    max_pages: int = DEFAULT_MAX_PAGES,
    *,
    timeout: float = DEFAULT_TIMEOUT_S,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, Any]]:
    """모든 페이지의 행을 받은 순서대로 이어 붙여 반환."""
    if not api_key:
        log.info("crypto_key_absent_skip")
        return []

    max_pages = max(1, int(max_pages))
    headers = {"X-Api-Key": api_key}
    out: List[Dict[str, Any]] = []
    skip = 0
    page_count = 0

    log.info("paginate_begin", extra={"page_limit": PAGE_SIZE, "max_pages": max_pages})
    own_session = session is None
    s = requests.Session() if own_session else session
    try:
        while True:
            page_count += 1
            params = {"limit": PAGE_SIZE, "skip": skip}
            payload = fetch_with_retry(CRYPTO_URL, params=params, headers=headers,
                                       max_attempts=CRYPTO_MAX_ATTEMPTS, timeout=timeout,
                                       session=s, logger=log)
            rows = (payload.get("data") if isinstance(payload, dict) else None) or []
            if not isinstance(rows, list):
                raise UpstreamFetchError(CRYPTO_URL, 1, f"'data' is {type(rows).__name__}, expected list")
            out.extend(rows)
            log.info("paginate_page", extra={
                "page": f"{page_count}/{max_pages}", "rows": len(rows), "total": len(out),
            })
            # 짧은 페이지 = 마지막 페이지
            if len(rows) < PAGE_SIZE:
                break
            if page_count >= max_pages:
                log.warning("page_cap_reached", extra={"max_pages": max_pages, "total": len(out)})
                break
            skip += PAGE_SIZE
    finally:
        if own_session:
            s.close()

    log.info("paginate_end", extra={"req_count": page_count, "rows": len(out)})
    return out
