"""
법정화폐 환율 수집 (currencyapi.com v3 /latest).

응답: {"data": {"USD": {"code": "USD", "value": 1}, ...}}
호출 1회, 최대 2번 시도.
"""
from typing import Any, Dict, Optional

import requests

from rates_utils.logging_config import get_logger
from rates_utils.logger import with_context
from .http import DEFAULT_TIMEOUT_S, fetch_with_retry

log = with_context(get_logger(__name__), svc="fiat-loader")

FIAT_URL = "https://api.currencyapi.com/v3/latest"
FIAT_MAX_ATTEMPTS = 2


def fetch_fiat_rates(
    api_key: str,
    *,
    max_attempts: int = FIAT_MAX_ATTEMPTS,
    timeout: float = DEFAULT_TIMEOUT_S,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    if not api_key:
        raise ValueError("currencyapi key is required. Set RATES_API_KEY.")
    # apikey 는 쿼리스트링으로만 받는다. 로그에서는 safe_params 가 가린다
    params = {"type": "fiat", "apikey": api_key}
    payload = fetch_with_retry(FIAT_URL, params=params, max_attempts=max_attempts,
                               timeout=timeout, session=session, logger=log)
    data = payload.get("data") if isinstance(payload, dict) else None
    log.info("fiat_fetched", extra={"codes": len(data) if isinstance(data, dict) else 0})
    return payload
