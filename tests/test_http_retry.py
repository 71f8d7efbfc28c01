from unittest.mock import Mock

import pytest
import requests

from rates_load.http import backoff_seconds, fetch_with_retry
from rates_utils.errors import UpstreamFetchError
from conftest import fake_response

URL = "https://api.example.test/v1/rates"


def _session(*responses):
    s = Mock()
    s.get.side_effect = list(responses)
    return s


def test_returns_json_on_first_success(no_sleep):
    s = _session(fake_response(200, {"data": {"USD": {"value": 1}}}))
    data = fetch_with_retry(URL, params={"apikey": "k"}, max_attempts=3, session=s)
    assert data == {"data": {"USD": {"value": 1}}}
    assert s.get.call_count == 1
    assert no_sleep == []


def test_passes_params_headers_and_timeout(no_sleep):
    s = _session(fake_response(200, {}))
    fetch_with_retry(URL, params={"limit": 100}, headers={"X-Api-Key": "k"}, timeout=10.0, session=s)
    s.get.assert_called_once_with(URL, params={"limit": 100}, headers={"X-Api-Key": "k"}, timeout=10.0)


def test_retries_after_bad_status_then_succeeds(no_sleep):
    s = _session(fake_response(503), fake_response(200, {"ok": 1}))
    assert fetch_with_retry(URL, max_attempts=3, session=s) == {"ok": 1}
    assert s.get.call_count == 2
    assert no_sleep == [2]


def test_raises_after_exactly_max_attempts_with_exponential_backoff(no_sleep):
    s = _session(*[fake_response(500) for _ in range(4)])
    with pytest.raises(UpstreamFetchError) as ei:
        fetch_with_retry(URL, max_attempts=4, session=s)
    assert s.get.call_count == 4
    # 마지막 시도 뒤에는 기다리지 않는다
    assert no_sleep == [2, 4, 8]
    assert ei.value.attempts == 4
    assert ei.value.reason == "HTTP 500"
    assert ei.value.url == URL


def test_network_errors_and_timeouts_are_retried(no_sleep):
    s = _session(requests.exceptions.ConnectionError("reset"),
                 requests.exceptions.Timeout("read timed out"))
    with pytest.raises(UpstreamFetchError) as ei:
        fetch_with_retry(URL, max_attempts=2, session=s)
    assert s.get.call_count == 2
    assert no_sleep == [2]
    assert "Timeout" in ei.value.reason


def test_non_json_body_counts_as_failure(no_sleep):
    s = _session(fake_response(200, json_error=ValueError("Expecting value")),
                 fake_response(200, {"data": []}))
    assert fetch_with_retry(URL, max_attempts=2, session=s) == {"data": []}
    assert no_sleep == [2]


def test_client_errors_are_retried_too(no_sleep):
    s = _session(fake_response(401), fake_response(401))
    with pytest.raises(UpstreamFetchError, match="HTTP 401"):
        fetch_with_retry(URL, max_attempts=2, session=s)


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        fetch_with_retry(URL, max_attempts=0, session=Mock())


def test_failed_attempts_are_logged_with_attempt_number(no_sleep, caplog):
    s = _session(fake_response(502), fake_response(200, {}))
    with caplog.at_level("WARNING"):
        fetch_with_retry(URL, max_attempts=2, session=s)
    failed = [r for r in caplog.records if r.getMessage() == "fetch_attempt_failed"]
    assert len(failed) == 1
    assert failed[0].ctx["attempt"] == "1/2"
    assert failed[0].ctx["reason"] == "HTTP 502"


def test_backoff_is_power_of_two():
    assert [backoff_seconds(a) for a in (1, 2, 3)] == [2, 4, 8]
