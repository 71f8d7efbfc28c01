import logging

import pytest

from rates_utils.supervisor import JobSupervisor


def _boom():
    raise RuntimeError("background exploded")


def test_settle_returns_each_branch_result():
    with JobSupervisor() as sup:
        a = sup.submit("fiat", lambda: {"data": {}})
        b = sup.submit("crypto", _boom)
        fiat, crypto = sup.settle(a, b)
    assert fiat.ok and fiat.value == {"data": {}} and fiat.name == "fiat"
    assert not crypto.ok
    assert isinstance(crypto.error, RuntimeError)


def test_unobserved_failures_are_logged_on_exit(caplog):
    sup = JobSupervisor()
    with caplog.at_level(logging.ERROR):
        with sup:
            sup.submit("detached", _boom)
            sup.submit("fine", lambda: 1)
            unobserved = sup.shutdown()
    assert unobserved == ["detached"]
    rec = [r for r in caplog.records if r.getMessage() == "detached_task_failed"]
    assert len(rec) == 1
    assert rec[0].ctx["task"] == "detached"
    assert rec[0].exc_info[0] is RuntimeError


def test_observed_failures_are_not_reported_again(caplog):
    with caplog.at_level(logging.ERROR):
        with JobSupervisor() as sup:
            sup.settle(sup.submit("crypto", _boom))
    assert not [r for r in caplog.records if r.getMessage() == "detached_task_failed"]


def test_submit_outside_context_is_an_error():
    with pytest.raises(RuntimeError):
        JobSupervisor().submit("x", lambda: 1)
