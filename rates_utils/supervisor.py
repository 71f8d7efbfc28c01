"""
한 번의 잡 실행을 감싸는 백그라운드 작업 관리자.

- submit(): 이름 붙은 작업을 스레드 풀에 올린다
- settle(): 모든 결과를 기다려 성공/실패를 FetchOutcome 으로 돌려준다(한쪽 실패가 다른 쪽을 끊지 않음)
- with 블록 종료 시 풀을 닫고, 아무도 결과를 확인하지 않은 작업의 예외를 로그로 남긴다
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, List, Optional

from .logging_config import get_logger
from .logger import with_context

log = with_context(get_logger(__name__), svc="supervisor")


@dataclass
class FetchOutcome:
    name: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class JobSupervisor:
    def __init__(self, max_workers: int = 2, logger: Optional[logging.LoggerAdapter] = None):
        self.max_workers = max_workers
        self.log = logger or log
        self._pool: Optional[ThreadPoolExecutor] = None
        self._tasks: Dict[Future, str] = {}
        self._observed: set[Future] = set()

    def __enter__(self) -> "JobSupervisor":
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="rates-fetch")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def submit(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> Future:
        if self._pool is None:
            raise RuntimeError("JobSupervisor must be used as a context manager")
        fut = self._pool.submit(fn, *args, **kwargs)
        self._tasks[fut] = name
        return fut

    def settle(self, *futures: Future) -> List[FetchOutcome]:
        """입력 순서대로 결과를 돌려준다. 예외는 던지지 않고 outcome.error 에 담는다."""
        wait(futures)
        outcomes = []
        for fut in futures:
            self._observed.add(fut)
            name = self._tasks.get(fut, "task")
            err = fut.exception()
            if err is None:
                outcomes.append(FetchOutcome(name, value=fut.result()))
            else:
                self.log.warning("task_failed", extra={"task": name, "err": repr(err)})
                outcomes.append(FetchOutcome(name, error=err))
        return outcomes

    def shutdown(self) -> List[str]:
        """풀을 닫고, 결과가 확인되지 않은 채 실패한 작업 이름 목록을 반환(로그 포함)."""
        if self._pool is None:
            return []
        self._pool.shutdown(wait=True)
        self._pool = None

        unobserved = []
        for fut, name in self._tasks.items():
            if fut in self._observed or fut.cancelled():
                continue
            err = fut.exception()
            if err is not None:
                unobserved.append(name)
                self.log.error("detached_task_failed", extra={"task": name},
                               exc_info=(type(err), err, err.__traceback__))
        self._tasks.clear()
        self._observed.clear()
        return unobserved
