"""
logging_config.py
=================
잡 프로세스 전역 로깅 설정.

핵심 기능
- setup_logging(): 루트 로거에 콘솔/파일 핸들러 장착, 텍스트/JSON 포맷 선택
- KeyValueFormatter / JSONFormatter: record.ctx 를 key=value 또는 JSON 필드로 출력
- ContextHookHandler: 스케줄러가 넘겨준 context.log / context.error 로 로그 전달
- safe_params(): 로그에 남기기 전 API 키 등 민감 키 마스킹

설계 포인트
- 한 번만 초기화(_initialized). 테스트에서는 reset_logging()으로 되돌린다.
- 포맷터는 record.ctx 만 본다(ContextAdapter가 extra를 ctx로 모아준다).
"""

from __future__ import annotations

import json
import logging
import os
import socket
from logging import Logger
from logging.handlers import RotatingFileHandler
from typing import Any, Callable, Dict, Optional, Set


_initialized = False
_installed_handlers: list[logging.Handler] = []

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _to_level(level: str | int) -> int:
    # 숫자는 그대로, 모르는 문자열은 INFO
    if isinstance(level, int):
        return level
    return _LEVELS.get(str(level).upper(), logging.INFO)


# -----------------------------------------------------------------------------
# 민감정보 마스킹
# -----------------------------------------------------------------------------
# 환율 API는 쿼리스트링(apikey), cryptorank는 헤더(X-Api-Key), Appwrite는 X-Appwrite-Key
_SENSITIVE_KEYS_DEFAULT: Set[str] = {
    "api_key", "apikey", "secret", "token", "authorization", "password",
    "x-api-key", "x-appwrite-key",
}


def safe_params(
    params: Optional[Dict[str, Any]],
    additional_keys: Optional[Set[str]] = None,
) -> Optional[Dict[str, Any]]:
    """
    요청 파라미터/헤더 딕셔너리의 민감 키 값을 *** 로 바꾼 사본을 돌려준다.
    dict가 아니면 그대로 반환한다. 키 비교는 대소문자를 무시한다.
    """
    if not isinstance(params, dict):
        return params

    sensitive = {k.lower() for k in _SENSITIVE_KEYS_DEFAULT}
    if additional_keys:
        sensitive |= {k.lower() for k in additional_keys}

    return {k: ("***" if str(k).lower() in sensitive else v) for k, v in params.items()}


# -----------------------------------------------------------------------------
# 포맷터
# -----------------------------------------------------------------------------
class KeyValueFormatter(logging.Formatter):
    """
    "시간 | 레벨 | 로거 | 메시지 | k=v k=v" 형식의 텍스트 포맷터.
    스택트레이스가 붙은 경우 ctx는 첫 줄에만 붙인다.
    """

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        ctx = getattr(record, "ctx", None)
        if not (isinstance(ctx, dict) and ctx):
            return base

        head, *tail = base.splitlines()
        kv = " ".join(f"{k}={v}" for k, v in ctx.items())
        return "\n".join([f"{head} | {kv}", *tail])


class JSONFormatter(logging.Formatter):
    """한 줄 JSON 포맷터. 함수 런타임 로그 수집기에 그대로 적재하기 위한 용도."""

    _host = socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "host": self._host,
            "pid": record.process,
        }
        ctx = getattr(record, "ctx", None)
        if isinstance(ctx, dict) and ctx:
            payload["ctx"] = ctx
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # default=str: ctx에 date 같은 비 JSON 값이 섞여도 로그가 깨지지 않게
        return json.dumps(payload, ensure_ascii=False, default=str)


def _make_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return JSONFormatter()
    formatter = KeyValueFormatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    formatter.default_time_format = "%Y-%m-%dT%H:%M:%S"
    formatter.default_msec_format = "%s.%03d"
    return formatter


# -----------------------------------------------------------------------------
# 호출 컨텍스트 훅 핸들러
# -----------------------------------------------------------------------------
class ContextHookHandler(logging.Handler):
    """
    함수 런타임이 넘겨주는 context.log / context.error 콜백으로 로그를 전달한다.
    WARNING 이상은 error 훅, 나머지는 log 훅으로 보낸다.
    """

    def __init__(
        self,
        log_hook: Callable[[str], Any],
        error_hook: Optional[Callable[[str], Any]] = None,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self.log_hook = log_hook
        self.error_hook = error_hook or log_hook
        self.setFormatter(KeyValueFormatter("%(levelname)s | %(name)s | %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            hook = self.error_hook if record.levelno >= logging.WARNING else self.log_hook
            hook(line)
        except Exception:
            self.handleError(record)


# -----------------------------------------------------------------------------
# 초기화
# -----------------------------------------------------------------------------
def setup_logging(
    log_path: Optional[str] = None,
    level: str | int = "INFO",
    json_format: bool = False,
    rotate: bool = True,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
    extra_sensitive_keys: Optional[Set[str]] = None,
) -> None:
    """
    루트 로거에 콘솔(및 선택적으로 파일) 핸들러를 장착한다.

    Parameters
    ----------
    log_path : str | None
        파일 로깅 경로. None이면 콘솔만 사용(서버리스 런타임 기본값).
    level : str | int
        "INFO", "DEBUG" ... 또는 logging 상수
    json_format : bool
        True면 JSON 라인, False면 key=value 텍스트
    rotate : bool
        파일 로깅 시 RotatingFileHandler 사용 여부
    extra_sensitive_keys : set[str] | None
        safe_params 마스킹 대상 추가
    """
    global _initialized

    if _initialized:
        return
    _initialized = True

    if extra_sensitive_keys:
        _SENSITIVE_KEYS_DEFAULT.update(k.lower() for k in extra_sensitive_keys)

    root = logging.getLogger()
    root.setLevel(_to_level(level))
    formatter = _make_formatter(json_format)

    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    root.addHandler(sh)
    _installed_handlers.append(sh)

    if log_path:
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        if rotate:
            fh: logging.Handler = RotatingFileHandler(
                log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        else:
            fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(formatter)
        root.addHandler(fh)
        _installed_handlers.append(fh)


def reset_logging() -> None:
    """setup_logging이 붙인 핸들러를 떼고 초기화 플래그를 되돌린다(테스트용)."""
    global _initialized

    root = logging.getLogger()
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root.removeHandler(handler)
        handler.close()
    _initialized = False


def get_logger(name: str) -> Logger:
    """모듈 로거. 핸들러는 루트에만 단다."""
    return logging.getLogger(name)
