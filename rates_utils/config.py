"""
환경변수 → Settings 로더.

필수 키를 한 번에 모두 검사하고, 빠진 이름 목록을 담은 ConfigError 하나로 실패한다.
네트워크 호출보다 먼저 실행된다.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .env_utils import env_flag, env_str
from .errors import ConfigError

DEFAULT_APPWRITE_ENDPOINT = "https://cloud.appwrite.io/v1"
DEFAULT_CRYPTO_MAX_PAGES = 10

REQUIRED_KEYS = (
    "PROJECT_ID",
    "APPWRITE_API_KEY",
    "RATES_API_KEY",
    "RATES1_DATABASE_ID",
    "RATES_COMBINED_COLLECTION_ID",
    "CRYPTOMETA_DATABASE_ID",
    "CRYPTOMETA_COLLECTION_ID",
)


@dataclass(frozen=True)
class Settings:
    project_id: str
    appwrite_api_key: str
    rates_api_key: str
    rates_database_id: str
    rates_collection_id: str
    meta_database_id: str
    meta_collection_id: str
    crypto_api_key: Optional[str] = None
    crypto_max_pages: int = DEFAULT_CRYPTO_MAX_PAGES
    migrate: bool = False
    migrate_meta: bool = False
    legacy_database_id: Optional[str] = None
    legacy_collection_id: Optional[str] = None
    appwrite_endpoint: str = DEFAULT_APPWRITE_ENDPOINT
    timezone: Optional[str] = None

    @property
    def has_legacy_store(self) -> bool:
        return bool(self.legacy_database_id and self.legacy_collection_id)


def _parse_max_pages(raw: Optional[str], invalid: Dict[str, str]) -> int:
    if raw is None:
        return DEFAULT_CRYPTO_MAX_PAGES
    try:
        return max(1, int(raw))
    except ValueError:
        invalid["CRYPTORANK_MAX_PAGES"] = raw
        return DEFAULT_CRYPTO_MAX_PAGES


def _parse_timezone(raw: Optional[str], invalid: Dict[str, str]) -> Optional[str]:
    if raw is None:
        return None
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        invalid["RATES_TZ"] = raw
        return None
    return raw


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """environ 기본값은 os.environ. 빠진 필수 키나 잘못된 값이 있으면 ConfigError."""
    env = os.environ if environ is None else environ

    missing: List[str] = [k for k in REQUIRED_KEYS if env_str(env, k) is None]
    invalid: Dict[str, str] = {}
    max_pages = _parse_max_pages(env_str(env, "CRYPTORANK_MAX_PAGES"), invalid)
    tz = _parse_timezone(env_str(env, "RATES_TZ"), invalid)

    if missing or invalid:
        raise ConfigError(missing=missing, invalid=invalid)

    return Settings(
        project_id=env_str(env, "PROJECT_ID"),
        appwrite_api_key=env_str(env, "APPWRITE_API_KEY"),
        rates_api_key=env_str(env, "RATES_API_KEY"),
        rates_database_id=env_str(env, "RATES1_DATABASE_ID"),
        rates_collection_id=env_str(env, "RATES_COMBINED_COLLECTION_ID"),
        meta_database_id=env_str(env, "CRYPTOMETA_DATABASE_ID"),
        meta_collection_id=env_str(env, "CRYPTOMETA_COLLECTION_ID"),
        crypto_api_key=env_str(env, "CRYPTORANK_API_KEY"),
        crypto_max_pages=max_pages,
        # "1" 외에 true/yes/on 도 켜짐
        migrate=env_flag(env, "MIGRATE_TO_NEW_DB"),
        migrate_meta=env_flag(env, "MIGRATE_CRYPTO_META"),
        legacy_database_id=env_str(env, "DATABASE_ID"),
        legacy_collection_id=env_str(env, "COLLECTION_ID"),
        appwrite_endpoint=(env_str(env, "APPWRITE_ENDPOINT") or DEFAULT_APPWRITE_ENDPOINT).rstrip("/"),
        timezone=tz,
    )
