"""
# 일일 환율 스냅샷 잡

## 📌 개요
- 법정화폐 환율(currencyapi)과 암호화폐 시세/메타(cryptorank)를 받아
  검증 후 Appwrite 문서 DB에 날짜(DDMMYYYY)별 스냅샷으로 업서트한다.
- 스케줄러가 한 번 호출하면 끝까지 실행하고 종료한다. 같은 날 재실행은 갱신(중복 X).

## 🔁 흐름
1. 환경변수 → Settings (빠진 키 목록과 함께 즉시 실패)
2. fiat / crypto 병렬 수집 (각각 결과/실패를 따로 받음)
3. 변환 → sanity check (USD, EUR, RUB, BTC)
4. 환율 업서트(조회 → 갱신/생성, 실패 시 날짜 ID) → 메타 업서트(날짜 ID)
5. MIGRATE_TO_NEW_DB=1 이면 레거시 컬렉션 이관(실패해도 잡은 성공)

## 📤 결과
- 성공: {"ok": true, "ratesDocId": ..., "date": ..., ...}
- 실패: {"ok": false, "error": "...", 진단 필드}
"""
import json
import os
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from rates_load.crypto import fetch_crypto_market_data
from rates_load.fiat import fetch_fiat_rates
from rates_load.sanity import check_sanity
from rates_load.transform import build_snapshot
from rates_store.documents import AppwriteDocumentStore, DocumentStore
from rates_store.migration import LegacyMigrator
from rates_store.upsert import CollectionRef, upsert_meta, upsert_rates
from rates_utils.config import Settings, load_settings
from rates_utils.env_utils import env_flag, env_str, load_env
from rates_utils.errors import ConfigError, RatesJobError, UpstreamFetchError
from rates_utils.logger import attached_hooks, timeit, with_context
from rates_utils.logging_config import get_logger, setup_logging
from rates_utils.supervisor import JobSupervisor
from rates_utils.time_utils import date_key

log = with_context(get_logger(__name__), svc="rates-job")

ROOT = Path(__file__).resolve().parent


def _failure(error: str, **extra) -> Dict[str, Any]:
    log.error("run_failed", extra={"error": error, **{k: v for k, v in extra.items() if k != "stack"}})
    return {"ok": False, "error": str(error), **extra}


def fetch_all(settings: Settings, supervisor: JobSupervisor) -> Tuple[Dict[str, Any], list]:
    """fiat/crypto 를 동시에 받는다. 두 결과를 모두 기다린 뒤 실패한 쪽을 올린다(fiat 우선)."""
    log.info("fetch_parallel_begin")
    fiat_f = supervisor.submit("fiat", fetch_fiat_rates, settings.rates_api_key)
    crypto_f = supervisor.submit("crypto", fetch_crypto_market_data,
                                 settings.crypto_api_key, settings.crypto_max_pages)
    fiat, crypto = supervisor.settle(fiat_f, crypto_f)

    for outcome in (fiat, crypto):
        if outcome.ok:
            continue
        if isinstance(outcome.error, UpstreamFetchError):
            raise outcome.error.for_source(outcome.name)
        raise outcome.error

    fiat_codes = len((fiat.value or {}).get("data") or {})
    log.info("fetch_parallel_done", extra={"fiat_codes": fiat_codes, "crypto_rows": len(crypto.value)})
    return fiat.value, crypto.value


def run_migration(store: DocumentStore, settings: Settings) -> Optional[Dict[str, Any]]:
    """레거시 이관. 어떤 예외든 로그만 남기고 잡 결과에는 요약만 싣는다."""
    if not settings.has_legacy_store:
        log.warning("migration_skipped", extra={"reason": "DATABASE_ID/COLLECTION_ID not set"})
        return None
    try:
        stats = LegacyMigrator(
            store,
            legacy=CollectionRef(settings.legacy_database_id, settings.legacy_collection_id),
            rates=CollectionRef(settings.rates_database_id, settings.rates_collection_id),
            meta=CollectionRef(settings.meta_database_id, settings.meta_collection_id),
            migrate_meta=settings.migrate_meta,
        ).run()
    except Exception as e:
        log.error("migration_crashed", exc_info=True)
        return {"error": str(e)}
    return stats.as_dict()


def _pipeline(settings: Settings, store: Optional[DocumentStore], now: Optional[datetime]) -> Dict[str, Any]:
    with JobSupervisor(max_workers=2) as supervisor:
        fiat_payload, crypto_rows = fetch_all(settings, supervisor)

    key = date_key(now, settings.timezone)
    log.info("date_key", extra={"date": key})
    snapshot = build_snapshot(key, fiat_payload, crypto_rows)
    check_sanity(snapshot.fiat_rates, snapshot.crypto_rates)

    own_store = store is None
    if own_store:
        store = AppwriteDocumentStore(settings.appwrite_endpoint, settings.project_id,
                                      settings.appwrite_api_key)
    try:
        rates = upsert_rates(store, CollectionRef(settings.rates_database_id, settings.rates_collection_id),
                             key, snapshot.rates_record())
        result: Dict[str, Any] = {
            "ok": True,
            "ratesDocId": rates.doc_id,
            "date": key,
            "ratesAction": rates.action,
            "ratesStrategy": rates.strategy,
            "metaDocId": None,
        }

        if snapshot.has_crypto:
            meta = upsert_meta(store, CollectionRef(settings.meta_database_id, settings.meta_collection_id),
                               key, snapshot.meta_record())
            result["metaDocId"] = meta.doc_id
        else:
            log.info("crypto_meta_skipped", extra={"reason": "no crypto rows"})

        if settings.migrate:
            result["migration"] = run_migration(store, settings)
    finally:
        if own_store:
            store.close()

    log.info("run_done", extra={"ratesDocId": result["ratesDocId"]})
    return result


@timeit(log, "rates_job")
def run_job(
    settings: Optional[Settings] = None,
    *,
    environ=None,
    store: Optional[DocumentStore] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    잡 1회 실행. 예외를 밖으로 던지지 않고 항상 결과 dict 를 돌려준다.
    settings 가 없으면 environ(기본 os.environ)에서 읽는다.
    store 를 넘기면 그 스토어를 쓰고 닫지 않는다.
    """
    log.info("start_execution")
    try:
        if settings is None:
            settings = load_settings(environ)
    except ConfigError as e:
        # 네트워크 호출 전에 종료
        return _failure(e.message, **e.details())

    try:
        return _pipeline(settings, store, now)
    except RatesJobError as e:
        return _failure(e.message, **e.details())
    except Exception as e:
        log.error("fatal", exc_info=True, extra={"err": repr(e)})
        return _failure("Fatal error", reason=repr(e), stack=traceback.format_exc())


def configure_logging(environ=None) -> None:
    """LOG_PATH / LOG_LEVEL / LOG_JSON. Settings 보다 먼저 불려서 환경변수를 직접 읽는다."""
    env = os.environ if environ is None else environ
    setup_logging(
        log_path=env_str(env, "LOG_PATH"),
        level=env_str(env, "LOG_LEVEL") or "INFO",
        json_format=env_flag(env, "LOG_JSON"),
    )


def main(context: Any = None) -> Any:
    """
    함수 런타임 진입점.
    context.log / context.error 가 있으면 실행 동안 로그를 그쪽으로도 보내고,
    context.res.json 이 있으면 결과를 그것으로 응답한다. 없으면 dict 반환.
    """
    with attached_hooks(getattr(context, "log", None), getattr(context, "error", None)):
        try:
            configure_logging()
        except OSError as e:
            # 예: 쓸 수 없는 LOG_PATH
            result = _failure("Logging setup failed", reason=repr(e), logPath=os.environ.get("LOG_PATH"))
        else:
            result = run_job()

    res = getattr(context, "res", None)
    if res is not None and callable(getattr(res, "json", None)):
        return res.json(result)
    return result


if __name__ == "__main__":
    load_env(ROOT / ".env")
    outcome = main()
    print(json.dumps(outcome, ensure_ascii=False, indent=2))
    sys.exit(0 if outcome.get("ok") else 1)
