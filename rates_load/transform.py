"""
원시 응답 → 저장용 스냅샷 변환 (순수 함수).

- fiat: {"CODE": {"value": v}} → [(CODE, v)]  (소스 순서 유지, 정렬하지 않음)
- crypto: rows → [(symbol, price)]  (행 순서, 중복 심볼도 그대로)
- crypto meta: {symbol: {고정 필드}}  (중복 심볼은 마지막 행이 이김)
- 저장 필드는 compact JSON 문자열
"""
from dataclasses import dataclass, field
import json
from typing import Any, Dict, List, Mapping, Sequence, Tuple

Pair = Tuple[str, Any]

# ath/atl 은 {date, value, percentChange}, images 는 {x60, x150, icon, native}: 구조 그대로 보관
META_FIELDS = (
    "id", "name", "rank", "type", "lastUpdated",
    "totalSupply", "maxSupply", "circulatingSupply",
    "price", "high24h", "low24h", "volume24h", "marketCap",
    "ath", "atl", "images",
)


def compact_json(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def to_fiat_pairs(payload: Mapping[str, Any] | None) -> List[Pair]:
    data = (payload or {}).get("data") or {}
    pairs: List[Pair] = []
    for code, entry in data.items():
        value = entry.get("value") if isinstance(entry, Mapping) else None
        pairs.append((code, value))
    return pairs


def to_crypto_pairs(rows: Sequence[Mapping[str, Any]]) -> List[Pair]:
    return [(row.get("symbol"), row.get("price")) for row in rows]


def to_crypto_meta(rows: Sequence[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    meta: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        meta[row.get("symbol")] = {f: row.get(f) for f in META_FIELDS}
    return meta


def build_rates_record(date: str, fiat_pairs: Sequence[Pair], crypto_pairs: Sequence[Pair]) -> Dict[str, str]:
    return {
        "date": date,
        "fiatRates": compact_json([list(p) for p in fiat_pairs]),
        "cryptoRates": compact_json([list(p) for p in crypto_pairs]),
    }


def build_meta_record(date: str, meta: Mapping[str, Any]) -> Dict[str, str]:
    return {"date": date, "cryptoMeta": compact_json(meta)}


@dataclass
class RatesSnapshot:
    """하루치 스냅샷. date 는 DDMMYYYY 키."""

    date: str
    fiat_rates: List[Pair] = field(default_factory=list)
    crypto_rates: List[Pair] = field(default_factory=list)
    crypto_meta: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def has_crypto(self) -> bool:
        return bool(self.crypto_rates)

    def rates_record(self) -> Dict[str, str]:
        return build_rates_record(self.date, self.fiat_rates, self.crypto_rates)

    def meta_record(self) -> Dict[str, str]:
        return build_meta_record(self.date, self.crypto_meta)


def build_snapshot(date: str, fiat_payload: Mapping[str, Any] | None,
                   crypto_rows: Sequence[Mapping[str, Any]]) -> RatesSnapshot:
    return RatesSnapshot(
        date=date,
        fiat_rates=to_fiat_pairs(fiat_payload),
        crypto_rates=to_crypto_pairs(crypto_rows),
        crypto_meta=to_crypto_meta(crypto_rows),
    )
