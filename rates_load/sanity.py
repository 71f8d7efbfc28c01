from dataclasses import dataclass, field
from typing import Any, List, Sequence, Tuple

from rates_utils.errors import SanityCheckError
from rates_utils.logging_config import get_logger
from rates_utils.logger import with_context

log = with_context(get_logger(__name__), svc="sanity")

REQUIRED_FIAT = ("USD", "EUR", "RUB")
BENCHMARK_CRYPTO = "BTC"


@dataclass(frozen=True)
class SanityReport:
    missing_fiat: List[str] = field(default_factory=list)
    has_btc: bool = False

    @property
    def ok(self) -> bool:
        return not self.missing_fiat and self.has_btc


def sanity_report(fiat_pairs: Sequence[Tuple[str, Any]],
                  crypto_pairs: Sequence[Tuple[str, Any]]) -> SanityReport:
    codes = {code for code, _ in fiat_pairs}
    return SanityReport(
        missing_fiat=[c for c in REQUIRED_FIAT if c not in codes],
        has_btc=any(sym == BENCHMARK_CRYPTO for sym, _ in crypto_pairs),
    )


def check_sanity(fiat_pairs, crypto_pairs) -> SanityReport:
    """필수 fiat 코드나 BTC 가 빠지면 SanityCheckError. 이 경우 아무것도 쓰지 않는다."""
    report = sanity_report(fiat_pairs, crypto_pairs)
    log.info("sanity_check", extra={"missing_fiat": report.missing_fiat, "has_btc": report.has_btc})
    if not report.ok:
        raise SanityCheckError(report.missing_fiat, report.has_btc)
    return report
