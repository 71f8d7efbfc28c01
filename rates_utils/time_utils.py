from datetime import date, datetime
from zoneinfo import ZoneInfo

DATE_KEY_FORMAT = "%d%m%Y"


def date_key(now: datetime | None = None, tz: str | None = None) -> str:
    """
    스냅샷 키(DDMMYYYY, 0 패딩). 로케일과 무관하게 일/월/연 순서.
    now 가 없으면 현재 시각. tz(IANA 이름)가 있으면 그 시간대의 날짜,
    없으면 서버 로컬 날짜를 쓴다.
    """
    if now is None:
        now = datetime.now(ZoneInfo(tz)) if tz else datetime.now()
    elif tz:
        if now.tzinfo is None:
            raise ValueError(f"naive datetime can't be converted to {tz!r}")
        now = now.astimezone(ZoneInfo(tz))
    return now.strftime(DATE_KEY_FORMAT)


def parse_date_key(key: str) -> date:
    """
    DDMMYYYY 문자열 검증. 8자리 숫자가 아니거나 실제 달력 날짜가 아니면 ValueError.
    레거시 레코드의 문서 ID를 날짜로 쓰기 전에 반드시 거친다.
    """
    if isinstance(key, bool) or not isinstance(key, str):
        raise TypeError(f"date key must be str, got {type(key).__name__}")
    k = key.strip()
    if len(k) != 8 or not k.isdigit():
        raise ValueError(f"invalid date key: {key!r} (expected 'DDMMYYYY')")
    try:
        return datetime.strptime(k, DATE_KEY_FORMAT).date()
    except ValueError as e:
        raise ValueError(f"invalid date key: {key!r} (not a calendar date)") from e
