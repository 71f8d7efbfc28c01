import os, re
from pathlib import Path
from typing import Mapping

_LINE = re.compile(r'^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$')
_TRUTHY = {"1", "true", "yes", "on"}


def load_env(path: str | os.PathLike = ".env", override: bool = False) -> int:
    """
    .env 파일을 읽어 os.environ에 넣는다.
    KEY=VALUE, 'export KEY=VALUE', 따옴표 값 허용. # 주석/빈 줄은 무시.
    override=False 면 이미 설정된 키는 건드리지 않는다(함수 런타임 환경변수 우선).
    return: 새로 넣은 키 개수
    """
    p = Path(path)
    if not p.exists():
        return 0
    n = 0
    for raw in p.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        m = _LINE.match(line)
        if not m:
            continue
        k, v = m.group(1), m.group(2).strip()
        if (len(v) >= 2) and ((v[0] == v[-1] == '"') or (v[0] == v[-1] == "'")):
            v = v[1:-1]
        if override or (k not in os.environ):
            os.environ[k] = v
            n += 1
    return n


def env_str(environ: Mapping[str, str], key: str) -> str | None:
    # 공백뿐인 값은 미설정으로 본다
    v = environ.get(key)
    if v is None or not v.strip():
        return None
    return v.strip()


def env_flag(environ: Mapping[str, str], key: str) -> bool:
    v = env_str(environ, key)
    return v is not None and v.lower() in _TRUTHY
