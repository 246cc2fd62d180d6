from __future__ import annotations

from datetime import datetime, timezone


def parse_ts_arg_to_ms(s: str) -> int:
    """
    CLI timestamps. Accepts:
      - raw epoch ms: 1700000000000
      - 2017-08-17T00:00:00Z / 2017-08-17T00:00:00+00:00
      - 2017-08-17T00:00:00 or 2017-08-17 (assumed UTC)
    """
    ss = s.strip()
    if ss.isdigit():
        return int(ss)
    if ss.endswith("Z"):
        ss = ss[:-1] + "+00:00"

    dt = datetime.fromisoformat(ss)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return int(dt.astimezone(timezone.utc).timestamp() * 1000)


def fmt_ms(ts_ms: int) -> str:
    # 1700000000000 -> "2023-11-14T22:13:20Z"
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def now_ms() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)
