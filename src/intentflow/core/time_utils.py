"""时间工具：UTC 时间戳与时长字符串解析"""

import re
from datetime import UTC, datetime, timedelta

from .errors import InvalidInputError

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([dhms])\s*$", re.IGNORECASE)

_UNITS = {
    "d": "days",
    "h": "hours",
    "m": "minutes",
    "s": "seconds",
}


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_duration(value: str) -> timedelta:
    """解析 "7d" / "24h" / "30m" / "45s" 形式的时长

    Raises:
        InvalidInputError: 无法识别的格式
    """
    match = _DURATION_RE.match(value or "")
    if match is None:
        raise InvalidInputError(
            f"Invalid duration '{value}': expected a number followed by d, h, m or s",
            value=value,
        )
    amount, unit = match.groups()
    return timedelta(**{_UNITS[unit.lower()]: int(amount)})


def since_cutoff(since: str | None) -> datetime | None:
    """把时长字符串换算成"从何时开始"的 UTC 时间点"""
    if since is None:
        return None
    return utc_now() - parse_duration(since)


def to_iso(value: datetime) -> str:
    """固定微秒精度的 ISO 字符串，保证 SQLite 中按文本比较即按时间比较"""
    return value.astimezone(UTC).isoformat(timespec="microseconds")
