"""
定时器计算
"""
import re
from datetime import datetime, timezone
from typing import Optional

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from ..models.definition import TimerDefinition, TimerKind
from ..models.request import utcnow


_DURATION_RE = re.compile(
    r'^P(?!$)'
    r'(?:(?P<years>\d+)Y)?'
    r'(?:(?P<months>\d+)M)?'
    r'(?:(?P<weeks>\d+)W)?'
    r'(?:(?P<days>\d+)D)?'
    r'(?:T(?=\d)'
    r'(?:(?P<hours>\d+)H)?'
    r'(?:(?P<minutes>\d+)M)?'
    r'(?:(?P<seconds>\d+(?:\.\d+)?)S)?'
    r')?$'
)


def parse_duration(expression: str) -> relativedelta:
    """解析 ISO-8601 时长，例如 PT1H30M、P2D"""
    match = _DURATION_RE.match((expression or "").strip().upper())
    if not match:
        raise ValueError(f"Invalid ISO-8601 duration: '{expression}'")

    parts = {key: value for key, value in match.groupdict().items() if value is not None}
    seconds = float(parts.pop('seconds', 0))
    return relativedelta(
        years=int(parts.get('years', 0)),
        months=int(parts.get('months', 0)),
        weeks=int(parts.get('weeks', 0)),
        days=int(parts.get('days', 0)),
        hours=int(parts.get('hours', 0)),
        minutes=int(parts.get('minutes', 0)),
        seconds=int(seconds),
        microseconds=int(round((seconds - int(seconds)) * 1_000_000))
    )


def parse_date(expression: str) -> datetime:
    """解析 ISO-8601 时间点，统一转换为不带时区的 UTC 时间"""
    value = isoparse((expression or "").strip())
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def schedule_for(timer: TimerDefinition, now: Optional[datetime] = None) -> datetime:
    """计算定时器的到期时间"""
    now = now or utcnow()
    if timer.kind == TimerKind.DURATION:
        return now + parse_duration(timer.expression)
    return parse_date(timer.expression)


def is_due(now: datetime, scheduled_for: Optional[datetime]) -> bool:
    return scheduled_for is not None and scheduled_for <= now
