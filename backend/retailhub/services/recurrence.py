"""周期性费用的日期推算"""

import calendar
from datetime import date, timedelta

from retailhub.core.constants import RecurrenceFrequency


def _add_months(d: date, months: int, anchor_day: int) -> date:
    """加若干个月，日期超出当月天数时取月末"""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor_day, last_day))


def advance_due_date(current: date, frequency: str, anchor_day: int = None) -> date:
    """
    计算下一次到期日

    anchor_day 为最初的日号（如 31 号），月份推进时按它取值并按月末截断，
    避免 1/31 → 2/28 → 3/28 的漂移
    """
    anchor = anchor_day or current.day
    if frequency == RecurrenceFrequency.DAILY.value:
        return current + timedelta(days=1)
    if frequency == RecurrenceFrequency.WEEKLY.value:
        return current + timedelta(weeks=1)
    if frequency == RecurrenceFrequency.BIWEEKLY.value:
        return current + timedelta(weeks=2)
    if frequency == RecurrenceFrequency.MONTHLY.value:
        return _add_months(current, 1, anchor)
    if frequency == RecurrenceFrequency.QUARTERLY.value:
        return _add_months(current, 3, anchor)
    if frequency == RecurrenceFrequency.YEARLY.value:
        return _add_months(current, 12, anchor)
    raise ValueError(f"未知的频率: {frequency}")
