"""Contiguous-day completion streak."""

from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Union

from .models import ActivityRecord, day_key, parse_day_key
from .reconciler import MergedView


def compute_streak(merged_view: Union[MergedView, Iterable[ActivityRecord]],
                   today: Optional[Union[date, datetime, str]] = None) -> int:
    """Number of consecutive days with activity, ending at today.

    The walk is anchored at today: no activity today means a streak of 0,
    and the first missing day ends it. Day keys are the stored canonical
    ones; today is canonicalized the same way (UTC) when given as a
    datetime or omitted.
    """
    records = merged_view.records if isinstance(merged_view, MergedView) else list(merged_view)
    days = {record.day_key for record in records}
    if not days:
        return 0

    current = parse_day_key(day_key(today))
    count = 0
    while day_key(current) in days:
        count += 1
        current -= timedelta(days=1)
    return count
