from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable, TypeVar
from zoneinfo import ZoneInfo

from maintrack.config import settings


class UrgencyCategory(str, Enum):
  unscheduled = "unscheduled"
  overdue = "overdue"
  due_today = "due_today"
  due_soon = "due_soon"
  scheduled_ok = "scheduled_ok"


_URGENCY_RANK = {
  UrgencyCategory.overdue: 0,
  UrgencyCategory.due_today: 1,
  UrgencyCategory.due_soon: 2,
  UrgencyCategory.scheduled_ok: 3,
  UrgencyCategory.unscheduled: 4,
}

ASSET_TYPE_BUCKETS = ("equipment", "vehicle", "building", "machinery", "tool")


@dataclass(frozen=True)
class TaskStatus:
  category: UrgencyCategory
  label: str
  days: int | None = None


def today(tz: str | None = None) -> date:
  """Current calendar day in the schedule timezone (UTC unless configured)."""
  return datetime.now(ZoneInfo(tz or settings.schedule_timezone)).date()


def _as_date(value: date | datetime) -> date:
  if isinstance(value, datetime):
    return value.date()
  return value


def days_until(due: date | datetime, ref: date | datetime) -> int:
  # date subtraction never overflows, so this is total over date.min..date.max
  return (_as_date(due) - _as_date(ref)).days


def classify_due_date(
  next_due_date: date | datetime | None,
  *,
  today: date | datetime | None = None,
  due_soon_days: int | None = None,
) -> TaskStatus:
  """
  Derive a task's urgency from its next due date.

  - no date: unscheduled
  - before today: overdue, `days` is how many days late
  - today: due_today
  - within `due_soon_days` (inclusive): due_soon
  - later: scheduled_ok
  """
  if next_due_date is None:
    return TaskStatus(category=UrgencyCategory.unscheduled, label="Not scheduled", days=None)

  ref = today if today is not None else _today_default()
  window = settings.due_soon_days if due_soon_days is None else due_soon_days
  diff = days_until(next_due_date, ref)

  if diff < 0:
    late = abs(diff)
    return TaskStatus(category=UrgencyCategory.overdue, label=f"Overdue by {late} days", days=late)
  if diff == 0:
    return TaskStatus(category=UrgencyCategory.due_today, label="Due today", days=0)
  if diff <= window:
    return TaskStatus(category=UrgencyCategory.due_soon, label=f"Due in {diff} days", days=diff)
  return TaskStatus(category=UrgencyCategory.scheduled_ok, label=f"Due in {diff} days", days=diff)


def _today_default() -> date:
  return today()


def urgency_rank(category: UrgencyCategory | str) -> int:
  return _URGENCY_RANK[UrgencyCategory(category)]


T = TypeVar("T")


def _due_of(item: Any) -> date | None:
  if isinstance(item, dict):
    return item.get("next_due_date")
  return getattr(item, "next_due_date", None)


def sort_by_due(items: Iterable[T]) -> list[T]:
  """Stable sort on next_due_date ascending; unscheduled rows go last."""
  return sorted(items, key=lambda it: (_due_of(it) is None, _due_of(it) or date.min))


def sort_by_urgency(items: Iterable[T], *, today: date | None = None) -> list[T]:
  ref = today or _today_default()
  return sorted(
    items,
    key=lambda it: (urgency_rank(classify_due_date(_due_of(it), today=ref).category), _due_of(it) or date.max),
  )


def next_due_after(done_on: date, frequency_days: int | None) -> date | None:
  if not frequency_days:
    return None
  try:
    return done_on + timedelta(days=int(frequency_days))
  except OverflowError:
    return date.max


def asset_type_bucket(asset_type: str | None) -> str:
  key = (asset_type or "").strip().lower()
  if key in ASSET_TYPE_BUCKETS:
    return key
  return "other"
