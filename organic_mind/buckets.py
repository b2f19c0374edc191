"""Date bucketing and named filters for tasks.

Every view (today, upcoming, pending, calendar, time management) and the
``/api/tasks/filter/{name}`` endpoint goes through this module, so there is a
single definition of "overdue", "this week" and friends.

Functions here are pure: they never read the wall clock. Callers pass the
reference instant ``now`` and, optionally, the IANA timezone used to turn
timestamps into calendar days (``config.DEFAULT_TIMEZONE`` by default).
A naive ``now`` is wall-clock time in that zone; naive due values are
wall-clock time in ``config.DEFAULT_TIMEZONE``, where they are stored.

Tasks are duck-typed. Anything with ``due_date``, ``completed``,
``created_at``, ``title``, ``description`` and ``list_id`` attributes works
(``models.TaskItem`` rows in practice); ``due_has_time`` is optional.
"""
from datetime import date, datetime, time, timedelta, timezone
import enum
from typing import Iterable, Mapping, Optional, Sequence

from .utils import due_wall_clock, to_wall_clock


class Bucket(str, enum.Enum):
    OVERDUE = 'overdue'
    TODAY = 'today'
    TOMORROW = 'tomorrow'
    THIS_WEEK = 'this_week'
    UPCOMING = 'upcoming'
    LATER = 'later'
    # completed tasks whose due day has passed; only seen with show_completed
    PAST = 'past'


# Display order for bucketize(). UPCOMING is absent: it only exists in the
# merged single-bucket mode.
BUCKET_ORDER = (
    Bucket.OVERDUE,
    Bucket.TODAY,
    Bucket.TOMORROW,
    Bucket.THIS_WEEK,
    Bucket.LATER,
    Bucket.PAST,
)

# Named filters that select a single bucket.
BUCKET_FILTERS = {
    'today': Bucket.TODAY,
    'upcoming': Bucket.UPCOMING,
    'overdue': Bucket.OVERDUE,
    'tomorrow': Bucket.TOMORROW,
    'week': Bucket.THIS_WEEK,
    'this-week': Bucket.THIS_WEEK,
    'this_week': Bucket.THIS_WEEK,
    'later': Bucket.LATER,
}

# Named filters that select the tasks of a default list.
LIST_FILTERS = ('work', 'personal', 'list1')

SORT_KEYS = ('due', 'created', 'title')


def calendar_day(value: datetime, tz: str | None = None) -> date:
    """Calendar date of ``value`` as seen in the reference timezone.

    Naive values are taken to be wall-clock time in ``tz`` already; use
    due_day for stored due values.
    """
    return to_wall_clock(value, tz).date()


def due_local(task, tz: str | None = None) -> datetime:
    return due_wall_clock(task.due_date, getattr(task, 'due_has_time', True), tz)


def due_day(task, tz: str | None = None) -> date:
    """Calendar date a task is due on, as seen from ``tz``."""
    return due_local(task, tz).date()


def week_bounds(day: date) -> tuple[date, date]:
    """Return (sunday, saturday) of the week containing ``day``."""
    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def classify(task, now: datetime, tz: str | None = None, merge_upcoming: bool = False) -> Bucket:
    """Assign ``task`` to exactly one bucket relative to ``now``.

    Comparisons use calendar days, never instants, so a task due at 18:00
    today is "today" at noon and still "today" at 19:00.

    With ``merge_upcoming`` the tomorrow, this-week and dated later buckets
    collapse into UPCOMING. Undated tasks stay in LATER either way.
    """
    due = task.due_date
    if due is None:
        return Bucket.LATER
    today = calendar_day(now, tz)
    day = due_day(task, tz)
    if day < today:
        return Bucket.PAST if task.completed else Bucket.OVERDUE
    if day == today:
        return Bucket.TODAY
    if merge_upcoming:
        return Bucket.UPCOMING
    if day == today + timedelta(days=1):
        return Bucket.TOMORROW
    _, week_end = week_bounds(today)
    if day <= week_end:
        return Bucket.THIS_WEEK
    return Bucket.LATER


def visible(tasks: Iterable, show_completed: bool = False) -> list:
    if show_completed:
        return list(tasks)
    return [t for t in tasks if not t.completed]


def _utc_key(dt: datetime | None) -> datetime:
    if dt is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def sort_tasks(tasks: Iterable, sort: str = 'due', tz: str | None = None) -> list:
    """Sort a task sequence.

    ``due`` (default): ascending due time, undated tasks last.
    ``created``: newest first. ``title``: case-insensitive alphabetical.
    The overrides replace the due-date order rather than refining it.
    Unknown keys sort by due date.
    """
    rows = list(tasks)
    if sort == 'created':
        return sorted(rows, key=lambda t: _utc_key(t.created_at), reverse=True)
    if sort == 'title':
        return sorted(rows, key=lambda t: (t.title or '').casefold())

    def _due_key(t):
        if t.due_date is None:
            return (1, datetime.min)
        return (0, due_local(t, tz))

    return sorted(rows, key=_due_key)


def search(tasks: Iterable, query: str | None) -> list:
    """Case-insensitive substring match on title and description."""
    rows = list(tasks)
    if not query:
        return rows
    needle = query.casefold()
    return [
        t for t in rows
        if needle in (t.title or '').casefold() or needle in (t.description or '').casefold()
    ]


def in_default_list(task, name: str, list_templates: Mapping[str, str] | None = None) -> bool:
    """True when the task sits in default list ``name`` (e.g. 'work').

    Matches the global template id directly, or a per-user clone whose
    template is ``name`` via the ``list_templates`` id -> template map.
    """
    if task.list_id is None:
        return False
    if task.list_id == name:
        return True
    return bool(list_templates) and list_templates.get(task.list_id) == name


def filter_tasks(
    tasks: Iterable,
    name: str | None,
    now: datetime,
    *,
    tz: str | None = None,
    show_completed: bool = False,
    list_id: str | None = None,
    query: str | None = None,
    sort: str = 'due',
    list_templates: Mapping[str, str] | None = None,
) -> list:
    """Apply a named filter.

    Unrecognised names (including '' and None) are not an error: no bucket
    or list restriction is applied and every task passing the completion
    visibility rule comes back.
    """
    rows = visible(tasks, show_completed)
    if list_id:
        rows = [t for t in rows if t.list_id == list_id]
    rows = search(rows, query)
    key = (name or '').strip().lower()
    if key in BUCKET_FILTERS:
        wanted = BUCKET_FILTERS[key]
        merge = wanted is Bucket.UPCOMING
        rows = [t for t in rows if classify(t, now, tz, merge_upcoming=merge) is wanted]
    elif key in LIST_FILTERS:
        rows = [t for t in rows if in_default_list(t, key, list_templates)]
    return sort_tasks(rows, sort, tz)


def bucketize(
    tasks: Iterable,
    now: datetime,
    *,
    tz: str | None = None,
    show_completed: bool = False,
    sort: str = 'due',
) -> dict[Bucket, list]:
    out: dict[Bucket, list] = {b: [] for b in BUCKET_ORDER}
    for t in visible(tasks, show_completed):
        out[classify(t, now, tz)].append(t)
    return {b: sort_tasks(rows, sort, tz) for b, rows in out.items()}


def group_by_day(
    tasks: Iterable,
    now: datetime,
    *,
    tz: str | None = None,
    show_completed: bool = False,
) -> list[tuple[date, list]]:
    """Upcoming tasks grouped per calendar day, days ascending."""
    groups: dict[date, list] = {}
    for t in filter_tasks(tasks, 'upcoming', now, tz=tz, show_completed=show_completed):
        groups.setdefault(due_day(t, tz), []).append(t)
    return sorted(groups.items())


def tasks_on(tasks: Iterable, day: date, *, tz: str | None = None, show_completed: bool = False) -> list:
    rows = [
        t for t in visible(tasks, show_completed)
        if t.due_date is not None and due_day(t, tz) == day
    ]
    return sort_tasks(rows, 'due', tz)


def week_schedule(tasks: Sequence, day: date, *, tz: str | None = None) -> list[tuple[date, list]]:
    """Seven (day, incomplete tasks due that day) pairs, Sunday first."""
    start, _ = week_bounds(day)
    return [
        (start + timedelta(days=i), tasks_on(tasks, start + timedelta(days=i), tz=tz))
        for i in range(7)
    ]


def workload(tasks: Sequence, now: datetime, *, tz: str | None = None) -> dict[str, int]:
    """Counters for the time-management dashboard."""
    today = calendar_day(now, tz)
    horizon = today + timedelta(days=7)
    pending = [t for t in tasks if not t.completed]
    upcoming_week = [
        t for t in pending
        if t.due_date is not None and today < due_day(t, tz) <= horizon
    ]
    return {
        'pending': len(pending),
        'overdue': sum(1 for t in pending if classify(t, now, tz) is Bucket.OVERDUE),
        'due_today': sum(1 for t in pending if classify(t, now, tz) is Bucket.TODAY),
        'upcoming_week': len(upcoming_week),
        'completed': len(tasks) - len(pending),
    }


def time_remaining(task, now: datetime, tz: str | None = None) -> Optional[timedelta]:
    """Instant-based time left until the task is due, for display only.

    A date-only due value counts until the end of that day. Negative results
    mean the deadline has passed; bucket assignment never uses this.
    """
    if task.due_date is None:
        return None
    deadline = due_local(task, tz)
    if not getattr(task, 'due_has_time', True):
        deadline = datetime.combine(deadline.date(), time.max)
    return deadline - to_wall_clock(now, tz)
