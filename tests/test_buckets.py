from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from organic_mind import buckets
from organic_mind.buckets import Bucket

# Wednesday; the surrounding week runs Sun 2024-06-09 .. Sat 2024-06-15
NOW = datetime(2024, 6, 12, 12, 0)


def T(title='t', due=None, completed=False, created=None, description=None, list_id=None, has_time=True):
    return SimpleNamespace(
        title=title,
        description=description,
        due_date=due,
        due_has_time=has_time,
        completed=completed,
        created_at=created or datetime(2024, 1, 1, tzinfo=timezone.utc),
        list_id=list_id,
    )


def test_week_bounds_start_on_sunday():
    assert buckets.week_bounds(date(2024, 6, 12)) == (date(2024, 6, 9), date(2024, 6, 15))
    assert buckets.week_bounds(date(2024, 6, 9)) == (date(2024, 6, 9), date(2024, 6, 15))
    assert buckets.week_bounds(date(2024, 6, 15)) == (date(2024, 6, 9), date(2024, 6, 15))


@pytest.mark.parametrize('due,expected', [
    (None, Bucket.LATER),
    (datetime(2024, 6, 11, 23, 59), Bucket.OVERDUE),
    (datetime(2024, 6, 12, 0, 0), Bucket.TODAY),
    (datetime(2024, 6, 12, 23, 0), Bucket.TODAY),
    (datetime(2024, 6, 13, 8, 0), Bucket.TOMORROW),
    (datetime(2024, 6, 15, 8, 0), Bucket.THIS_WEEK),
    (datetime(2024, 6, 16, 8, 0), Bucket.LATER),
])
def test_classify(due, expected):
    assert buckets.classify(T(due=due), NOW) is expected


def test_today_ignores_time_of_day():
    # a task due earlier today is still "today", not overdue
    assert buckets.classify(T(due=datetime(2024, 6, 12, 9, 0)), datetime(2024, 6, 12, 19, 0)) is Bucket.TODAY


def test_completed_past_task_is_not_overdue():
    t = T(due=datetime(2024, 6, 11), completed=True)
    assert buckets.classify(t, NOW) is Bucket.PAST
    out = buckets.bucketize([t], NOW)
    assert out[Bucket.OVERDUE] == [] and out[Bucket.PAST] == []
    out = buckets.bucketize([t], NOW, show_completed=True)
    assert out[Bucket.PAST] == [t]


def test_merged_upcoming():
    tomorrow = T(due=datetime(2024, 6, 13))
    next_month = T(due=datetime(2024, 7, 20))
    undated = T()
    rows = buckets.filter_tasks([undated, next_month, tomorrow], 'upcoming', NOW)
    assert rows == [tomorrow, next_month]
    assert buckets.classify(undated, NOW, merge_upcoming=True) is Bucket.LATER


def test_every_visible_task_lands_in_exactly_one_bucket():
    tasks = [T(due=NOW + timedelta(days=d)) for d in range(-3, 12)] + [T()]
    out = buckets.bucketize(tasks, NOW)
    placed = [t for rows in out.values() for t in rows]
    assert len(placed) == len(tasks)
    assert {id(t) for t in placed} == {id(t) for t in tasks}


def test_undated_sort_last():
    a = T('a', due=datetime(2024, 6, 20))
    b = T('b')
    c = T('c', due=datetime(2024, 6, 1))
    assert buckets.sort_tasks([b, a, c]) == [c, a, b]


def test_sort_overrides():
    old = T('Banana', created=datetime(2024, 1, 1, tzinfo=timezone.utc))
    new = T('apple', created=datetime(2024, 5, 1, tzinfo=timezone.utc))
    assert buckets.sort_tasks([old, new], 'created') == [new, old]
    assert buckets.sort_tasks([old, new], 'title') == [new, old]
    # unknown keys fall back to due order
    assert buckets.sort_tasks([old, new], 'bogus') == [old, new]


def test_search_matches_title_and_description():
    a = T('Buy milk')
    b = T('Call', description='about the MILK order')
    c = T('Other')
    assert buckets.search([a, b, c], 'milk') == [a, b]
    assert buckets.search([a, b, c], '') == [a, b, c]


def test_example_scenario():
    t1 = T('1', due=datetime(2024, 6, 12, 9, 0))
    t2 = T('2', due=datetime(2024, 6, 12, 23, 0), completed=True)
    t3 = T('3', due=datetime(2024, 6, 11))
    t4 = T('4')
    tasks = [t1, t2, t3, t4]
    assert buckets.filter_tasks(tasks, 'today', NOW) == [t1]
    unfiltered = buckets.filter_tasks(tasks, None, NOW)
    assert t2 not in unfiltered
    assert set(map(id, unfiltered)) == {id(t1), id(t3), id(t4)}
    assert buckets.classify(t4, NOW) is Bucket.LATER


def test_today_filter_has_no_false_positives_or_negatives():
    tasks = [
        T(due=datetime(2024, 6, 11, 10)),
        T(due=datetime(2024, 6, 12, 0, 1)),
        T(due=datetime(2024, 6, 12, 23, 59)),
        T(due=datetime(2024, 6, 13, 0, 0)),
        T(),
    ]
    rows = buckets.filter_tasks(tasks, 'today', NOW)
    assert rows == tasks[1:3]
    assert all(buckets.calendar_day(t.due_date) == NOW.date() for t in rows)


@pytest.mark.parametrize('name', ['', 'nonsense', 'TODAYS', 'inbox'])
def test_unknown_filter_falls_back_to_unfiltered(name):
    tasks = [T(due=datetime(2024, 6, 11)), T(), T(completed=True), T(due=datetime(2024, 6, 30))]
    assert buckets.filter_tasks(tasks, name, NOW) == buckets.filter_tasks(tasks, None, NOW)
    assert len(buckets.filter_tasks(tasks, name, NOW)) == 3


def test_list_filters_match_template_clones():
    own = T('mine', list_id='u1-work')
    glob = T('global', list_id='work')
    other = T('other', list_id='u1-personal')
    rows = buckets.filter_tasks([own, glob, other], 'Work', NOW, list_templates={'u1-work': 'work', 'u1-personal': 'personal'})
    assert {t.title for t in rows} == {'mine', 'global'}


def test_filter_name_is_case_insensitive():
    t = T(due=datetime(2024, 6, 12, 9))
    assert buckets.filter_tasks([t], 'TODAY', NOW) == [t]


def test_aware_due_dates_use_reference_timezone():
    # 2024-06-12 23:30 UTC is already the 13th in Melbourne
    due = datetime(2024, 6, 12, 23, 30, tzinfo=timezone.utc)
    now = datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc)
    assert buckets.classify(T(due=due), now, tz='UTC') is Bucket.TODAY
    assert buckets.classify(T(due=due), now, tz='Australia/Melbourne') is Bucket.TOMORROW


def test_stored_due_values_are_read_in_viewing_timezone():
    # stored 2024-06-11 21:00 UTC is 09:00 on the 12th in Auckland
    timed = T('timed', due=datetime(2024, 6, 11, 21, 0))
    now = datetime(2024, 6, 12, 12, 0)
    assert buckets.classify(timed, now, tz='Pacific/Auckland') is Bucket.TODAY
    assert buckets.classify(timed, now) is Bucket.OVERDUE
    assert buckets.due_day(timed, 'Pacific/Auckland') == date(2024, 6, 12)
    # a date-only value names the same day everywhere
    date_only = T('date', due=datetime(2024, 6, 12), has_time=False)
    assert buckets.due_day(date_only, 'America/Los_Angeles') == date(2024, 6, 12)
    assert buckets.classify(date_only, now, tz='Pacific/Auckland') is Bucket.TODAY
    assert buckets.tasks_on([timed, date_only], date(2024, 6, 12), tz='Pacific/Auckland') == [date_only, timed]


def test_group_by_day():
    a = T('a', due=datetime(2024, 6, 14, 10))
    b = T('b', due=datetime(2024, 6, 13, 9))
    c = T('c', due=datetime(2024, 6, 14, 8))
    groups = buckets.group_by_day([a, b, c, T('undated')], NOW)
    assert groups == [(date(2024, 6, 13), [b]), (date(2024, 6, 14), [c, a])]


def test_week_schedule_and_workload():
    tasks = [
        T(due=datetime(2024, 6, 9, 10)),
        T(due=datetime(2024, 6, 12, 10)),
        T(due=datetime(2024, 6, 12, 11), completed=True),
        T(due=datetime(2024, 6, 19)),
        T(),
    ]
    schedule = buckets.week_schedule(tasks, date(2024, 6, 12))
    assert [d for d, _ in schedule] == [date(2024, 6, 9) + timedelta(days=i) for i in range(7)]
    assert [len(rows) for _, rows in schedule] == [1, 0, 0, 1, 0, 0, 0]
    assert buckets.workload(tasks, NOW) == {
        'pending': 4,
        'overdue': 1,
        'due_today': 1,
        'upcoming_week': 1,
        'completed': 1,
    }


def test_time_remaining():
    assert buckets.time_remaining(T(), NOW) is None
    timed = T(due=datetime(2024, 6, 12, 15, 0))
    assert buckets.time_remaining(timed, NOW) == timedelta(hours=3)
    date_only = T(due=datetime(2024, 6, 12), has_time=False)
    assert buckets.time_remaining(date_only, NOW) > timedelta(hours=11)
    assert buckets.time_remaining(T(due=datetime(2024, 6, 11, 12)), NOW) < timedelta(0)
