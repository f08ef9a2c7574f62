import os
import sys
from datetime import date, datetime, timedelta

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from appointment_desk.schemas.appointment import Appointment
from appointment_desk.services.calendar import (
    ScheduleAggregator,
    bucket_key,
    format_minutes,
    group_by_date,
    minutes_since_midnight,
    month_grid_start,
    search_appointments,
    sort_for_list,
    sort_for_management,
    split_date_time,
    status_counts,
    upcoming,
    week_start,
)


def _appointment(appointment_id: str, day: str, time: str, status: str = "booked") -> Appointment:
    return Appointment(id=appointment_id, business_id="biz-1", date=day, time=time, status=status)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("09:15", "09:00"),
        ("09:40", "09:30"),
        ("09:30", "09:30"),
        ("00:00", "00:00"),
        ("23:59", "23:30"),
        ("9:05", "09:00"),
        ("14:29:59", "14:00"),
        ("2024-06-10T09:40:00", "09:30"),
        ("2024-06-10 18:01", "18:00"),
        ("2024-06-10T07:45:00Z", "07:30"),
    ],
)
def test_bucket_key_floors_to_half_hour(value, expected) -> None:
    assert bucket_key(value) == expected


@pytest.mark.parametrize("value", ["", None, "abc", "25:00", "12:75", "2024-06-10", "noon"])
def test_bucket_key_rejects_unparseable_times(value) -> None:
    assert bucket_key(value) is None


def test_bucket_key_matches_formula_for_every_minute() -> None:
    for minutes in range(24 * 60):
        expected = format_minutes((minutes // 30) * 30)
        text = format_minutes(minutes)
        assert bucket_key(text) == expected
        assert bucket_key(f"2024-06-10T{text}:00") == expected
        assert minutes_since_midnight(text) == minutes


def test_split_date_time_keeps_wall_clock() -> None:
    assert split_date_time("2024-06-10T09:15:00") == ("2024-06-10", "09:15")
    assert split_date_time("2024-06-10T21:05:00+08:00") == ("2024-06-10", "21:05")
    with pytest.raises(ValueError):
        split_date_time("next tuesday")


def test_day_view_places_example_appointments() -> None:
    aggregator = ScheduleAggregator()
    first = _appointment("A", "2024-06-10", "09:15")
    second = _appointment("B", "2024-06-10", "09:40")

    view = aggregator.day_view([first, second], "2024-06-10")

    keys = [slot.key for slot in view.slots]
    assert keys[0] == "08:00"
    assert keys[-1] == "20:30"
    assert len(keys) == 26
    slots = {slot.key: slot for slot in view.slots}
    assert [item.id for item in slots["09:00"].appointments] == ["A"]
    assert [item.id for item in slots["09:30"].appointments] == ["B"]
    assert slots["10:00"].is_empty is True
    assert view.unslotted == []


def test_day_view_is_idempotent() -> None:
    aggregator = ScheduleAggregator()
    items = [
        _appointment("A", "2024-06-10", "09:15"),
        _appointment("B", "2024-06-10", "09:40"),
        _appointment("C", "2024-06-10", "09:05"),
    ]
    now = datetime(2024, 6, 10, 9, 10)

    first = aggregator.day_view(items, "2024-06-10", now=now)
    second = aggregator.day_view(items, "2024-06-10", now=now)

    assert first.model_dump() == second.model_dump()
    slots = {slot.key: slot for slot in first.slots}
    assert [item.id for item in slots["09:00"].appointments] == ["C", "A"]


def test_day_view_marks_current_slot_only_on_viewed_date() -> None:
    aggregator = ScheduleAggregator()

    view = aggregator.day_view([], date(2024, 6, 10), now=datetime(2024, 6, 10, 9, 45))
    current = [slot.key for slot in view.slots if slot.is_current]
    assert current == ["09:30"]

    other_day = aggregator.day_view([], date(2024, 6, 11), now=datetime(2024, 6, 10, 9, 45))
    assert not any(slot.is_current for slot in other_day.slots)


def test_day_view_with_no_appointments_keeps_full_grid() -> None:
    view = ScheduleAggregator().day_view([], "2024-06-10")

    assert len(view.slots) == 26
    assert view.slots[-1].key == "20:30"
    assert all(slot.is_empty for slot in view.slots)


def test_day_view_honours_configured_hours() -> None:
    aggregator = ScheduleAggregator(day_start_hour=10, day_end_hour=12)

    view = aggregator.day_view([], "2024-06-10")
    assert [slot.key for slot in view.slots] == ["10:00", "10:30", "11:00", "11:30", "12:00", "12:30"]

    wider = aggregator.day_view([], "2024-06-10", start_hour=6, end_hour=7)
    assert [slot.key for slot in wider.slots] == ["06:00", "06:30", "07:00", "07:30"]


def test_day_view_skips_unparseable_and_out_of_range_times() -> None:
    aggregator = ScheduleAggregator()
    items = [
        _appointment("bad", "2024-06-10", "soon"),
        _appointment("early", "2024-06-10", "07:00"),
        _appointment("ok", "2024-06-10", "11:10"),
        _appointment("other-day", "2024-06-11", "11:10"),
    ]

    view = aggregator.day_view(items, "2024-06-10")

    slotted = [item.id for slot in view.slots for item in slot.appointments]
    assert slotted == ["ok"]
    assert {item.id for item in view.unslotted} == {"bad", "early"}


def test_empty_slot_placeholder_carries_slot_date_time() -> None:
    aggregator = ScheduleAggregator()
    view = aggregator.day_view([], "2024-06-10")
    slot = next(slot for slot in view.slots if slot.key == "10:30")

    placeholder = aggregator.placeholder(slot)

    assert placeholder.date_time == "2024-06-10T10:30:00"


@pytest.mark.parametrize(
    "anchor, expected_start",
    [
        ("2024-06-12", "2024-06-10"),
        ("2024-06-10", "2024-06-10"),
        ("2024-06-16", "2024-06-10"),
        ("2024-06-17", "2024-06-17"),
        ("2024-01-01", "2024-01-01"),
    ],
)
def test_week_start_is_monday(anchor, expected_start) -> None:
    assert week_start(anchor).isoformat() == expected_start


def test_week_window_always_runs_monday_to_sunday() -> None:
    aggregator = ScheduleAggregator()
    anchor = date(2023, 12, 1)
    for offset in range(400):
        day = anchor + timedelta(days=offset)
        view = aggregator.week_view([], day)
        dates = [date.fromisoformat(column.date) for column in view.days]

        assert len(dates) == 7
        assert dates[0].weekday() == 0
        assert dates[-1].weekday() == 6
        assert all(later - earlier == timedelta(days=1) for earlier, later in zip(dates, dates[1:]))
        assert dates[0] <= day <= dates[-1]


def test_week_view_example_window_and_overflow() -> None:
    aggregator = ScheduleAggregator()
    items = [
        _appointment("m1", "2024-06-10", "15:00"),
        _appointment("m2", "2024-06-10", "09:00"),
        _appointment("m3", "2024-06-10", "11:30"),
        _appointment("m4", "2024-06-10", "10:00"),
        _appointment("m5", "2024-06-10", "08:30"),
        _appointment("w1", "2024-06-12", "13:00"),
        _appointment("outside", "2024-06-17", "13:00"),
    ]

    view = aggregator.week_view(items, "2024-06-12", today=date(2024, 6, 12))

    assert view.start_date == "2024-06-10"
    assert view.end_date == "2024-06-16"
    monday, _, wednesday = view.days[0], view.days[1], view.days[2]
    assert monday.weekday == "Mon"
    assert [item.id for item in monday.visible] == ["m5", "m2", "m4"]
    assert monday.overflow == 2
    assert len(monday.appointments) == 5
    assert [item.id for item in wednesday.visible] == ["w1"]
    assert wednesday.overflow == 0
    assert wednesday.is_today is True
    assert all(column.date != "2024-06-17" for column in view.days)


def test_month_grid_has_42_cells_starting_sunday() -> None:
    aggregator = ScheduleAggregator()
    for year in range(2020, 2031):
        for month in range(1, 13):
            view = aggregator.month_view([], date(year, month, 15))
            first = date.fromisoformat(view.cells[0].date)

            assert len(view.cells) == 42
            assert first.weekday() == 6
            assert first <= date(year, month, 1)
            assert first > date(year, month, 1) - timedelta(days=7)


def test_month_grid_start_examples() -> None:
    assert month_grid_start(2024, 6) == date(2024, 5, 26)
    assert month_grid_start(2024, 9) == date(2024, 9, 1)


def test_month_view_counts_statuses_per_day() -> None:
    aggregator = ScheduleAggregator()
    items = [
        _appointment("a", "2024-06-10", "09:00", "booked"),
        _appointment("b", "2024-06-10", "10:00", "completed"),
        _appointment("c", "2024-06-10", "11:00", "canceled"),
        _appointment("d", "2024-06-10", "12:00", "booked"),
        _appointment("e", "2024-06-10", "13:00", "no-show"),
        _appointment("f", "2024-07-02", "09:00", "booked"),
    ]

    view = aggregator.month_view(items, "2024-06-01", today=date(2024, 6, 10))
    cells = {cell.date: cell for cell in view.cells}

    busy = cells["2024-06-10"]
    assert busy.counts.booked == 2
    assert busy.counts.completed == 1
    assert busy.counts.canceled == 1
    assert busy.counts.no_show == 1
    assert busy.total == 5
    assert busy.overflow == 2
    assert busy.is_today is True
    assert busy.in_month is True

    trailing = cells["2024-07-02"]
    assert trailing.in_month is False
    assert trailing.total == 1
    assert cells["2024-05-26"].in_month is False
    assert cells["2024-06-11"].total == 0


def test_timeline_uses_business_hours_and_summarises_day() -> None:
    aggregator = ScheduleAggregator(business_hours=("09:00", "17:00"))
    items = [
        _appointment("a", "2024-06-10", "09:15", "booked"),
        _appointment("b", "2024-06-10", "16:45", "completed"),
        _appointment("c", "2024-06-10", "18:00", "canceled"),
        _appointment("d", "2024-06-11", "10:00", "booked"),
    ]

    view = aggregator.timeline_view(items, "2024-06-10")

    keys = [slot.key for slot in view.slots]
    assert keys[0] == "09:00"
    assert keys[-1] == "17:00"
    assert len(keys) == 17
    assert [item.id for item in view.unslotted] == ["c"]
    assert view.summary.booked == 1
    assert view.summary.completed == 1
    assert view.summary.canceled == 1
    assert view.summary.total == 3


def test_timeline_accepts_explicit_business_hours() -> None:
    view = ScheduleAggregator().timeline_view([], "2024-06-10", business_hours=("07:30", "10:00"))

    assert [slot.key for slot in view.slots] == ["07:00", "07:30", "08:00", "08:30", "09:00", "09:30", "10:00"]
    with pytest.raises(ValueError):
        ScheduleAggregator().timeline_view([], "2024-06-10", business_hours=("late", "10:00"))


def test_list_and_management_orderings_stay_distinct() -> None:
    items = [
        _appointment("b", "2024-06-10", "15:00"),
        _appointment("a", "2024-06-10", "09:00"),
        _appointment("c", "2024-06-12", "08:00"),
        _appointment("d", "2024-06-09", ""),
    ]

    assert [item.id for item in sort_for_list(items)] == ["c", "b", "a", "d"]
    assert [item.id for item in sort_for_management(items)] == ["d", "a", "b", "c"]


def test_group_by_date_in_both_directions() -> None:
    items = [
        _appointment("b", "2024-06-10", "15:00"),
        _appointment("a", "2024-06-10", "09:00"),
        _appointment("c", "2024-06-12", "08:00"),
    ]

    ascending = group_by_date(items)
    assert [group.date for group in ascending] == ["2024-06-10", "2024-06-12"]
    assert [item.id for item in ascending[0].appointments] == ["a", "b"]

    descending = group_by_date(items, descending=True)
    assert [group.date for group in descending] == ["2024-06-12", "2024-06-10"]
    assert [item.id for item in descending[1].appointments] == ["b", "a"]


def test_status_counts_totals() -> None:
    counts = status_counts(
        [
            _appointment("a", "2024-06-10", "09:00", "booked"),
            _appointment("b", "2024-06-10", "09:00", "canceled"),
        ]
    )

    assert counts.booked == 1
    assert counts.canceled == 1
    assert counts.total == 2


def test_day_view_last_hour_keeps_half_hour_slot() -> None:
    aggregator = ScheduleAggregator()
    late = _appointment("late", "2024-06-10", "20:40")
    too_late = _appointment("too-late", "2024-06-10", "21:00")

    view = aggregator.day_view([late, too_late], "2024-06-10")

    slots = {slot.key: slot for slot in view.slots}
    assert [item.id for item in slots["20:30"].appointments] == ["late"]
    assert [item.id for item in view.unslotted] == ["too-late"]


def test_timeline_stops_on_the_closing_hour() -> None:
    view = ScheduleAggregator().timeline_view([], "2024-06-10", business_hours=("09:00", "17:00"))

    assert view.slots[-1].key == "17:00"
    assert "17:30" not in {slot.key for slot in view.slots}


def test_week_view_weekday_names_are_fixed() -> None:
    view = ScheduleAggregator().week_view([], "2024-06-10")

    assert [column.weekday for column in view.days] == ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def _customer_appointment(appointment_id, customer, phone, service):
    return Appointment(
        id=appointment_id,
        date="2024-06-10",
        time="09:00",
        customer_name=customer,
        customer_phone=phone,
        service_name=service,
    )


def test_search_matches_customer_service_and_phone() -> None:
    items = [
        _customer_appointment("a", "Alex Tan", "5550101", "Signature Haircut"),
        _customer_appointment("b", "Jamie Lee", "5550102", "Beard Trim"),
        _customer_appointment("c", None, None, None),
    ]

    assert [item.id for item in search_appointments(items, "alex")] == ["a"]
    assert [item.id for item in search_appointments(items, "BEARD")] == ["b"]
    assert [item.id for item in search_appointments(items, "0102")] == ["b"]
    assert search_appointments(items, "nobody") == []
    assert [item.id for item in search_appointments(items, "  ")] == ["a", "b", "c"]
    assert [item.id for item in search_appointments(items, None)] == ["a", "b", "c"]


def test_upcoming_keeps_future_booked_only() -> None:
    now = datetime(2024, 6, 10, 12, 0)
    items = [
        _appointment("past", "2024-06-10", "11:30"),
        _appointment("later-today", "2024-06-10", "12:30"),
        _appointment("tomorrow-midnight", "2024-06-11", ""),
        _appointment("future-done", "2024-06-12", "09:00", "completed"),
        _appointment("broken", "2024-06-12", "soon"),
    ]

    assert [item.id for item in upcoming(items, now)] == ["later-today", "tomorrow-midnight"]
