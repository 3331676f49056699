"""Tests for birthdays, upcoming lists and reminder scheduling."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from garden.config import GardenConfig
from garden.core import Garden
from garden.errors import EntityNotFoundError
from garden.store.birthdays import NotificationScheduler, ReminderRequest, next_occurrence, parse_birthday


class FakeScheduler:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.scheduled: list[ReminderRequest] = []
        self.cancelled: list[str] = []
        self.fail_for = fail_for or set()

    def schedule_birthday_reminder(self, request: ReminderRequest) -> str:
        if request.entity_name in self.fail_for:
            raise RuntimeError("notification service unavailable")
        self.scheduled.append(request)
        return f"n-{request.entity_id}"

    def cancel(self, handle: str) -> None:
        self.cancelled.append(handle)


@pytest.fixture
def garden(tmp_path: Path):
    g = Garden(GardenConfig(data_dir=tmp_path, db_path=tmp_path / "garden.db", photos_dir=tmp_path / "photos"))
    g.start()
    yield g
    g.close()


class TestParsing:
    def test_full_date(self):
        assert parse_birthday("1990-06-10") == (1990, 6, 10)

    def test_without_year(self):
        assert parse_birthday("NOYR:02-29") == (None, 2, 29)

    @pytest.mark.parametrize("value", ["1990-13-01", "1990-02-30", "NOYR:13-01", "10/06/1990", ""])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_birthday(value)

    def test_next_occurrence(self):
        assert next_occurrence(6, 10, date(2024, 6, 10)) == date(2024, 6, 10)
        assert next_occurrence(1, 5, date(2024, 6, 10)) == date(2025, 1, 5)
        assert next_occurrence(2, 29, date(2023, 2, 1)) == date(2023, 2, 28)
        assert next_occurrence(2, 29, date(2024, 2, 1)) == date(2024, 2, 29)


class TestBirthdayBook:
    def test_set_and_clear(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        assert garden.birthdays.get_birthday(eid) == "1990-06-10"
        garden.birthdays.set_birthday(eid, None)
        assert garden.birthdays.get_birthday(eid) is None

    def test_rejects_invalid_and_non_persons(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        group = garden.entities.create_entity("Team", "group")
        with pytest.raises(ValueError):
            garden.birthdays.set_birthday(eid, "1990-02-30")
        with pytest.raises(ValueError):
            garden.birthdays.set_birthday(group, "1990-06-10")
        with pytest.raises(EntityNotFoundError):
            garden.birthdays.set_birthday("missing", "1990-06-10")

    def test_upcoming(self, garden: Garden):
        ann = garden.entities.create_entity("Ann", "person")
        bob = garden.entities.create_entity("Bob", "person")
        cid = garden.entities.create_entity("Cid", "person")
        garden.birthdays.set_birthday(ann, "1990-06-10")
        garden.birthdays.set_birthday(bob, "NOYR:06-02")
        garden.birthdays.set_birthday(cid, "1985-12-25")

        upcoming = garden.birthdays.upcoming_birthdays(days=30, today=date(2024, 6, 1))

        assert [(u.entity.id, u.days_until, u.turning) for u in upcoming] == [(bob, 1, None), (ann, 9, 34)]
        assert upcoming[1].next_date == date(2024, 6, 10)

    def test_upcoming_leap_day(self, garden: Garden):
        eid = garden.entities.create_entity("Leapling", "person")
        garden.birthdays.set_birthday(eid, "2000-02-29")
        [upcoming] = garden.birthdays.upcoming_birthdays(days=30, today=date(2023, 2, 20))
        assert upcoming.next_date == date(2023, 2, 28)
        assert upcoming.turning == 23


class TestReminders:
    def test_add_requires_birthday(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        with pytest.raises(ValueError):
            garden.birthdays.add_reminder(eid)

    def test_add_validates_time(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        with pytest.raises(ValueError):
            garden.birthdays.add_reminder(eid, reminder_time="25:00")

    def test_one_reminder_per_person(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        first = garden.birthdays.add_reminder(eid)
        second = garden.birthdays.add_reminder(eid, reminder_time="08:30", days_in_advance=2)

        assert first == second
        reminder = garden.birthdays.get_reminder(first)
        assert (reminder.reminder_time, reminder.days_in_advance) == ("08:30", 2)
        assert len(garden.birthdays.all_reminders()) == 1

    def test_birthday_change_updates_reminder(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        rid = garden.birthdays.add_reminder(eid)
        garden.birthdays.set_birthday(eid, "NOYR:07-01")
        assert garden.birthdays.get_reminder(rid).birthday_date == "NOYR:07-01"

    def test_reminder_removed_with_entity(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        garden.birthdays.add_reminder(eid)
        garden.entities.delete_entity(eid)
        assert garden.birthdays.all_reminders() == []

    def test_sync(self, garden: Garden):
        ann = garden.entities.create_entity("Ann", "person")
        bob = garden.entities.create_entity("Bob", "person")
        for eid in (ann, bob):
            garden.birthdays.set_birthday(eid, "1990-06-10")
        ann_rid = garden.birthdays.add_reminder(ann)
        bob_rid = garden.birthdays.add_reminder(bob, enabled=False)

        scheduler = FakeScheduler()
        assert isinstance(scheduler, NotificationScheduler)
        assert garden.birthdays.sync(scheduler) == 1
        assert [r.entity_name for r in scheduler.scheduled] == ["Ann"]
        assert garden.birthdays.get_reminder(ann_rid).notification_id == f"n-{ann}"
        assert garden.birthdays.get_reminder(bob_rid).notification_id is None

        garden.birthdays.update_reminder(ann_rid, is_enabled=False)
        assert garden.birthdays.sync(scheduler) == 0
        assert scheduler.cancelled == [f"n-{ann}"]
        assert garden.birthdays.get_reminder(ann_rid).notification_id is None

    def test_sync_survives_scheduler_errors(self, garden: Garden):
        ann = garden.entities.create_entity("Ann", "person")
        bob = garden.entities.create_entity("Bob", "person")
        for eid in (ann, bob):
            garden.birthdays.set_birthday(eid, "1990-06-10")
            garden.birthdays.add_reminder(eid)

        scheduler = FakeScheduler(fail_for={"Ann"})
        assert garden.birthdays.sync(scheduler) == 1
        assert [r.entity_name for r in scheduler.scheduled] == ["Bob"]

    def test_cleared_birthday_cancels_on_sync(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        rid = garden.birthdays.add_reminder(eid)
        scheduler = FakeScheduler()
        garden.birthdays.sync(scheduler)

        garden.birthdays.set_birthday(eid, None)
        assert garden.birthdays.sync(scheduler) == 0
        assert scheduler.cancelled == [f"n-{eid}"]
        assert garden.birthdays.get_reminder(rid) is not None


class CountingScheduler:
    """Hands out a fresh handle per call and tracks which are still live."""

    def __init__(self) -> None:
        self.issued = 0
        self.live: set[str] = set()

    def schedule_birthday_reminder(self, request: ReminderRequest) -> str:
        handle = f"n{self.issued}"
        self.issued += 1
        self.live.add(handle)
        return handle

    def cancel(self, handle: str) -> None:
        self.live.discard(handle)


class TestRescheduling:
    def test_repeated_sync_keeps_one_live_notification(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        rid = garden.birthdays.add_reminder(eid)
        scheduler = CountingScheduler()

        garden.birthdays.sync(scheduler)
        garden.birthdays.update_reminder(rid, reminder_time="07:15")
        garden.birthdays.sync(scheduler)

        assert scheduler.live == {"n1"}
        assert garden.birthdays.get_reminder(rid).notification_id == "n1"

    def test_reschedule_reminder_replaces_handle(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        rid = garden.birthdays.add_reminder(eid)
        scheduler = CountingScheduler()

        assert garden.birthdays.reschedule_reminder(rid, scheduler) == "n0"
        assert garden.birthdays.reschedule_reminder(rid, scheduler) == "n1"
        assert scheduler.live == {"n1"}

    def test_reschedule_disabled_reminder_only_cancels(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.birthdays.set_birthday(eid, "1990-06-10")
        rid = garden.birthdays.add_reminder(eid)
        scheduler = CountingScheduler()
        garden.birthdays.reschedule_reminder(rid, scheduler)

        garden.birthdays.update_reminder(rid, is_enabled=False)
        assert garden.birthdays.reschedule_reminder(rid, scheduler) is None
        assert scheduler.live == set()
        assert garden.birthdays.get_reminder(rid).notification_id is None

    def test_reschedule_unknown_reminder(self, garden: Garden):
        with pytest.raises(ValueError):
            garden.birthdays.reschedule_reminder("missing", CountingScheduler())
