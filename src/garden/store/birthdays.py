"""Birthdays on person entities and their reminder settings.

Birthdays are stored as ``YYYY-MM-DD`` or, when the year is unknown, as
``NOYR:MM-DD``. Reminders only record what should be scheduled; an
external ``NotificationScheduler`` does the scheduling and hands back an
opaque handle that is kept on the reminder row.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Protocol, runtime_checkable

from garden.errors import EntityNotFoundError
from garden.models import BirthdayReminder, Entity, EntityKind
from garden.store.connection import Database, new_id, now_ms, when_ready

logger = logging.getLogger(__name__)

NO_YEAR_PREFIX = "NOYR:"

_FULL_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_NO_YEAR_RE = re.compile(r"^NOYR:(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_birthday(value: str) -> tuple[int | None, int, int]:
    """Split a stored birthday into (year or None, month, day). Raises ValueError."""
    m = _FULL_RE.match(value)
    if m:
        year, month, day = (int(g) for g in m.groups())
        date(year, month, day)
        return year, month, day
    m = _NO_YEAR_RE.match(value)
    if m:
        month, day = (int(g) for g in m.groups())
        # 2000 is a leap year, so Feb 29 is accepted.
        date(2000, month, day)
        return None, month, day
    raise ValueError(f"invalid birthday {value!r}, expected YYYY-MM-DD or NOYR:MM-DD")


def _occurrence(year: int, month: int, day: int) -> date:
    if month == 2 and day == 29:
        try:
            return date(year, 2, 29)
        except ValueError:
            return date(year, 2, 28)
    return date(year, month, day)


def next_occurrence(month: int, day: int, today: date) -> date:
    candidate = _occurrence(today.year, month, day)
    if candidate < today:
        candidate = _occurrence(today.year + 1, month, day)
    return candidate


@dataclass
class UpcomingBirthday:
    entity: Entity
    birthday: str
    next_date: date
    days_until: int
    turning: int | None = None


@dataclass
class ReminderRequest:
    """What the notification collaborator needs to schedule one reminder."""

    entity_id: str
    entity_name: str
    birthday: str
    reminder_time: str
    days_in_advance: int


@runtime_checkable
class NotificationScheduler(Protocol):
    def schedule_birthday_reminder(self, request: ReminderRequest) -> str: ...

    def cancel(self, handle: str) -> None: ...


class BirthdayBook:
    def __init__(self, db: Database) -> None:
        self.db = db

    def _person(self, entity_id: str) -> Entity:
        row = self.db.fetchone("SELECT * FROM entities WHERE id = ?", (entity_id,))
        if row is None:
            raise EntityNotFoundError(entity_id)
        entity = Entity.from_row(row)
        if entity.kind != EntityKind.PERSON.value:
            raise ValueError(f"birthdays only apply to persons, {entity_id} is a {entity.kind}")
        return entity

    # ── Birthdays ────────────────────────────────────────────

    def set_birthday(self, entity_id: str, value: str | None) -> None:
        """Set or clear (None) a person's birthday."""
        self._person(entity_id)
        if value is not None:
            parse_birthday(value)
        self.db.execute(
            "UPDATE entities SET birthday = ?, updated_at = ? WHERE id = ?",
            (value, now_ms(), entity_id),
        )
        # A cleared birthday keeps its reminder; sync() cancels its handle.
        if value is not None:
            self.db.execute(
                "UPDATE birthday_reminders SET birthday_date = ? WHERE entity_id = ?",
                (value, entity_id),
            )

    @when_ready(None)
    def get_birthday(self, entity_id: str) -> str | None:
        return self.db.scalar("SELECT birthday FROM entities WHERE id = ?", (entity_id,))

    @when_ready(list)
    def upcoming_birthdays(self, days: int = 30, today: date | None = None) -> list[UpcomingBirthday]:
        """Persons whose next birthday falls within `days` days, soonest first."""
        today = today or date.today()
        horizon = today + timedelta(days=days)
        rows = self.db.fetchall(
            "SELECT * FROM entities WHERE type = ? AND birthday IS NOT NULL AND birthday != ''",
            (EntityKind.PERSON.value,),
        )
        upcoming = []
        for row in rows:
            entity = Entity.from_row(row)
            try:
                year, month, day = parse_birthday(entity.birthday)
            except ValueError:
                logger.warning("Skipping unreadable birthday %r on %s", entity.birthday, entity.id)
                continue
            when = next_occurrence(month, day, today)
            if when > horizon:
                continue
            upcoming.append(
                UpcomingBirthday(
                    entity=entity,
                    birthday=entity.birthday,
                    next_date=when,
                    days_until=(when - today).days,
                    turning=when.year - year if year is not None else None,
                )
            )
        upcoming.sort(key=lambda u: (u.days_until, u.entity.name.lower()))
        return upcoming

    # ── Reminders ────────────────────────────────────────────

    def add_reminder(
        self,
        entity_id: str,
        reminder_time: str = "09:00",
        days_in_advance: int = 0,
        enabled: bool = True,
    ) -> str:
        """Create the person's reminder, or update it if one exists."""
        entity = self._person(entity_id)
        if not entity.birthday:
            raise ValueError(f"{entity.name} has no birthday")
        if not _TIME_RE.match(reminder_time):
            raise ValueError(f"invalid reminder time {reminder_time!r}, expected HH:MM")
        if days_in_advance < 0:
            raise ValueError("days_in_advance cannot be negative")

        existing = self.reminder_for_entity(entity_id)
        if existing is not None:
            self.update_reminder(
                existing.id,
                reminder_time=reminder_time,
                days_in_advance=days_in_advance,
                is_enabled=enabled,
            )
            return existing.id

        reminder_id = new_id()
        now = now_ms()
        self.db.execute(
            "INSERT INTO birthday_reminders (id, entity_id, birthday_date, reminder_time, "
            "days_in_advance, is_enabled, notification_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, NULL, ?, ?)",
            (reminder_id, entity_id, entity.birthday, reminder_time, days_in_advance,
             1 if enabled else 0, now, now),
        )
        return reminder_id

    def get_reminder(self, reminder_id: str) -> BirthdayReminder | None:
        row = self.db.fetchone("SELECT * FROM birthday_reminders WHERE id = ?", (reminder_id,))
        return BirthdayReminder.from_row(row) if row else None

    def reminder_for_entity(self, entity_id: str) -> BirthdayReminder | None:
        row = self.db.fetchone(
            "SELECT * FROM birthday_reminders WHERE entity_id = ? ORDER BY created_at LIMIT 1",
            (entity_id,),
        )
        return BirthdayReminder.from_row(row) if row else None

    def update_reminder(
        self,
        reminder_id: str,
        *,
        reminder_time: str | None = None,
        days_in_advance: int | None = None,
        is_enabled: bool | None = None,
        birthday_date: str | None = None,
    ) -> bool:
        changes: dict[str, object] = {}
        if reminder_time is not None:
            if not _TIME_RE.match(reminder_time):
                raise ValueError(f"invalid reminder time {reminder_time!r}, expected HH:MM")
            changes["reminder_time"] = reminder_time
        if days_in_advance is not None:
            changes["days_in_advance"] = days_in_advance
        if is_enabled is not None:
            changes["is_enabled"] = 1 if is_enabled else 0
        if birthday_date is not None:
            parse_birthday(birthday_date)
            changes["birthday_date"] = birthday_date
        if not changes:
            return False
        changes["updated_at"] = now_ms()
        assignments = ", ".join(f"{k} = ?" for k in changes)
        cur = self.db.execute(
            f"UPDATE birthday_reminders SET {assignments} WHERE id = ?",
            (*changes.values(), reminder_id),
        )
        return cur.rowcount > 0

    def set_notification_handle(self, reminder_id: str, handle: str | None) -> bool:
        cur = self.db.execute(
            "UPDATE birthday_reminders SET notification_id = ?, updated_at = ? WHERE id = ?",
            (handle, now_ms(), reminder_id),
        )
        return cur.rowcount > 0

    def delete_reminder(self, reminder_id: str) -> bool:
        cur = self.db.execute("DELETE FROM birthday_reminders WHERE id = ?", (reminder_id,))
        return cur.rowcount > 0

    @when_ready(list)
    def all_reminders(self) -> list[BirthdayReminder]:
        rows = self.db.fetchall("SELECT * FROM birthday_reminders ORDER BY created_at")
        return [BirthdayReminder.from_row(row) for row in rows]

    def _request(self, reminder: BirthdayReminder) -> ReminderRequest | None:
        row = self.db.fetchone(
            "SELECT name, birthday FROM entities WHERE id = ?", (reminder.entity_id,)
        )
        if not reminder.is_enabled or row is None or not row["birthday"]:
            return None
        return ReminderRequest(
            entity_id=reminder.entity_id,
            entity_name=row["name"],
            birthday=row["birthday"],
            reminder_time=reminder.reminder_time,
            days_in_advance=reminder.days_in_advance,
        )

    def _apply(self, reminder: BirthdayReminder, scheduler: NotificationScheduler) -> str | None:
        """Cancel the reminder's current handle, then schedule it again if it is live."""
        if reminder.notification_id:
            scheduler.cancel(reminder.notification_id)
            self.set_notification_handle(reminder.id, None)
        request = self._request(reminder)
        if request is None:
            return None
        handle = scheduler.schedule_birthday_reminder(request)
        self.set_notification_handle(reminder.id, handle)
        return handle

    def reschedule_reminder(self, reminder_id: str, scheduler: NotificationScheduler) -> str | None:
        """Replace one reminder's scheduled notification. Returns the new handle.

        Returns None when the reminder is disabled or its birthday was cleared;
        scheduler errors propagate.
        """
        reminder = self.get_reminder(reminder_id)
        if reminder is None:
            raise ValueError(f"unknown reminder {reminder_id}")
        return self._apply(reminder, scheduler)

    def sync(self, scheduler: NotificationScheduler) -> int:
        """Hand every enabled reminder to the scheduler and keep the returned handle.

        A handle from an earlier sync is cancelled before the reminder is
        scheduled again, so each reminder holds at most one live notification.
        Disabled reminders only have their handle cancelled. Returns the
        number of reminders scheduled.
        """
        scheduled = 0
        for reminder in self.all_reminders():
            try:
                handle = self._apply(reminder, scheduler)
            except Exception:
                logger.exception("Scheduler failed for reminder %s", reminder.id)
                continue
            if handle is not None:
                scheduled += 1
        logger.info("Synced %d birthday reminders", scheduled)
        return scheduled
