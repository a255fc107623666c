from __future__ import annotations

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import NotFound, ValidationError
from app.db.base import Base
from app.db.models.api_reminder import ApiReminder
from app.db.models.user import User
from app.services import reminders

USER_ID = "user-1"


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover - sqlite setup
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)()
    session.add(User(id=USER_ID))
    session.commit()
    try:
        yield session
    finally:
        session.close()


@pytest.mark.parametrize(
    ("count", "start", "end", "expected"),
    [
        (1, "09:00", "17:00", ["09:00"]),
        (3, "09:00", "11:00", ["09:00", "10:00", "11:00"]),
        (0, "09:00", "17:00", []),
        (4, "09:00", "10:00", ["09:00", "09:20", "09:40", "10:00"]),
        (3, "08:00", "08:01", ["08:00", "08:01", "08:01"]),
    ],
)
def test_compute_timeframe(count, start, end, expected):
    assert reminders.compute_timeframe(count, start, end) == expected


def test_minute_rounding_carries_into_the_hour():
    assert reminders.format_clock(9 * 60 + 59.6) == "10:00"


@pytest.mark.parametrize("value", ["9am", "25:00", "12:60", ""])
def test_invalid_clock_strings_are_rejected(value):
    with pytest.raises(ValidationError):
        reminders.compute_timeframe(2, value, "17:00")


def test_new_reminder_deactivates_previous_ones(db):
    first = reminders.create_reminder(db, USER_ID, count=2, name="Morning", start_time="08:00", end_time="10:00")
    second = reminders.create_reminder(db, USER_ID, count=3, name="Workday", start_time="09:00", end_time="17:00")

    active = reminders.list_active_reminders(db, USER_ID)

    assert [reminder.id for reminder in active] == [second.id]
    assert active[0].timeframe == ["09:00", "13:00", "17:00"]
    assert db.get(ApiReminder, first.id).is_active is False
    assert reminders.current_reminder(db, USER_ID).name == "Workday"


def test_delete_reminder(db):
    reminder = reminders.create_reminder(db, USER_ID, count=1, name="Once", start_time="12:00", end_time="12:00")
    reminder_id = reminder.id

    reminders.delete_reminder(db, USER_ID, reminder_id)

    assert reminders.current_reminder(db, USER_ID) is None
    with pytest.raises(NotFound):
        reminders.delete_reminder(db, USER_ID, reminder_id)
