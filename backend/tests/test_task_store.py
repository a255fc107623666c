from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    ConcurrentModification,
    InsufficientCredits,
    InvalidIdentifier,
    NotFound,
    ValidationError,
)
from app.db.base import Base
from app.db.models.credit_ledger import CreditLedgerEntry
from app.db.models.user import User
from app.db.unit_of_work import run_atomic, touch
from app.services import ledger, task_store
from app.services.response_parser import ParsedSubtask, ParsedTask, ProgressMatch

USER_ID = "user-1"


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'store.db'}", future=True)

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover - sqlite setup
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = factory()
    session.add(User(id=USER_ID, email="person@example.com"))
    session.commit()
    session.close()
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _seed_tasks(db, *titles):
    analysis = task_store.append_analysis(db, USER_ID, "too much on my plate")
    tasks = task_store.replace_task_list(
        db,
        USER_ID,
        analysis.id,
        [
            ParsedTask(title=title, due_date=date(2024, 6, 7), subtasks=[ParsedSubtask("first"), ParsedSubtask("second")])
            for title in titles
        ],
    )
    return analysis, tasks


def _completed_count(db) -> int:
    db.expire_all()
    return db.get(User, USER_ID).completed_tasks


def test_compound_id_round_trip():
    assert task_store.split_compound_id(task_store.join_compound_id("abc", "def")) == ("abc", "def")
    assert task_store.split_compound_id("abc-task-with-dashes") == ("abc", "task-with-dashes")


@pytest.mark.parametrize("value", ["", "nodash", "-task", "analysis-", None, 42])
def test_malformed_compound_ids_are_rejected(value):
    with pytest.raises(InvalidIdentifier):
        task_store.split_compound_id(value)


def test_replace_task_list_assigns_positions_and_subtasks(db):
    analysis, tasks = _seed_tasks(db, "Finish report", "Call mom")

    listed = task_store.list_tasks(db, USER_ID, analysis_id=analysis.id)

    assert [task.title for task in listed] == ["Finish report", "Call mom"]
    assert [task.position for task in listed] == [0, 1]
    assert [step.ordinal for step in listed[0].subtasks] == [0, 1]
    assert listed[0].scheduled_date == date(2024, 6, 7)


def test_completion_and_counter_follow_status_changes(db):
    analysis, tasks = _seed_tasks(db, "A", "B")
    first, second = (task_store.compound_id_for(task) for task in tasks)
    assert _completed_count(db) == 0

    task_store.update_task(db, USER_ID, first, {"status": "completed"})
    assert _completed_count(db) == 1
    assert task_store.get_analysis(db, USER_ID, analysis.id).completed is False

    task_store.update_task(db, USER_ID, second, {"status": "completed"})
    assert _completed_count(db) == 2
    assert task_store.get_analysis(db, USER_ID, analysis.id).completed is True

    task_store.update_task(db, USER_ID, second, {"status": "postponed", "postponed_until": "2024-06-10"})
    assert _completed_count(db) == 1
    assert task_store.get_analysis(db, USER_ID, analysis.id).completed is False

    task_store.delete_task(db, USER_ID, first)
    assert _completed_count(db) == 0
    assert task_store.get_task(db, USER_ID, second).postponed_until == date(2024, 6, 10)


def test_deleting_analysis_reports_tasks_and_fixes_counter(db):
    analysis, tasks = _seed_tasks(db, "A", "B", "C")
    task_store.update_task(db, USER_ID, task_store.compound_id_for(tasks[0]), {"status": "completed"})

    removed = task_store.delete_analysis(db, USER_ID, analysis.id)

    assert removed == 3
    assert _completed_count(db) == 0
    assert task_store.list_tasks(db, USER_ID) == []
    with pytest.raises(NotFound):
        task_store.get_analysis(db, USER_ID, analysis.id)


def test_regenerating_tasks_replaces_the_old_list(db):
    analysis, tasks = _seed_tasks(db, "Old")
    task_store.update_task(db, USER_ID, task_store.compound_id_for(tasks[0]), {"status": "completed"})

    task_store.replace_task_list(db, USER_ID, analysis.id, [ParsedTask(title="New")])

    assert [task.title for task in task_store.list_tasks(db, USER_ID)] == ["New"]
    assert _completed_count(db) == 0


def test_reorder_skips_unknown_tasks(db):
    analysis, tasks = _seed_tasks(db, "A", "B")
    known = task_store.compound_id_for(tasks[1])

    updated = task_store.reorder_tasks(db, USER_ID, [(known, 0), (f"{analysis.id}-missing", 1), ("bad", 2)])

    assert updated == 1
    assert task_store.get_task(db, USER_ID, known).position == 0


def test_update_rejects_invalid_fields(db):
    _, tasks = _seed_tasks(db, "A")
    compound_id = task_store.compound_id_for(tasks[0])

    with pytest.raises(ValidationError):
        task_store.update_task(db, USER_ID, compound_id, {"priority": "critical"})
    with pytest.raises(ValidationError):
        task_store.update_task(db, USER_ID, compound_id, {"due_date": "next tuesday"})

    task = task_store.update_task(db, USER_ID, compound_id, {"scheduled_time": "4:05pm", "title": "  Renamed "})
    assert task.scheduled_time == "16:05"
    assert task.title == "Renamed"


def test_subtasks_are_addressed_by_index(db):
    analysis, tasks = _seed_tasks(db, "A")
    task_id = tasks[0].id

    task, index = task_store.add_subtask(db, USER_ID, analysis.id, task_id, title="third")
    assert index == 2
    assert task.subtasks[2].estimated_minutes == 10

    task_store.update_subtask(db, USER_ID, analysis.id, task_id, 1, {"completed": True, "estimated_minutes": 25})
    task_store.delete_subtask(db, USER_ID, analysis.id, task_id, 0)

    db.expire_all()
    steps = task_store.get_task(db, USER_ID, task_store.join_compound_id(analysis.id, task_id)).subtasks
    assert [(step.title, step.ordinal, step.completed) for step in steps] == [
        ("second", 0, True),
        ("third", 1, False),
    ]
    with pytest.raises(NotFound):
        task_store.delete_subtask(db, USER_ID, analysis.id, task_id, 5)


def test_tasks_of_other_users_are_not_found(db):
    analysis, tasks = _seed_tasks(db, "A")
    db.add(User(id="user-2"))
    db.commit()

    with pytest.raises(NotFound):
        task_store.get_task(db, "user-2", task_store.compound_id_for(tasks[0]))


def test_run_atomic_retries_after_version_conflict(session_factory, db):
    attempts = []

    def bump(session):
        user = session.get(User, USER_ID)
        current = user.completed_tasks
        if not attempts:
            other = session_factory()
            rival = other.get(User, USER_ID)
            rival.completed_tasks = 10
            touch(rival)
            other.commit()
            other.close()
        attempts.append(current)
        user.completed_tasks = current + 1
        touch(user)
        return user.completed_tasks

    result = run_atomic(db, bump, backoff_seconds=0)

    assert attempts == [0, 10]
    assert result == 11


def test_run_atomic_gives_up_after_repeated_conflicts(db):
    def always_stale(session):
        raise StaleDataError("conflict")

    with pytest.raises(ConcurrentModification):
        run_atomic(db, always_stale, attempts=2, backoff_seconds=0)


def test_replace_task_list_spends_credits_with_the_new_tasks(db):
    analysis, _ = _seed_tasks(db, "Old")
    user = db.get(User, USER_ID)
    ledger.grant_purchase(user, "small")
    db.commit()

    tasks = task_store.replace_task_list(db, USER_ID, analysis.id, [ParsedTask(title="New")], credits=20)

    db.expire_all()
    assert [task.title for task in tasks] == ["New"]
    assert db.get(User, USER_ID).purchased_credits == 30
    usage = db.query(CreditLedgerEntry).filter(CreditLedgerEntry.entry_type == "usage").all()
    assert [(entry.amount, entry.description) for entry in usage] == [(-20, "Task generation (1 tasks)")]


def test_replace_task_list_keeps_previous_tasks_when_credits_run_out(db):
    analysis, tasks = _seed_tasks(db, "Old")
    task_store.update_task(db, USER_ID, task_store.compound_id_for(tasks[0]), {"status": "completed"})

    with pytest.raises(InsufficientCredits):
        task_store.replace_task_list(db, USER_ID, analysis.id, [ParsedTask(title="New")], credits=5)

    db.expire_all()
    remaining = task_store.get_analysis(db, USER_ID, analysis.id).tasks
    assert [(task.title, task.status) for task in remaining] == [("Old", "completed")]
    assert _completed_count(db) == 1
    assert db.query(CreditLedgerEntry).count() == 0


def test_progress_marks_listed_subtasks(db):
    analysis, tasks = _seed_tasks(db, "Report", "Groceries")
    report = task_store.compound_id_for(tasks[0])

    outcome = task_store.complete_from_progress(db, USER_ID, [ProgressMatch(report, [0])])

    db.expire_all()
    task = task_store.get_task(db, USER_ID, report)
    assert outcome.completed_subtasks == [(report, 0)]
    assert outcome.completed_tasks == []
    assert [subtask.completed for subtask in task.subtasks] == [True, False]
    assert task.status == "pending"
    assert _completed_count(db) == 0


def test_progress_on_every_step_completes_the_task(db):
    analysis, tasks = _seed_tasks(db, "Report")
    report = task_store.compound_id_for(tasks[0])

    outcome = task_store.complete_from_progress(db, USER_ID, [ProgressMatch(report)])

    db.expire_all()
    assert outcome.completed_subtasks == [(report, 0), (report, 1)]
    assert outcome.completed_tasks == [report]
    assert task_store.get_task(db, USER_ID, report).status == "completed"
    assert task_store.get_analysis(db, USER_ID, analysis.id).completed is True
    assert _completed_count(db) == 1


def test_progress_finishing_the_last_step_completes_the_task(db):
    analysis, tasks = _seed_tasks(db, "Report")
    report = task_store.compound_id_for(tasks[0])
    task_store.complete_from_progress(db, USER_ID, [ProgressMatch(report, [0])])

    outcome = task_store.complete_from_progress(db, USER_ID, [ProgressMatch(report, [0, 1])])

    assert outcome.completed_subtasks == [(report, 1)]
    assert outcome.completed_tasks == [report]
    assert _completed_count(db) == 1


def test_progress_completes_a_stepless_task_matched_whole(db):
    analysis = task_store.append_analysis(db, USER_ID, "one thing")
    (task,) = task_store.replace_task_list(db, USER_ID, analysis.id, [ParsedTask(title="Call mom")])
    compound = task_store.compound_id_for(task)

    partial = task_store.complete_from_progress(db, USER_ID, [ProgressMatch(compound, [0])])
    whole = task_store.complete_from_progress(db, USER_ID, [ProgressMatch(compound)])

    assert partial.completed_tasks == []
    assert whole.completed_tasks == [compound]
    assert _completed_count(db) == 1


def test_progress_skips_unknown_tasks_and_indices(db):
    analysis, tasks = _seed_tasks(db, "Report")
    report = task_store.compound_id_for(tasks[0])

    outcome = task_store.complete_from_progress(
        db,
        USER_ID,
        [
            ProgressMatch("nodash"),
            ProgressMatch(f"{analysis.id}-missing"),
            ProgressMatch(report, [7, -1]),
        ],
    )

    db.expire_all()
    assert outcome.completed_subtasks == []
    assert outcome.completed_tasks == []
    assert [subtask.completed for subtask in task_store.get_task(db, USER_ID, report).subtasks] == [False, False]
