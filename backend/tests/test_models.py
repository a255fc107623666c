from sqlalchemy import inspect

from app.db.base import Base
from app.db import models  # noqa: F401  ensure models are loaded
from app.db.models.user import User


def test_metadata_contains_core_tables() -> None:
    table_names = set(Base.metadata.tables.keys())
    expected = {
        "users",
        "analyses",
        "tasks",
        "subtasks",
        "credit_ledger_entries",
        "transactions",
        "api_reminders",
        "prompt_templates",
        "api_requests",
    }

    assert expected.issubset(table_names)


def test_user_rows_are_version_checked() -> None:
    mapper = inspect(User)

    assert mapper.version_id_col is User.__table__.c.version_id


def test_transaction_external_id_is_unique() -> None:
    constraints = Base.metadata.tables["transactions"].constraints
    unique_columns = [
        {column.name for column in constraint.columns}
        for constraint in constraints
        if constraint.__class__.__name__ == "UniqueConstraint"
    ]

    assert {"external_id"} in unique_columns
