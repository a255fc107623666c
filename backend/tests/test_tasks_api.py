from __future__ import annotations

import json
from datetime import datetime
from typing import List

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_clock, get_completion_gateway
from app.core.config import Settings, get_settings
from app.core.errors import ProviderError
from app.db.base import Base
from app.db.deps import get_db
from app.db.models.api_request import ApiRequest
from app.db.models.user import User
from app.main import app
from app.services.completion_gateway import CompletionResult
from app.services.prompt_registry import seed_default_prompts

SECRET = "test-secret-for-brainpal-jwt-signing"
USER_ID = "user-123"
# A Monday
FROZEN_NOW = datetime(2024, 6, 3, 9, 30)


class FakeGateway:
    def __init__(self):
        self.replies: List[object] = []
        self.calls: List[dict] = []

    def complete(self, model, messages, credential=None):
        self.calls.append({"model": model, "messages": messages, "credential": credential})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return CompletionResult(text=reply, tokens_used=1000, input_tokens=0, output_tokens=0, model=model)


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    seed_session = TestingSessionLocal()
    seed_default_prompts(seed_session)
    seed_session.close()

    gateway = FakeGateway()
    test_settings = Settings(jwt_secret=SECRET, openrouter_api_key="server-key")

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_completion_gateway] = lambda: gateway
    app.dependency_overrides[get_clock] = lambda: (lambda tz: FROZEN_NOW)
    with TestClient(app) as test_client:
        test_client.headers["Authorization"] = f"Bearer {_token()}"
        yield test_client, TestingSessionLocal, gateway
    app.dependency_overrides.clear()


def _token(user_id: str = USER_ID, email: str = "person@example.com") -> str:
    return jwt.encode({"sub": user_id, "email": email}, SECRET, algorithm="HS256")


def _analysis(test_client: TestClient, gateway: FakeGateway) -> str:
    gateway.replies.append(
        json.dumps(
            {
                "empathetic_response": "You have a lot going on.",
                "emotional_state": 4,
                "energy_level": 6,
                "brain_clarity": 3,
                "reasoning": "Deadlines and family",
                "analysis_title": "Busy week",
            }
        )
    )
    response = test_client.post("/analyses", json={"transcript": "Report due Friday and I should call mom"})
    assert response.status_code == 201
    return response.json()["analysis_id"]


def _generate(test_client: TestClient, gateway: FakeGateway, analysis_id: str, **extra) -> dict:
    gateway.replies.append(
        json.dumps({"tasks": [{"title": "Finish report by Friday"}, {"title": "Call mom this evening"}]})
    )
    payload = {"analysis_id": analysis_id, "transcript": "Report due Friday and I should call mom"}
    payload.update(extra)
    response = test_client.post("/tasks/generate", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


def test_generate_resolves_due_dates_and_times(client):
    test_client, session_factory, gateway = client
    analysis_id = _analysis(test_client, gateway)

    body = _generate(test_client, gateway, analysis_id)

    report, call = body["tasks"]
    assert body["message"] == "Successfully generated 2 tasks"
    assert report["title"] == "Finish report by Friday"
    assert report["due_date"] == "2024-06-07"
    assert report["scheduled_time"] is None
    assert call["due_date"] == "2024-06-03"
    assert call["scheduled_time"] == "19:00"
    assert [report["position"], call["position"]] == [0, 1]
    assert report["id"] == f"{analysis_id}-{report['task_id']}"
    assert body["tokens_used"] == 1000
    assert body["estimated_cost"] == pytest.approx(0.000285)

    context = gateway.calls[-1]["messages"][1]["content"]
    assert "2024-06-03 (Monday)" in context
    assert gateway.calls[-1]["messages"][0]["content"].startswith("You are BrainPal's advanced task orchestrator")

    session = session_factory()
    user = session.get(User, USER_ID)
    assert user.tokens_openai_4om == 2000
    assert session.query(ApiRequest).filter(ApiRequest.status == "success").count() == 2
    session.close()


def test_generate_can_schedule_reminders(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)

    body = _generate(
        test_client,
        gateway,
        analysis_id,
        reminder_settings={"number_reminders": 3, "start_time": "09:00", "end_time": "11:00"},
    )

    reminders = test_client.get("/reminders").json()
    assert body["reminder_id"] == reminders[0]["id"]
    assert reminders[0]["timeframe"] == ["09:00", "10:00", "11:00"]


def test_generate_validates_before_calling_the_model(client):
    test_client, _, gateway = client

    missing_transcript = test_client.post("/tasks/generate", json={"analysis_id": "abc"})
    missing_analysis = test_client.post("/tasks/generate", json={"transcript": "stuff"})
    unknown_analysis = test_client.post("/tasks/generate", json={"analysis_id": "nope", "transcript": "stuff"})

    assert missing_transcript.status_code == 400
    assert missing_analysis.status_code == 400
    assert unknown_analysis.status_code == 404
    assert gateway.calls == []


def test_upstream_failure_returns_generic_message_and_is_audited(client):
    test_client, session_factory, gateway = client
    analysis_id = _analysis(test_client, gateway)
    gateway.replies.append(ProviderError(429, "rate limited by upstream"))

    response = test_client.post("/tasks/generate", json={"analysis_id": analysis_id, "transcript": "stuff"})

    assert response.status_code == 502
    assert response.json() == {"detail": "The AI service is temporarily unavailable. Please try again."}
    session = session_factory()
    failed = session.query(ApiRequest).filter(ApiRequest.status == "error").one()
    session.close()
    assert "rate limited" in failed.error_message


def test_unparseable_reply_is_reported(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)
    gateway.replies.append("Sorry, I cannot help with that.")

    response = test_client.post("/tasks/generate", json={"analysis_id": analysis_id, "transcript": "stuff"})

    assert response.status_code == 502
    assert response.json()["detail"] == "We couldn't understand the AI response. Please try again."


def test_update_status_flows_into_counter_and_analysis(client):
    test_client, session_factory, gateway = client
    analysis_id = _analysis(test_client, gateway)
    report, call = _generate(test_client, gateway, analysis_id)["tasks"]

    first = test_client.put(f"/tasks/{report['id']}", json={"status": "completed"})
    second = test_client.put(f"/tasks/{call['id']}", json={"status": "completed"})

    assert first.status_code == 200
    assert second.json()["status"] == "completed"
    analyses = test_client.get("/analyses").json()
    assert analyses[0]["completed"] is True
    assert analyses[0]["title"] == "Busy week"

    deleted = test_client.delete(f"/tasks/{report['id']}")
    assert deleted.status_code == 204
    session = session_factory()
    assert session.get(User, USER_ID).completed_tasks == 1
    session.close()


def test_list_filters_and_reorder(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)
    report, call = _generate(test_client, gateway, analysis_id)["tasks"]
    test_client.put(f"/tasks/{call['id']}", json={"status": "postponed", "postponed_until": "2024-06-05"})

    pending = test_client.get("/tasks", params={"status": "pending"}).json()
    assert [task["id"] for task in pending] == [report["id"]]

    response = test_client.put(
        "/tasks/reorder",
        json={"updates": [{"task_id": call["id"], "position": 0}, {"task_id": f"{analysis_id}-ghost", "position": 1}]},
    )
    assert response.json() == {"updated_count": 1, "total_requested": 2}
    assert test_client.get(f"/tasks/{call['id']}").json()["position"] == 0


def test_bad_identifiers_and_values_are_client_errors(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)
    report, _ = _generate(test_client, gateway, analysis_id)["tasks"]

    assert test_client.get("/tasks/no_separator").status_code == 400
    assert test_client.get(f"/tasks/{analysis_id}-missing").status_code == 404
    assert test_client.put(f"/tasks/{report['id']}", json={"due_date": "someday"}).status_code == 400
    assert test_client.put(f"/tasks/{report['id']}", json={"priority": "urgent"}).status_code == 422


def test_subtask_routes(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)
    report, _ = _generate(test_client, gateway, analysis_id)["tasks"]
    base = f"/analyses/{analysis_id}/tasks/{report['task_id']}/subtasks"

    created = test_client.post(base, json={"title": "Outline sections"})
    test_client.post(base, json={"title": "Write intro", "estimated_minutes": 20})
    updated = test_client.put(f"{base}/0", json={"completed": True})
    removed = test_client.delete(f"{base}/1")
    missing = test_client.delete(f"{base}/7")

    assert created.status_code == 201
    assert created.json()["subtasks"][0]["estimated_minutes"] == 10
    assert updated.json()["subtasks"][0]["completed"] is True
    assert removed.status_code == 204
    assert missing.status_code == 404
    assert [step["title"] for step in test_client.get(f"/tasks/{report['id']}").json()["subtasks"]] == [
        "Outline sections"
    ]


def test_delete_analysis_reports_removed_tasks(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)
    _generate(test_client, gateway, analysis_id)

    response = test_client.delete(f"/analyses/{analysis_id}")

    assert response.json() == {"tasks_deleted": 2}
    assert test_client.get("/tasks").json() == []
    assert test_client.delete(f"/analyses/{analysis_id}").status_code == 404


def test_users_only_see_their_own_tasks(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)
    report, _ = _generate(test_client, gateway, analysis_id)["tasks"]

    other = {"Authorization": f"Bearer {_token('someone-else', 'other@example.com')}"}

    assert test_client.get("/tasks", headers=other).json() == []
    assert test_client.get(f"/tasks/{report['id']}", headers=other).status_code == 404


def test_progress_report_ticks_off_matched_steps(client):
    test_client, session_factory, gateway = client
    analysis_id = _analysis(test_client, gateway)
    report, call = _generate(test_client, gateway, analysis_id)["tasks"]
    base = f"/analyses/{analysis_id}/tasks/{report['task_id']}/subtasks"
    test_client.post(base, json={"title": "Outline sections"})
    test_client.post(base, json={"title": "Write intro"})
    gateway.replies.append(
        json.dumps(
            {
                "completed_tasks": [
                    {"task_id": report["id"], "subtask_indices": [0]},
                    {"task_id": call["id"], "all_subtasks": True},
                    {"task_id": f"{analysis_id}-ghost", "all_subtasks": True},
                ],
                "unplanned_accomplishments": ["Cleaned the kitchen"],
                "celebration_message": "Two wins today!",
            }
        )
    )

    response = test_client.post("/analyses/progress", json={"transcript": "I outlined the report and called mom"})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["completed_subtasks"] == [{"task_id": report["id"], "subtask_index": 0}]
    assert body["completed_tasks"] == [call["id"]]
    assert body["unplanned_accomplishments"] == ["Cleaned the kitchen"]
    assert body["celebration_message"] == "Two wins today!"
    assert body["tokens_used"] == 1000

    context = gateway.calls[-1]["messages"][1]["content"]
    assert "I outlined the report and called mom" in context
    assert report["id"] in context and "Outline sections" in context

    refreshed = test_client.get(f"/tasks/{report['id']}").json()
    assert [step["completed"] for step in refreshed["subtasks"]] == [True, False]
    assert refreshed["status"] == "pending"
    assert test_client.get(f"/tasks/{call['id']}").json()["status"] == "completed"
    session = session_factory()
    assert session.get(User, USER_ID).completed_tasks == 1
    assert session.query(ApiRequest).filter(ApiRequest.request_type == "progress-analysis").count() == 1
    session.close()


def test_progress_leaves_completed_tasks_out_of_the_context(client):
    test_client, _, gateway = client
    analysis_id = _analysis(test_client, gateway)
    report, call = _generate(test_client, gateway, analysis_id)["tasks"]
    test_client.put(f"/tasks/{call['id']}", json={"status": "completed"})
    gateway.replies.append(json.dumps({"completed_tasks": []}))

    response = test_client.post("/analyses/progress", json={"transcript": "Not much today"})

    context = gateway.calls[-1]["messages"][1]["content"]
    assert report["id"] in context
    assert call["id"] not in context
    assert response.json()["completed_subtasks"] == []
    assert response.json()["celebration_message"]


def test_progress_rejects_empty_reports_and_bad_replies(client):
    test_client, _, gateway = client
    calls_before = len(gateway.calls)

    empty = test_client.post("/analyses/progress", json={"transcript": "   "})
    assert empty.status_code == 400
    assert len(gateway.calls) == calls_before

    gateway.replies.append("Great job, keep going!")
    garbled = test_client.post("/analyses/progress", json={"transcript": "Finished the report"})
    assert garbled.status_code == 502
    assert garbled.json()["detail"] == "We couldn't understand the AI response. Please try again."
