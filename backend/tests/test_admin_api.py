from __future__ import annotations

import json
from typing import List

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_completion_gateway
from app.core.config import Settings, get_settings
from app.db.base import Base
from app.db.deps import get_db
from app.main import app
from app.services.completion_gateway import CompletionResult
from app.services.prompt_registry import seed_default_prompts

SECRET = "test-secret-for-brainpal-jwt-signing"
IDENTITY_PROMPT = "brainpal_identity_openai4om"


class RecordingGateway:
    def __init__(self):
        self.calls: List[list] = []

    def complete(self, model, messages, credential=None):
        self.calls.append(messages)
        reply = json.dumps(
            {
                "empathetic_response": "Noted.",
                "emotional_state": 6,
                "energy_level": 6,
                "brain_clarity": 6,
                "reasoning": "Calm",
                "analysis_title": "Check-in",
            }
        )
        return CompletionResult(text=reply, tokens_used=500, input_tokens=0, output_tokens=0, model=model)


def _auth(user_id: str, email: str) -> dict:
    token = jwt.encode({"sub": user_id, "email": email}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


ADMIN = _auth("admin-1", "Admin@Example.com")
MEMBER = _auth("member-1", "member@example.com")


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    seed_session = TestingSessionLocal()
    seed_default_prompts(seed_session)
    seed_session.close()

    gateway = RecordingGateway()
    test_settings = Settings(jwt_secret=SECRET, admin_emails="admin@example.com", openrouter_api_key="server-key")

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_completion_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client, gateway
    app.dependency_overrides.clear()


def test_non_admin_is_forbidden(client):
    test_client, _ = client

    assert test_client.get("/admin/prompts", headers=MEMBER).status_code == 403
    assert test_client.put(f"/admin/prompts/{IDENTITY_PROMPT}", json={"content": "x"}, headers=MEMBER).status_code == 403
    assert test_client.get("/admin/usage-stats", headers=MEMBER).status_code == 403
    assert test_client.get("/admin/prompts").status_code == 401


def test_admin_lists_and_reads_prompts(client):
    test_client, _ = client

    names = [prompt["name"] for prompt in test_client.get("/admin/prompts", headers=ADMIN).json()]
    missing = test_client.get("/admin/prompts/brainpal_unknown", headers=ADMIN)

    assert names == sorted(names)
    assert IDENTITY_PROMPT in names
    assert "brainpal_task_claude3h" in names
    assert missing.status_code == 404


def test_prompt_edit_applies_to_next_request(client):
    test_client, gateway = client

    before = test_client.post("/analyses", json={"transcript": "Feeling fine today"}, headers=MEMBER)
    updated = test_client.put(
        f"/admin/prompts/{IDENTITY_PROMPT}",
        json={"content": "  You are a calm companion.  "},
        headers=ADMIN,
    )
    after = test_client.post("/analyses", json={"transcript": "Feeling fine today"}, headers=MEMBER)

    assert before.status_code == 201
    assert updated.status_code == 200
    assert updated.json()["content"] == "You are a calm companion."
    assert updated.json()["last_modified_by"] == "admin@example.com"
    assert after.status_code == 201
    assert gateway.calls[0][0]["content"] != "You are a calm companion."
    assert gateway.calls[1][0]["content"] == "You are a calm companion."


def test_blank_prompt_is_rejected(client):
    test_client, _ = client

    response = test_client.put(f"/admin/prompts/{IDENTITY_PROMPT}", json={"content": "   "}, headers=ADMIN)

    assert response.status_code == 400


def test_deactivated_prompt_fails_the_ai_call(client):
    test_client, gateway = client
    original = test_client.get(f"/admin/prompts/{IDENTITY_PROMPT}", headers=ADMIN).json()["content"]

    test_client.put(
        f"/admin/prompts/{IDENTITY_PROMPT}",
        json={"content": original, "is_active": False},
        headers=ADMIN,
    )
    response = test_client.post("/analyses", json={"transcript": "Anything"}, headers=MEMBER)

    assert response.status_code == 500
    assert gateway.calls == []


def test_usage_stats_aggregates_requests_and_revenue(client):
    test_client, _ = client
    test_client.post("/analyses", json={"transcript": "Feeling fine today"}, headers=MEMBER)
    test_client.post("/billing/credits", json={"package_size": "small"}, headers=MEMBER)

    stats = test_client.get("/admin/usage-stats", headers=ADMIN).json()

    assert stats["total_requests"] == 1
    assert stats["models"][0]["requests"] == 1
    assert stats["models"][0]["failures"] == 0
    assert stats["models"][0]["tokens"] == 500
    assert stats["revenue"] == [{"transaction_type": "purchase", "count": 1, "amount": 4.99, "credits": 50}]
    assert stats["totals"]["revenue"] == pytest.approx(4.99)
