import asyncio
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.database import get_db
from app.main import app
from app.schemas.message import InboundMessage
from app.services.event_service import EventFeed
from app.services.runtime import get_events, get_index, get_session_factory, get_stats, get_triage
from app.services.stats_service import UsageStats
from app.services.triage_service import TriageLog
from app.services.trigger_index import TriggerIndex


@pytest.fixture
def admin(file_session_factory, tmp_path):
    index = TriggerIndex(file_session_factory)
    events = EventFeed()
    stats = UsageStats()
    triage = TriageLog(tmp_path)

    async def override_db():
        async with file_session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_index] = lambda: index
    app.dependency_overrides[get_events] = lambda: events
    app.dependency_overrides[get_stats] = lambda: stats
    app.dependency_overrides[get_triage] = lambda: triage
    app.dependency_overrides[get_session_factory] = lambda: file_session_factory
    yield TestClient(app), index, events, stats, triage
    app.dependency_overrides.clear()


class TestResponses:
    def test_create_from_form_strings(self, admin):
        client, index, events, _, _ = admin

        response = client.post(
            "/admin/responses",
            json={
                "trigger": "Hi Ebi\n\nhello ebi \n",
                "response": "Hello!\nHey there",
                "match_type": "exact",
                "exclude_words": "",
                "context_required": "  ",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["trigger"] == ["Hi Ebi", "hello ebi"]
        assert data["response"] == ["Hello!", "Hey there"]
        assert data["context_required"] is None
        # reload happened, so the new trigger answers right away
        assert index.match("hi ebi!").rule.id == data["id"]
        assert events.recent()[-1]["eventType"] == "ADMIN_ACTION"

    def test_list(self, admin):
        client, _, _, _, _ = admin
        client.post("/admin/responses", json={"trigger": ["a"], "response": ["b"]})
        client.post(
            "/admin/responses",
            json={"trigger": ["*"], "response": ["c"], "context_required": "awaiting_x"},
        )

        data = client.get("/admin/responses").json()

        assert [rule["trigger"] for rule in data] == [["a"], ["*"]]
        assert data[0]["match_type"] == "smart"
        assert data[1]["context_required"] == "awaiting_x"

    def test_empty_trigger_rejected(self, admin):
        client, _, _, _, _ = admin
        response = client.post("/admin/responses", json={"trigger": "\n  \n", "response": "x"})
        assert response.status_code == 422

    def test_bad_match_type_rejected(self, admin):
        client, _, _, _, _ = admin
        response = client.post("/admin/responses", json={"trigger": "a", "response": "b", "match_type": "fuzzy"})
        assert response.status_code == 422

    def test_reload(self, admin):
        client, _, _, _, _ = admin
        client.post("/admin/responses", json={"trigger": "a\nb", "response": "x", "match_type": "exact"})
        client.post("/admin/responses", json={"trigger": "c d", "response": "y"})

        response = client.post("/admin/reload")

        assert response.json() == {"exact_triggers": 2, "smart_rules": 1}


class TestStats:
    def test_snapshot(self, admin):
        client, _, _, stats, _ = admin
        stats.incr_messages_processed()
        stats.add_tokens(10)

        data = client.get("/admin/stats").json()

        assert data["messages_processed"] == 1
        assert data["tokens_used"] == 10
        assert data["ai_failures"] == 0

    def test_flush(self, admin):
        client, _, _, stats, _ = admin
        stats.incr_ai_responses()

        response = client.post("/admin/stats/flush")

        assert response.status_code == 200
        assert response.json()["saved"] is True
        # flushing does not reset the live counters
        assert stats.snapshot()["ai_responses"] == 1


class TestEventsAndTriage:
    def test_recent_events(self, admin):
        client, _, events, _, _ = admin
        for index in range(3):
            events.publish({"eventType": "x", "n": index})

        data = client.get("/admin/events", params={"limit": 2}).json()

        assert [event["n"] for event in data["events"]] == [1, 2]

    def test_triage_and_ignore(self, admin):
        client, _, _, _, triage = admin

        async def record():
            for text in ["ابی کیه", "آهنگ جدید کی میاد"]:
                await triage.record_unanswered(
                    InboundMessage(user_id=1, chat_id=1, text=text, timestamp_ms=int(time.time() * 1000))
                )

        asyncio.run(record())

        assert client.get("/admin/triage").json()["count"] == 2

        response = client.post("/admin/triage/ignore", json={"text": "ابی کیه"})

        assert response.json() == {"success": True, "ignored": "ابی کیه"}
        assert client.get("/admin/triage").json()["questions"] == ["آهنگ جدید کی میاد"]

    def test_ignore_blank_rejected(self, admin):
        client, _, _, _, _ = admin
        assert client.post("/admin/triage/ignore", json={"text": "  "}).status_code == 400


class TestAdminToken:
    def test_token_required_when_configured(self, admin):
        client, _, _, _, _ = admin
        with patch.object(settings, "admin_token", "s3cret"):
            assert client.get("/admin/stats").status_code == 401
            assert client.get("/admin/stats", headers={"X-Admin-Token": "wrong"}).status_code == 401
            assert client.get("/admin/stats", headers={"X-Admin-Token": "s3cret"}).status_code == 200
