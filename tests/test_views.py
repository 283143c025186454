"""API tests for the reminder routes (app/reminders/views.py)."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.reminders.views import get_action_service, get_plant_service, get_reminder_store
from tests.conftest import NOW

PREFIX = "/api/v1/reminders"


def _frozen_utc_now(now=None):
    from app.reminders.scheduling import utc_now

    return NOW if now is None else utc_now(now)


@pytest.fixture
def client(store, plants, actions):
    app.dependency_overrides[get_reminder_store] = lambda: store
    app.dependency_overrides[get_plant_service] = lambda: plants
    app.dependency_overrides[get_action_service] = lambda: actions
    with patch("app.reminders.grouping.utc_now", _frozen_utc_now), \
            patch("app.reminders.attention.utc_now", _frozen_utc_now):
        yield TestClient(app)
    app.dependency_overrides.clear()


class TestReads:

    def test_grouped_reminders(self, client):
        response = client.get(PREFIX)

        assert response.status_code == 200
        data = response.json()
        assert [r["id"] for r in data["urgent"]] == ["r1"]
        assert [r["id"] for r in data["high"]] == ["r2"]
        assert [r["id"] for r in data["medium"]] == ["r3"]
        assert [r["id"] for r in data["low"]] == ["r4"]
        assert data["urgent"][0]["priority_level"] == "urgent"

    def test_grouped_reminders_for_plant(self, client):
        data = client.get(PREFIX, params={"plant_id": "p2"}).json()

        assert data["urgent"] == []
        assert data["high"] == []
        assert [r["id"] for r in data["medium"] + data["low"]] == ["r3", "r4"]

    def test_completed_view_starts_empty(self, client):
        data = client.get(PREFIX, params={"show_completed": True}).json()

        assert data == {"urgent": [], "high": [], "medium": [], "low": []}

    def test_attention(self, client):
        data = client.get(f"{PREFIX}/attention").json()

        by_plant = {s["plant_id"]: s for s in data["statuses"]}
        assert by_plant["p1"]["priority_level"] == "urgent"
        assert by_plant["p1"]["reasons"] == ["overdue_task", "due_today"]
        assert by_plant["p2"]["reasons"] == ["due_soon", "low_health"]
        assert data["summary"] == {
            "total_needing_attention": 2,
            "urgent_count": 1,
            "high_priority_count": 1,
        }

    def test_attention_for_selected_plants(self, client):
        data = client.get(f"{PREFIX}/attention", params={"plant_ids": ["p2"]}).json()

        assert [s["plant_id"] for s in data["statuses"]] == ["p2"]

    def test_plant_attention(self, client):
        response = client.get(f"{PREFIX}/attention/p1")

        assert response.status_code == 200
        assert response.json()["overdue_count"] == 1
        assert response.json()["needs_attention"] is True

    def test_plant_attention_unknown_plant(self, client):
        response = client.get(f"{PREFIX}/attention/nope")

        assert response.status_code == 404


class TestCommands:

    def test_mark_done_twice(self, client, store):
        first = client.post(f"{PREFIX}/r1/done")
        second = client.post(f"{PREFIX}/r1/done")

        assert first.json()["status"] == "succeeded"
        assert second.status_code == 200
        assert second.json()["status"] == "unchanged"
        assert store.reminders["r1"].is_completed is True

    def test_mark_done_unknown(self, client):
        response = client.post(f"{PREFIX}/missing/done")

        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    def test_mark_done_storage_failure(self, client, store):
        store.fail_updates.add("r2")

        response = client.post(f"{PREFIX}/r2/done")

        assert response.status_code == 503
        assert store.reminders["r2"].is_completed is False

    def test_snooze(self, client, store):
        response = client.post(f"{PREFIX}/r2/snooze", json={"days": 3})

        assert response.status_code == 200
        assert store.reminders["r2"].scheduled_for == NOW + timedelta(days=3)

    def test_snooze_rejected(self, client):
        response = client.post(f"{PREFIX}/r1/snooze", json={"days": 1})

        assert response.status_code == 400
        assert "too close" in response.json()["detail"]

    def test_snooze_requires_positive_days(self, client):
        response = client.post(f"{PREFIX}/r2/snooze", json={"days": 0})

        assert response.status_code == 422

    def test_reschedule_to_date(self, client, store):
        target = NOW + timedelta(days=4)

        response = client.post(f"{PREFIX}/r2/reschedule", json={"scheduled_for": target.isoformat()})

        assert response.status_code == 200
        assert store.reminders["r2"].scheduled_for == target

    def test_reschedule_without_date(self, client, store):
        response = client.post(f"{PREFIX}/r2/reschedule", json={})

        assert response.status_code == 200
        assert store.reminders["r2"].scheduled_for == NOW + timedelta(days=1)


class TestBatch:

    def test_batch_done_with_cancel_failure(self, client, store, notifier):
        notifier.fail_for.add("r2")

        response = client.post(f"{PREFIX}/batch/done", json={"reminder_ids": ["r1", "r2", "r3"]})

        assert response.status_code == 200
        assert response.json()["succeeded"] == 3
        assert all(store.reminders[rid].is_completed for rid in ("r1", "r2", "r3"))

    def test_batch_snooze_reports_per_item(self, client):
        response = client.post(f"{PREFIX}/batch/snooze", json={"reminder_ids": ["r1", "r4"], "days": 1})

        data = response.json()
        statuses = {o["reminder_id"]: o["status"] for o in data["outcomes"]}
        assert statuses == {"r1": "rejected", "r4": "succeeded"}
        assert data["failed"] == 1

    def test_empty_batch_is_invalid(self, client):
        response = client.post(f"{PREFIX}/batch/done", json={"reminder_ids": []})

        assert response.status_code == 422

    def test_oversized_body_is_refused(self, client):
        response = client.post(
            f"{PREFIX}/batch/done",
            content=b'{"reminder_ids": ["' + b"x" * 300_000 + b'"]}',
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 413


class TestLive:

    def test_websocket_pushes_state_and_answers_commands(self, client):
        with client.websocket_connect(f"{PREFIX}/live") as websocket:
            state = websocket.receive_json()
            assert state["type"] == "state"

            websocket.send_json({"action": "select", "reminder_id": "r2"})
            message = websocket.receive_json()
            while message["type"] != "result":
                message = websocket.receive_json()

            assert message["action"] == "select"
            assert message["selection"] == ["r2"]

    def test_malformed_frames_keep_socket_open(self, client):
        with client.websocket_connect(f"{PREFIX}/live") as websocket:
            websocket.receive_json()

            replies = []
            for frame in (["snooze"], {"action": "snooze", "reminder_id": "r3", "days": "abc"},
                          {"action": "select", "reminder_id": "r2"}):
                websocket.send_json(frame)
                message = websocket.receive_json()
                while message["type"] != "result":
                    message = websocket.receive_json()
                replies.append(message)

            assert replies[0]["error"] == "Message must be a JSON object"
            assert replies[0]["action"] is None
            assert "error" in replies[1]
            assert replies[2]["selection"] == ["r2"]


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "healthy"
