"""Tests for notification scheduling and push delivery (app/notifications/)."""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from app.notifications.push_service import PushNotificationService, build_reminder_message, collapse_key
from app.notifications.scheduler import NotificationSchedulerService
from app.reminders.models import NotificationContent
from tests.conftest import NOW


@pytest.fixture
def collection():
    collection = MagicMock()
    collection.update_one = AsyncMock()
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.update_many = AsyncMock(return_value=MagicMock(modified_count=0))
    return collection


@pytest.fixture
def push():
    push = MagicMock()
    push.send_push = AsyncMock(return_value={"success": True, "sent": 1, "failed": 0, "devices": 1})
    return push


@pytest.fixture
def scheduler(collection, push):
    return NotificationSchedulerService(collection=collection, push_service=push)


def _pending(attempts=1):
    return {
        "_id": "n1",
        "reminder_id": "r1",
        "title": "Monstera - Water",
        "body": "Time to take care of your plant",
        "data": {"reminder_id": "r1"},
        "deliver_at": NOW - timedelta(minutes=1),
        "state": "pending",
        "attempts": attempts,
    }


def _matches(doc, query):
    for key, condition in query.items():
        value = doc.get(key)
        if not isinstance(condition, dict):
            if value != condition:
                return False
            continue
        for op, operand in condition.items():
            if op == "$lte" and not value <= operand:
                return False
            if op == "$lt" and (value is None or not value < operand):
                return False
            if op == "$nin" and value in operand:
                return False
    return True


class InMemoryNotifications:
    """Just enough of a Motor collection to run deliver_due for real."""

    def __init__(self, docs):
        self.docs = {doc["_id"]: dict(doc) for doc in docs}

    async def update_many(self, query, update):
        matched = [doc for doc in self.docs.values() if _matches(doc, query)]
        for doc in matched:
            doc.update(update["$set"])
        return MagicMock(modified_count=len(matched))

    async def find_one_and_update(self, query, update, sort=None, return_document=None):
        matched = sorted((d for d in self.docs.values() if _matches(d, query)), key=lambda d: d["deliver_at"])
        if not matched:
            return None
        doc = matched[0]
        for key, amount in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + amount
        doc.update(update.get("$set", {}))
        return dict(doc)

    async def update_one(self, query, update):
        for doc in self.docs.values():
            if _matches(doc, query):
                doc.update(update["$set"])
                return MagicMock(modified_count=1)
        return MagicMock(modified_count=0)


class TestSchedule:

    def test_upserts_pending_notification(self, scheduler, collection):
        content = NotificationContent(title="Monstera - Water", body="Soak the soil", data={"reminder_id": "r1"})
        trigger = NOW + timedelta(days=1)

        asyncio.run(scheduler.schedule("r1", content, trigger))

        query, update = collection.update_one.call_args.args
        assert query == {"reminder_id": "r1"}
        assert update["$set"]["state"] == "pending"
        assert update["$set"]["deliver_at"] == trigger
        assert update["$set"]["attempts"] == 0
        assert "created_at" in update["$setOnInsert"]
        assert collection.update_one.call_args.kwargs["upsert"] is True

    def test_cancel_only_touches_pending(self, scheduler, collection):
        asyncio.run(scheduler.cancel("r1"))

        collection.delete_one.assert_awaited_once_with({"reminder_id": "r1", "state": "pending"})


class TestDeliverDue:

    def test_delivers_and_marks_delivered(self, scheduler, collection, push):
        collection.find_one_and_update = AsyncMock(side_effect=[_pending(), None])

        stats = asyncio.run(scheduler.deliver_due(now=NOW))

        assert stats == {"processed": 1, "sent": 1, "errors": 0}
        push.send_push.assert_awaited_once_with(
            title="Monstera - Water", body="Time to take care of your plant", data={"reminder_id": "r1"},
        )
        assert collection.update_one.call_args.args[1]["$set"]["state"] == "delivered"

    def test_no_devices_counts_as_delivered(self, scheduler, collection, push):
        push.send_push.return_value = {"success": False, "reason": "no_devices", "sent": 0, "failed": 0}
        collection.find_one_and_update = AsyncMock(side_effect=[_pending(), None])

        stats = asyncio.run(scheduler.deliver_due(now=NOW))

        assert stats["sent"] == 1

    def test_failure_is_retried_until_attempts_exhausted(self, scheduler, collection, push):
        push.send_push.return_value = {"success": False, "sent": 0, "failed": 1, "devices": 1}
        collection.find_one_and_update = AsyncMock(side_effect=[_pending(attempts=1), _pending(attempts=3), None])

        stats = asyncio.run(scheduler.deliver_due(now=NOW, max_attempts=3))

        assert stats == {"processed": 2, "sent": 0, "errors": 2}
        states = [c.args[1]["$set"]["state"] for c in collection.update_one.call_args_list]
        assert states == ["pending", "failed"]

    def test_push_exception_is_contained(self, scheduler, collection, push):
        push.send_push.side_effect = RuntimeError("SNS throttled")
        collection.find_one_and_update = AsyncMock(side_effect=[_pending(), None])

        stats = asyncio.run(scheduler.deliver_due(now=NOW))

        assert stats["errors"] == 1
        assert "SNS throttled" in collection.update_one.call_args.args[1]["$set"]["last_error"]

    def test_nothing_due(self, scheduler, collection):
        collection.find_one_and_update = AsyncMock(return_value=None)

        assert asyncio.run(scheduler.deliver_due(now=NOW)) == {"processed": 0, "sent": 0, "errors": 0}


class TestDeliveryClaims:
    """deliver_due against an in-memory collection."""

    def test_overlapping_workers_deliver_once(self):
        notifications = InMemoryNotifications([_pending(attempts=0)])

        async def scenario():
            entered, release = asyncio.Event(), asyncio.Event()
            calls = []

            async def send_push(**kwargs):
                calls.append(kwargs)
                entered.set()
                await release.wait()
                return {"success": True, "sent": 1, "failed": 0, "devices": 1}

            push = MagicMock()
            push.send_push = send_push
            scheduler = NotificationSchedulerService(collection=notifications, push_service=push)

            first = asyncio.create_task(scheduler.deliver_due(now=NOW))
            await entered.wait()
            second = await scheduler.deliver_due(now=NOW + timedelta(minutes=2))
            release.set()
            return await first, second, calls

        first, second, calls = asyncio.run(scenario())

        assert len(calls) == 1
        assert first["sent"] == 1
        assert second == {"processed": 0, "sent": 0, "errors": 0}
        assert notifications.docs["n1"]["state"] == "delivered"

    def test_failed_attempt_waits_for_next_run(self, push):
        push.send_push.return_value = {"success": False, "sent": 0, "failed": 1, "devices": 1}
        notifications = InMemoryNotifications([_pending(attempts=0)])
        scheduler = NotificationSchedulerService(collection=notifications, push_service=push)

        stats = asyncio.run(scheduler.deliver_due(now=NOW))

        assert stats == {"processed": 1, "sent": 0, "errors": 1}
        assert notifications.docs["n1"]["state"] == "pending"
        assert notifications.docs["n1"]["attempts"] == 1

    def test_abandoned_claim_is_released(self, push):
        abandoned = {**_pending(attempts=1), "state": "sending", "claimed_at": NOW - timedelta(hours=1)}
        notifications = InMemoryNotifications([abandoned])
        scheduler = NotificationSchedulerService(collection=notifications, push_service=push)

        stats = asyncio.run(scheduler.deliver_due(now=NOW))

        assert stats["sent"] == 1
        assert notifications.docs["n1"]["state"] == "delivered"

    def test_recent_claim_is_left_alone(self, push):
        in_flight = {**_pending(attempts=1), "state": "sending", "claimed_at": NOW - timedelta(minutes=1)}
        notifications = InMemoryNotifications([in_flight])
        scheduler = NotificationSchedulerService(collection=notifications, push_service=push)

        assert asyncio.run(scheduler.deliver_due(now=NOW))["processed"] == 0
        push.send_push.assert_not_awaited()


class TestReminderMessage:

    def test_ios_message_is_threaded_per_plant(self):
        data = {"reminder_id": "r1", "plant_id": "p1", "type": "watering"}
        message = build_reminder_message("ios", "Monstera - Water", "Soak the soil", data)

        apns = json.loads(message["APNS"])
        assert apns["aps"]["alert"] == {"title": "Monstera - Water", "body": "Soak the soil"}
        assert apns["aps"]["category"] == "CARE_REMINDER"
        assert apns["aps"]["thread-id"] == "plant-p1"
        assert apns["reminder"] == data
        assert message["APNS_SANDBOX"] == message["APNS"]
        assert message["default"] == "Soak the soil"

    def test_android_message_collapses_per_reminder(self):
        message = build_reminder_message("android", "Title", "Body", {"reminder_id": "r1", "count": 2})

        fcm = json.loads(message["GCM"])
        assert fcm["collapse_key"] == "reminder-r1"
        assert fcm["notification"]["tag"] == "reminder-r1"
        assert fcm["data"] == {"reminder_id": "r1", "count": "2"}

    def test_without_reminder_id_nothing_collapses(self):
        fcm = json.loads(build_reminder_message("android", "Title", "Body", {})["GCM"])

        assert "collapse_key" not in fcm
        assert collapse_key({}) is None


class TestPushNotificationService:

    ENDPOINTS = [
        {"endpoint_arn": "arn:ios", "platform": "ios"},
        {"endpoint_arn": "arn:android", "platform": "android"},
    ]

    def _send(self, sns_client, endpoints=None, data=None):
        with patch.object(PushNotificationService, "get_active_endpoints",
                          new=AsyncMock(return_value=self.ENDPOINTS if endpoints is None else endpoints)), \
                patch.object(PushNotificationService, "_get_sns_client", return_value=sns_client):
            return asyncio.run(PushNotificationService.send_push("Title", "Body", data))

    def test_no_devices(self):
        result = self._send(MagicMock(), endpoints=[])

        assert result["reason"] == "no_devices"

    def test_missing_credentials_skip_publish(self):
        result = self._send(None)

        assert result["reason"] == "not_configured"
        assert result["success"] is False

    def test_publishes_to_every_endpoint(self):
        sns_client = MagicMock()

        result = self._send(sns_client, data={"reminder_id": "r1", "plant_id": "p1"})

        assert result == {"success": True, "sent": 2, "failed": 0, "devices": 2}
        requests = {c.kwargs["TargetArn"]: c.kwargs for c in sns_client.publish.call_args_list}
        assert requests["arn:ios"]["MessageAttributes"]["AWS.SNS.MOBILE.APNS.COLLAPSE_ID"]["StringValue"] == \
            "reminder-r1"
        assert "MessageAttributes" not in requests["arn:android"]
        assert requests["arn:android"]["MessageStructure"] == "json"

    def test_disabled_endpoint_is_deactivated(self):
        sns_client = MagicMock()
        sns_client.publish.side_effect = [
            ClientError({"Error": {"Code": "EndpointDisabled", "Message": "Endpoint is disabled"}}, "Publish"),
            None,
        ]
        with patch.object(PushNotificationService, "_deactivate_endpoint", new=AsyncMock()) as deactivate:
            result = self._send(sns_client, endpoints=self.ENDPOINTS[:1] * 2)

        assert result["sent"] == 1
        assert result["failed"] == 1
        deactivate.assert_awaited_once_with("arn:ios")

    def test_throttling_does_not_deactivate(self):
        sns_client = MagicMock()
        sns_client.publish.side_effect = ClientError({"Error": {"Code": "Throttling", "Message": "slow down"}}, "Publish")
        with patch.object(PushNotificationService, "_deactivate_endpoint", new=AsyncMock()) as deactivate:
            result = self._send(sns_client, endpoints=self.ENDPOINTS[1:])

        assert result["success"] is False
        deactivate.assert_not_awaited()
