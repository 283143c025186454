"""
Push delivery for care reminder notifications via AWS SNS.

Every registered device in `device_tokens` owns an SNS platform endpoint
(APNs or FCM). Reminder pushes are collapsed per reminder, so a snoozed
reminder replaces its earlier alert on the device, and threaded per plant.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import get_settings
from app.core.database import Database

logger = logging.getLogger(__name__)

REMINDER_CATEGORY = "CARE_REMINDER"
ANDROID_CHANNEL_ID = "care_reminders"


def collapse_key(data: Dict[str, Any]) -> Optional[str]:
    reminder_id = data.get("reminder_id")
    return f"reminder-{reminder_id}" if reminder_id else None


def build_reminder_message(platform: str, title: str, body: str, data: Dict[str, Any]) -> Dict[str, str]:
    """
    SNS `MessageStructure="json"` body for one platform.

    The reminder payload travels under "reminder" on iOS and as string
    values in FCM `data`, which only accepts strings.
    """
    key = collapse_key(data)

    if platform == "ios":
        aps = {
            "alert": {"title": title, "body": body},
            "sound": "default",
            "category": REMINDER_CATEGORY,
        }
        if data.get("plant_id"):
            aps["thread-id"] = f"plant-{data['plant_id']}"
        payload = json.dumps({"aps": aps, "reminder": data})
        return {"APNS": payload, "APNS_SANDBOX": payload, "default": body}

    notification = {"title": title, "body": body, "android_channel_id": ANDROID_CHANNEL_ID}
    fcm = {
        "notification": notification,
        "data": {str(k): str(v) for k, v in data.items() if v is not None},
    }
    if key:
        notification["tag"] = key
        fcm["collapse_key"] = key
    return {"GCM": json.dumps(fcm), "default": body}


class PushNotificationService:
    """Sends reminder notifications to every active device endpoint."""

    @classmethod
    def _get_sns_client(cls):
        """boto3 SNS client, or None when AWS credentials are not configured."""
        settings = get_settings()
        if not (settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY):
            return None

        return boto3.client(
            "sns",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )

    @classmethod
    async def get_active_endpoints(cls) -> List[Dict[str, str]]:
        cursor = Database.get_collection("device_tokens").find(
            {"is_active": True, "endpoint_arn": {"$nin": [None, ""]}},
            {"endpoint_arn": 1, "platform": 1},
        )
        return [
            {"endpoint_arn": device["endpoint_arn"], "platform": device.get("platform") or "ios"}
            async for device in cursor
        ]

    @classmethod
    async def send_push(
        cls,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Push a reminder notification to all active devices.

        Returns:
            Dict with `success`, `sent`, `failed` and `devices`; `reason` is
            set when nothing was attempted ("no_devices" or "not_configured").
        """
        endpoints = await cls.get_active_endpoints()
        if not endpoints:
            logger.debug("No devices registered for push")
            return {"success": False, "reason": "no_devices", "sent": 0, "failed": 0, "devices": 0}

        sns_client = cls._get_sns_client()
        if sns_client is None:
            logger.warning("SNS credentials not configured - reminder push not sent")
            return {
                "success": False,
                "reason": "not_configured",
                "sent": 0,
                "failed": len(endpoints),
                "devices": len(endpoints),
            }

        data = data or {}
        results = await asyncio.gather(*(
            cls._publish(sns_client, endpoint, title, body, data) for endpoint in endpoints
        ))
        sent = sum(1 for ok in results if ok)
        return {
            "success": sent > 0,
            "sent": sent,
            "failed": len(results) - sent,
            "devices": len(endpoints),
        }

    @classmethod
    async def _publish(
        cls,
        sns_client,
        endpoint: Dict[str, str],
        title: str,
        body: str,
        data: Dict[str, Any],
    ) -> bool:
        message = build_reminder_message(endpoint["platform"], title, body, data)
        request = {
            "TargetArn": endpoint["endpoint_arn"],
            "Message": json.dumps(message),
            "MessageStructure": "json",
        }
        key = collapse_key(data)
        if key and endpoint["platform"] == "ios":
            request["MessageAttributes"] = {
                "AWS.SNS.MOBILE.APNS.COLLAPSE_ID": {"DataType": "String", "StringValue": key},
            }

        try:
            # boto3 is blocking
            await asyncio.to_thread(sns_client.publish, **request)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "EndpointDisabled":
                await cls._deactivate_endpoint(endpoint["endpoint_arn"])
            logger.error(f"SNS publish failed for reminder {data.get('reminder_id')}: {e}")
            return False
        except BotoCoreError as e:
            logger.error(f"SNS publish failed for reminder {data.get('reminder_id')}: {e}")
            return False

    @classmethod
    async def _deactivate_endpoint(cls, endpoint_arn: str) -> None:
        await Database.get_collection("device_tokens").update_many(
            {"endpoint_arn": endpoint_arn},
            {"$set": {"is_active": False, "updated_at": datetime.now(timezone.utc)}},
        )
        logger.info(f"Deactivated disabled push endpoint: {endpoint_arn}")
