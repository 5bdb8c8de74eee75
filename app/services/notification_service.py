"""Notification service for appointment push notifications via FCM."""

from typing import Any

import structlog
from firebase_admin import messaging

from app.core.firebase import is_firebase_initialized

logger = structlog.get_logger(__name__)


def patient_topic(patient_id: Any) -> str:
    """FCM topic a patient's devices subscribe to."""
    return f"patient_{patient_id}"


class NotificationService:
    """
    Service for appointment push notifications.

    Delivery is fire-and-forget: every failure is logged and swallowed so a
    notification problem can never undo or block a status change.
    """

    @staticmethod
    async def send_push_notification(
        topic: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> bool:
        """
        Send a push notification to every device subscribed to a topic.

        Args:
            topic: FCM topic name
            title: Notification title
            body: Notification body
            data: Optional data payload

        Returns:
            True if FCM accepted the message
        """
        if not is_firebase_initialized():
            logger.debug("push_notification_skipped", topic=topic)
            return False

        try:
            message = messaging.Message(
                notification=messaging.Notification(
                    title=title,
                    body=body,
                ),
                data=data or {},
                topic=topic,
                apns=messaging.APNSConfig(
                    payload=messaging.APNSPayload(
                        aps=messaging.Aps(
                            sound="default",
                            badge=1,
                        ),
                    ),
                ),
                android=messaging.AndroidConfig(
                    priority="high",
                    notification=messaging.AndroidNotification(
                        sound="default",
                        priority="high",
                    ),
                ),
            )

            message_id = messaging.send(message)

            logger.info("push_notification_sent", topic=topic, title=title, message_id=message_id)
            return True

        except Exception as e:
            logger.warning("push_notification_failed", error=str(e), topic=topic, title=title)
            return False

    @staticmethod
    async def send_appointment_status_notification(appointment_data: dict[str, Any]) -> bool:
        """
        Tell the patient their appointment changed status.

        Args:
            appointment_data: Appointment row after the change
        """
        new_status = appointment_data.get("status")
        provider_name = appointment_data.get("provider_name")
        slot_date = str(appointment_data.get("slot_date", "")).replace("_", "/")
        when = f"{slot_date} {appointment_data.get('slot_time', '')}"

        status_messages = {
            "confirmed": f"Your appointment with {provider_name} on {when} is confirmed",
            "cancelled": f"Your appointment with {provider_name} on {when} has been cancelled",
            "completed": f"Your appointment with {provider_name} is completed",
        }

        body = status_messages.get(
            new_status,
            f"Appointment status updated to {new_status}",
        )

        return await NotificationService.send_push_notification(
            topic=patient_topic(appointment_data.get("patient_id")),
            title="Appointment Update",
            body=body,
            data={
                "type": "appointment_status_changed",
                "appointment_id": str(appointment_data.get("id")),
                "new_status": str(new_status),
                "screen": f"/appointments/{appointment_data.get('id')}",
            },
        )
