"""Activity ledger - fire-and-forget audit sink with notification hand-off."""

from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ulid import ULID

from fieldtrack.models.activity import ActivityRecord, ActivityType
from fieldtrack.services.store import Store, get_store
from fieldtrack.utils.clock import resolve_now
from fieldtrack.utils.logging import get_structured_logger, mask_user_id, sanitize_message_text

logger = get_structured_logger(__name__)

NotificationDispatcher = Callable[[ActivityRecord], Awaitable[None]]

# Record types admins get notified about
NOTIFY_TYPES = frozenset({
    ActivityType.TASK_ACCEPT,
    ActivityType.TASK_REJECT,
    ActivityType.TASK_ON_SITE,
    ActivityType.TASK_COMPLETE,
    ActivityType.TASK_EXPIRED,
    ActivityType.TASK_DELETE,
})


def generate_activity_id() -> str:
    """Generate a text-based activity ID (ULID format)."""
    return str(ULID())


class ActivityLedger:
    """Append-only audit log. Never raises into the caller."""

    def __init__(self, store: Store, dispatcher: Optional[NotificationDispatcher] = None):
        self.store = store
        self.dispatcher = dispatcher

    async def record(
        self,
        type: ActivityType,
        user_id: str,
        task_id: Optional[str] = None,
        message: str = "",
        metadata: Optional[dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ) -> Optional[ActivityRecord]:
        """
        Build and persist an activity record.

        Returns the record, or None if it could not be written. Failures are
        logged and swallowed so the transition that triggered them stands.
        """
        try:
            record = ActivityRecord(
                activity_id=generate_activity_id(),
                user_id=user_id,
                task_id=task_id,
                type=type,
                message=message,
                metadata=metadata or {},
                timestamp=resolve_now(timestamp),
            )
            await self.store.append_activity(record)
        except Exception as e:
            logger.warning(
                "Failed to record activity (non-fatal)",
                activity_type=type.value,
                user_id=mask_user_id(user_id),
                task_id=task_id,
                error=str(e)
            )
            return None

        logger.info(
            "Activity recorded",
            activity_type=record.type.value,
            activity_id=record.activity_id,
            user_id=mask_user_id(user_id),
            task_id=task_id,
            message_preview=sanitize_message_text(message, max_length=100)
        )

        if self.dispatcher is not None and record.type in NOTIFY_TYPES:
            try:
                await self.dispatcher(record)
            except Exception as e:
                logger.warning(
                    "Notification dispatch failed (non-fatal)",
                    activity_type=record.type.value,
                    activity_id=record.activity_id,
                    error=str(e)
                )

        return record


# Global ledger instance
_ledger: Optional[ActivityLedger] = None


def get_activity_ledger() -> ActivityLedger:
    """Get or create the global ledger over the configured store."""
    global _ledger
    if _ledger is None:
        _ledger = ActivityLedger(get_store())
    return _ledger


def set_notification_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    """Register the collaborator that delivers notifications for NOTIFY_TYPES."""
    get_activity_ledger().dispatcher = dispatcher
