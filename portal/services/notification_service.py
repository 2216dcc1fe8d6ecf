"""
Notification Service - per-user notification log with push delivery

Notifications are appended inside the caller's transaction. Once that
transaction commits, each new notification is pushed to the recipient's
live subscriptions (at most once, best effort). Clients that are not
subscribed pick notifications up on their next list call.
"""
from sqlalchemy import event, update
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional, List, Dict, Any, Set, Tuple
import asyncio
import logging
import threading

from portal.core.config import settings
from portal.core.errors import NotificationNotFound
from portal.db.models import Notification

logger = logging.getLogger(__name__)

_PENDING_PUSH_KEY = "pending_notification_push"


class NotificationType:
    """Notification type constants"""
    CONTRACT_AWARD = "contract_award"


def serialize_notification(notification: Notification) -> Dict[str, Any]:
    return {
        "id": str(notification.id),
        "user_id": str(notification.user_id),
        "title": notification.title,
        "message": notification.message,
        "type": notification.type,
        "read": bool(notification.read),
        "link": notification.link,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


class Subscription:
    """
    A live feed of one user's new notifications.

    Usage:
        async with notification_hub.subscribe(user_id) as feed:
            async for payload in feed:
                ...
    """

    def __init__(self, hub: "NotificationHub", user_id: UUID):
        self.hub = hub
        self.user_id = user_id
        self.queue: Optional[asyncio.Queue] = None
        self._entry = None

    async def __aenter__(self):
        loop = asyncio.get_running_loop()
        self.queue = asyncio.Queue(maxsize=self.hub.queue_size)
        self._entry = (loop, self.queue)
        self.hub._register(self.user_id, self._entry)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.hub._unregister(self.user_id, self._entry)
        return False

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        return await self.queue.get()


class NotificationHub:
    """In-process fan-out of committed notifications to subscribed sessions"""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: Dict[UUID, Set[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, user_id: UUID) -> Subscription:
        return Subscription(self, user_id)

    def subscriber_count(self, user_id: UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, ()))

    def _register(self, user_id, entry):
        with self._lock:
            self._subscribers.setdefault(user_id, set()).add(entry)

    def _unregister(self, user_id, entry):
        with self._lock:
            entries = self._subscribers.get(user_id)
            if entries is None:
                return
            entries.discard(entry)
            if not entries:
                del self._subscribers[user_id]

    def publish(self, user_id: UUID, payload: Dict[str, Any]) -> int:
        """Offer a payload to every live subscription of the user. Returns the number offered."""
        with self._lock:
            entries = list(self._subscribers.get(user_id, ()))

        offered = 0
        for loop, queue in entries:
            try:
                loop.call_soon_threadsafe(self._offer, queue, payload)
                offered += 1
            except RuntimeError:
                # Subscriber's event loop already closed
                logger.debug(f"Dropping push for {user_id}: subscriber loop closed")
        return offered

    @staticmethod
    def _offer(queue: asyncio.Queue, payload: Dict[str, Any]):
        try:
            queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning(f"Notification queue full, dropping push {payload.get('id')}")


notification_hub = NotificationHub(queue_size=settings.NOTIFICATION_QUEUE_SIZE)


@event.listens_for(Session, "after_commit")
def _push_committed_notifications(session):
    pending = session.info.pop(_PENDING_PUSH_KEY, None)
    if not pending:
        return
    for user_id, payload in pending:
        notification_hub.publish(user_id, payload)


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back_notifications(session):
    session.info.pop(_PENDING_PUSH_KEY, None)


def append(
    db: Session,
    user_id: UUID,
    title: str,
    message: str,
    notification_type: str,
    link: Optional[str] = None,
) -> Notification:
    """
    Add a notification to the user's log inside the current transaction.

    The row is flushed, not committed; the push goes out after the caller
    commits and is discarded if the caller rolls back.
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        link=link,
        read=False,
    )
    db.add(notification)
    db.flush()

    db.info.setdefault(_PENDING_PUSH_KEY, []).append(
        (notification.user_id, serialize_notification(notification))
    )
    return notification


def list_notifications(db: Session, user_id: UUID, unread_only: bool = False):
    """Query for a user's notifications, newest first"""
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc())


def unread_count(db: Session, user_id: UUID) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read.is_(False),
    ).count()


def mark_read(db: Session, notification_id: UUID, user_id: UUID) -> Notification:
    """Mark one notification read. Already-read notifications are left as they are."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        raise NotificationNotFound()

    if not notification.read:
        notification.read = True
        db.commit()
        db.refresh(notification)
    return notification


def mark_many_read(db: Session, notification_ids: List[UUID], user_id: UUID) -> int:
    if not notification_ids:
        return 0
    result = db.execute(
        update(Notification)
        .where(
            Notification.id.in_(notification_ids),
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


def mark_all_read(db: Session, user_id: UUID) -> int:
    """Mark every unread notification of the user read. Returns how many changed."""
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    changed = result.rowcount
    logger.info(f"Marked {changed} notification(s) read for user {user_id}")
    return changed
