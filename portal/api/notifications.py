from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session
from uuid import UUID
import asyncio
import logging

from portal.db.session import get_db
from portal.schemas.notification import NotificationOut, NotificationMarkRead
from portal.core.deps import get_current_user, user_from_token
from portal.services import notification_service as ns
from portal.utils.pagination import PaginatedResponse, PaginationParams, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=PaginatedResponse[NotificationOut])
def list_notifications(
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    unread_only: bool = False
):
    """
    Get the current user's notifications, newest first, with pagination.
    Optionally filter for unread notifications only.
    """
    query = ns.list_notifications(db, current_user.id, unread_only=unread_only)
    return paginate(query, pagination)


@router.get("/unread/count")
def get_unread_count(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Get count of unread notifications"""
    return {"unread_count": ns.unread_count(db, current_user.id)}


@router.post("/mark-read")
def mark_notifications_read(
    payload: NotificationMarkRead,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Mark one or more notifications as read; already-read ones are skipped"""
    count = ns.mark_many_read(db, payload.notification_ids, current_user.id)
    return {
        "message": f"Marked {count} notification(s) as read",
        "count": count
    }


@router.post("/mark-all-read")
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Mark all notifications as read for current user"""
    count = ns.mark_all_read(db, current_user.id)
    return {
        "message": f"Marked {count} notification(s) as read",
        "count": count
    }


@router.put("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return ns.mark_read(db, notification_id, current_user.id)


async def _forward(websocket: WebSocket, feed):
    async for payload in feed:
        await websocket.send_json(payload)


async def _wait_for_disconnect(websocket: WebSocket):
    # Clients do not send anything; this only waits for the disconnect
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


async def serve_feed(websocket: WebSocket, feed, user_id) -> None:
    """
    Pump pushes to an accepted socket until the client leaves or a send
    fails, whichever comes first. Both tasks are finished on return.
    """
    sender = asyncio.create_task(_forward(websocket, feed))
    receiver = asyncio.create_task(_wait_for_disconnect(websocket))
    tasks = {sender, receiver}
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    if sender in done and sender.exception() is not None:
        logger.warning(f"Notification push to {user_id} failed: {sender.exception()}")
    logger.info(f"Notification feed closed for {user_id}")


@router.websocket("/ws")
async def notification_feed(
    websocket: WebSocket,
    token: str,
    db: Session = Depends(get_db),
):
    """
    Push channel: sends each new notification for the authenticated user as
    JSON as soon as it is committed. Delivery is best effort; clients
    reconcile with GET /notifications on reconnect.
    """
    user = user_from_token(db, token)
    user_id = user.id if user is not None else None
    db.close()
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    async with ns.notification_hub.subscribe(user_id) as feed:
        await websocket.accept()
        await serve_feed(websocket, feed, user_id)
