"""Notification service used by order side effects."""

from __future__ import annotations

from typing import Any, Optional

import structlog

from modules.notifications.models import Notification, NotificationChannel

logger = structlog.get_logger(__name__)


class NotificationService:
    def notify_user(
        self, user_id: Any, title: str, body: str = "", order_id: Optional[Any] = None
    ) -> Notification:
        notification = Notification.objects.create(
            user_id=user_id,
            channel=NotificationChannel.IN_APP,
            title=title,
            body=body,
            order_id=order_id,
        )
        logger.info(
            "notification.sent",
            channel=notification.channel,
            user_id=str(user_id),
            order_id=str(order_id) if order_id else None,
        )
        return notification

    def notify_managers(
        self, title: str, body: str = "", order_id: Optional[Any] = None
    ) -> Notification:
        notification = Notification.objects.create(
            channel=NotificationChannel.OPERATIONS,
            title=title,
            body=body,
            order_id=order_id,
        )
        logger.info(
            "notification.sent",
            channel=notification.channel,
            order_id=str(order_id) if order_id else None,
        )
        return notification
