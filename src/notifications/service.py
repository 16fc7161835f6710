from __future__ import annotations

import logging

from src.config import get_settings
from src.events.source import PostEventSource
from src.models.notification import DispatchSummary, Post, TokenRecord
from src.notifications.builder import build_notification
from src.notifications.dispatcher import Dispatcher
from src.notifications.providers import (
    BaseNotificationProvider,
    FCMNotificationProvider,
    MockNotificationProvider,
)
from src.storage.repository import TokenStore

logger = logging.getLogger(__name__)


def build_provider(name: str | None = None) -> BaseNotificationProvider:
    provider_key = (name or get_settings().notification_provider).strip().lower()
    if provider_key == "fcm":
        from src.integrations.firebase_client import init_firebase

        return FCMNotificationProvider(app=init_firebase())
    return MockNotificationProvider()


class NotificationService:
    def __init__(
        self,
        token_store: TokenStore | None = None,
        provider: BaseNotificationProvider | None = None,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self.token_store = token_store or TokenStore()
        self.provider = provider or build_provider()
        self.dispatcher = dispatcher or Dispatcher(provider=self.provider, token_store=self.token_store)

    def register_device(self, user_id: str, token: str) -> TokenRecord:
        record = self.token_store.upsert(user_id, token)
        logger.info("Device token registered", extra={"user_id": record.user_id})
        return record

    def unregister_device(self, user_id: str) -> bool:
        return self.token_store.remove(user_id)

    def handle_post_created(self, post: Post) -> DispatchSummary:
        payload = build_notification(post)
        # TokenStoreError propagates: the event as a whole has to be redelivered.
        records = list(self.token_store.list_all())

        summary = self.dispatcher.dispatch_summary(payload, records, post_id=post.id)
        logger.info(
            "New post notification dispatched",
            extra={
                "post_id": post.id,
                "provider": self.provider.name,
                "attempted": summary.attempted,
                "delivered": summary.delivered,
                "invalid": summary.invalid,
                "transient": summary.transient,
                "pruned": summary.pruned,
            },
        )
        return summary

    def subscribe(self, source: PostEventSource) -> None:
        source.subscribe(self.handle_post_created)
