from __future__ import annotations

import logging
from collections.abc import Callable

from src.models.notification import Post

logger = logging.getLogger(__name__)

PostHandler = Callable[[Post], object]


class PostEventSource:
    """In-process publisher of post-created events.

    Handlers run synchronously in subscription order. A handler exception
    propagates to the publisher so the caller can decide whether the event
    must be redelivered.
    """

    def __init__(self) -> None:
        self._handlers: list[PostHandler] = []

    def subscribe(self, handler: PostHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: PostHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def publish(self, post: Post) -> None:
        if not self._handlers:
            logger.warning("Post created with no subscribers", extra={"post_id": post.id})
            return
        for handler in list(self._handlers):
            handler(post)


post_events = PostEventSource()
