from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from src.models.notification import NotificationPayload, TokenOutcome
from src.notifications.errors import BatchTransportError

logger = logging.getLogger(__name__)

FCM_MULTICAST_LIMIT = 500

_INVALID_TOKEN_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
)

# INVALID_ARGUMENT also covers message-level faults (oversized payload, bad data
# keys); only the registration-token variant says anything about the device.
_INVALID_TOKEN_MESSAGE_MARKERS = ("registration token",)


class BaseNotificationProvider(ABC):
    name: str = "base"
    max_batch_size: int = FCM_MULTICAST_LIMIT

    @abstractmethod
    def send(self, payload: NotificationPayload, tokens: list[str], timeout: float) -> list[TokenOutcome]:
        """Return one outcome per token, in order, or raise BatchTransportError."""
        raise NotImplementedError


class MockNotificationProvider(BaseNotificationProvider):
    name = "mock"

    def __init__(self, invalid_tokens: Iterable[str] = ()) -> None:
        self.invalid_tokens = set(invalid_tokens)
        self.calls: list[list[str]] = []

    def send(self, payload: NotificationPayload, tokens: list[str], timeout: float) -> list[TokenOutcome]:
        _ = payload, timeout
        self.calls.append(list(tokens))
        return [
            TokenOutcome.INVALID_TOKEN if token in self.invalid_tokens else TokenOutcome.DELIVERED
            for token in tokens
        ]


class FCMNotificationProvider(BaseNotificationProvider):
    name = "fcm"

    def __init__(self, app=None) -> None:
        # None means the default app, which must be initialised before the first send.
        self.app = app

    @staticmethod
    def _message(payload: NotificationPayload, tokens: list[str]) -> messaging.MulticastMessage:
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=payload.title, body=payload.body),
            android=messaging.AndroidConfig(
                notification=messaging.AndroidNotification(click_action=payload.click_action),
            ),
            data=dict(payload.data),
        )

    @staticmethod
    def _outcome(response: messaging.SendResponse) -> TokenOutcome:
        if response.success:
            return TokenOutcome.DELIVERED
        if isinstance(response.exception, _INVALID_TOKEN_ERRORS):
            return TokenOutcome.INVALID_TOKEN
        if isinstance(response.exception, firebase_exceptions.InvalidArgumentError):
            message = str(response.exception).lower()
            if any(marker in message for marker in _INVALID_TOKEN_MESSAGE_MARKERS):
                return TokenOutcome.INVALID_TOKEN
        return TokenOutcome.TRANSIENT_ERROR

    def send(self, payload: NotificationPayload, tokens: list[str], timeout: float) -> list[TokenOutcome]:
        # HTTP requests are bounded by the app's httpTimeout option; the dispatcher bounds the whole call.
        _ = timeout
        if len(tokens) > self.max_batch_size:
            raise ValueError(f"FCM accepts at most {self.max_batch_size} tokens per call, got {len(tokens)}")

        try:
            batch = messaging.send_each_for_multicast(self._message(payload, tokens), app=self.app)
        except firebase_exceptions.FirebaseError as exc:
            raise BatchTransportError(self.name, len(tokens), f"FCM multicast failed: {exc}") from exc
        except (OSError, TimeoutError) as exc:
            raise BatchTransportError(self.name, len(tokens), f"FCM transport error: {exc}") from exc

        if len(batch.responses) != len(tokens):
            raise BatchTransportError(
                self.name,
                len(tokens),
                f"FCM returned {len(batch.responses)} responses for {len(tokens)} tokens",
            )

        outcomes = [self._outcome(response) for response in batch.responses]
        for token, response, outcome in zip(tokens, batch.responses, outcomes):
            if outcome is TokenOutcome.TRANSIENT_ERROR:
                logger.warning(
                    "FCM rejected token temporarily",
                    extra={"token_suffix": token[-8:], "error": str(response.exception)},
                )
        return outcomes
