from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from src.config import Settings, get_settings
from src.models.notification import (
    DeliveryErrorKind,
    DeliveryResult,
    DispatchSummary,
    NotificationPayload,
    TokenOutcome,
    TokenRecord,
)
from src.notifications.errors import BatchTransportError, TokenStoreError
from src.notifications.providers import BaseNotificationProvider
from src.storage.repository import TokenStore

logger = logging.getLogger(__name__)

_OUTCOME_RESULTS = {
    TokenOutcome.DELIVERED: (True, None),
    TokenOutcome.INVALID_TOKEN: (False, DeliveryErrorKind.INVALID_TOKEN),
    TokenOutcome.TRANSIENT_ERROR: (False, DeliveryErrorKind.TRANSIENT_ERROR),
}


class Dispatcher:
    """Fans a payload out to many tokens in bounded batches.

    Batches run in parallel. A batch whose backend call fails (or whose
    tokens come back as transient errors) is retried with exponential
    backoff; once the retry budget is spent its remaining tokens are
    reported as transient errors. Tokens the backend reports as invalid are
    removed from the token store.
    """

    def __init__(
        self,
        provider: BaseNotificationProvider,
        token_store: TokenStore | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        cfg = settings or get_settings()
        self.provider = provider
        self.token_store = token_store
        self.batch_size = max(1, min(cfg.dispatch_batch_size, provider.max_batch_size))
        self.max_retries = max(0, cfg.dispatch_max_retries)
        self.backoff_seconds = max(0.0, cfg.dispatch_backoff_seconds)
        self.backoff_max_seconds = max(self.backoff_seconds, cfg.dispatch_backoff_max_seconds)
        self.timeout_seconds = max(0.01, cfg.dispatch_timeout_seconds)
        self.max_workers = max(1, cfg.dispatch_max_workers)
        self._sleep = sleep

    @staticmethod
    def _normalize(tokens: Iterable[str | TokenRecord]) -> tuple[list[str], dict[str, str]]:
        ordered: list[str] = []
        owners: dict[str, str] = {}
        seen: set[str] = set()
        for item in tokens:
            if isinstance(item, TokenRecord):
                token, user_id = item.token.strip(), item.user_id
            else:
                token, user_id = (item or "").strip(), None
            if not token:
                continue
            if user_id is not None:
                owners.setdefault(token, user_id)
            if token in seen:
                continue
            seen.add(token)
            ordered.append(token)
        return ordered, owners

    @staticmethod
    def _chunk(items: list[str], size: int) -> list[list[str]]:
        safe_size = max(1, int(size))
        return [items[idx : idx + safe_size] for idx in range(0, len(items), safe_size)]

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_max_seconds, self.backoff_seconds * (2**attempt))

    def _call_provider(self, payload: NotificationPayload, tokens: list[str]) -> list[TokenOutcome]:
        # The provider gets the timeout too, but a hung call must not hold the batch past it.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dispatch-call")
        try:
            future = pool.submit(self.provider.send, payload, tokens, self.timeout_seconds)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeoutError as exc:
                future.cancel()
                raise BatchTransportError(
                    self.provider.name,
                    len(tokens),
                    f"Provider call timed out after {self.timeout_seconds}s",
                ) from exc
        finally:
            pool.shutdown(wait=False)

    def _send_batch(self, payload: NotificationPayload, batch: list[str], batch_idx: int) -> dict[str, TokenOutcome]:
        outcomes: dict[str, TokenOutcome] = {}
        pending = list(batch)

        for attempt in range(self.max_retries + 1):
            try:
                returned = self._call_provider(payload, pending)
                if len(returned) != len(pending):
                    raise BatchTransportError(
                        self.provider.name,
                        len(pending),
                        f"Provider returned {len(returned)} outcomes for {len(pending)} tokens",
                    )
                retry = []
                for token, outcome in zip(pending, returned):
                    if outcome is TokenOutcome.TRANSIENT_ERROR:
                        retry.append(token)
                    else:
                        outcomes[token] = outcome
                pending = retry
                if not pending:
                    return outcomes
                reason = f"{len(pending)} tokens failed transiently"
            except BatchTransportError as exc:
                reason = str(exc)
            except Exception as exc:
                logger.exception(
                    "Unexpected error sending batch",
                    extra={"batch": batch_idx, "provider": self.provider.name, "error": str(exc)},
                )
                reason = str(exc)

            if attempt >= self.max_retries:
                break

            sleep_for = self._backoff(attempt)
            logger.warning(
                "Notification batch failed, retrying",
                extra={
                    "batch": batch_idx,
                    "attempt": attempt + 1,
                    "pending": len(pending),
                    "sleep_seconds": sleep_for,
                    "error": reason,
                },
            )
            self._sleep(sleep_for)

        logger.warning(
            "Notification batch gave up after retries",
            extra={"batch": batch_idx, "pending": len(pending), "attempts": self.max_retries + 1},
        )
        for token in pending:
            outcomes[token] = TokenOutcome.TRANSIENT_ERROR
        return outcomes

    def _prune(self, invalid: list[DeliveryResult]) -> int:
        if self.token_store is None or not invalid:
            return 0

        pruned = 0
        for result in invalid:
            try:
                if result.user_id is not None:
                    pruned += int(self.token_store.remove(result.user_id, token=result.token))
                else:
                    pruned += self.token_store.remove_token(result.token)
            except TokenStoreError as exc:
                logger.warning(
                    "Failed to prune invalid token",
                    extra={"user_id": result.user_id, "operation": exc.operation, "error": str(exc)},
                )
        if pruned:
            logger.info("Pruned invalid device tokens", extra={"pruned": pruned})
        return pruned

    def _run(self, payload: NotificationPayload, tokens: Iterable[str | TokenRecord]) -> tuple[list[DeliveryResult], int, int]:
        ordered, owners = self._normalize(tokens)
        if not ordered:
            return [], 0, 0

        batches = self._chunk(ordered, self.batch_size)
        outcomes: dict[str, TokenOutcome] = {}
        if len(batches) == 1:
            outcomes.update(self._send_batch(payload, batches[0], 0))
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(batches)), thread_name_prefix="dispatch") as pool:
                futures = [
                    pool.submit(self._send_batch, payload, batch, batch_idx)
                    for batch_idx, batch in enumerate(batches)
                ]
                for future in futures:
                    outcomes.update(future.result())

        results = []
        for token in ordered:
            success, error_kind = _OUTCOME_RESULTS[outcomes[token]]
            results.append(
                DeliveryResult(token=token, success=success, error_kind=error_kind, user_id=owners.get(token))
            )

        pruned = self._prune([r for r in results if r.error_kind is DeliveryErrorKind.INVALID_TOKEN])
        return results, len(batches), pruned

    def dispatch(self, payload: NotificationPayload, tokens: Sequence[str | TokenRecord]) -> list[DeliveryResult]:
        results, _, _ = self._run(payload, tokens)
        return results

    def dispatch_summary(
        self,
        payload: NotificationPayload,
        tokens: Sequence[str | TokenRecord],
        post_id: str | None = None,
    ) -> DispatchSummary:
        results, batch_count, pruned = self._run(payload, tokens)
        return DispatchSummary(
            post_id=post_id,
            attempted=len(results),
            delivered=sum(1 for r in results if r.success),
            invalid=sum(1 for r in results if r.error_kind is DeliveryErrorKind.INVALID_TOKEN),
            transient=sum(1 for r in results if r.error_kind is DeliveryErrorKind.TRANSIENT_ERROR),
            batches=batch_count,
            pruned=pruned,
            results=results,
        )
