from __future__ import annotations


class NotifierError(RuntimeError):
    pass


class TokenStoreError(NotifierError):
    """Token storage could not be read or written; the whole event should be retried."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(message)
        self.operation = operation


class BatchTransportError(NotifierError):
    """The delivery backend failed before returning per-token results."""

    def __init__(self, provider: str, batch_size: int, message: str) -> None:
        super().__init__(message)
        self.provider = provider
        self.batch_size = batch_size
