from __future__ import annotations

from collections.abc import Callable, Iterator

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import settings
from src.models.db import get_session_factory
from src.models.notification import TokenRecord
from src.models.tables import UserToken
from src.notifications.errors import TokenStoreError
from src.utils.time import utc_now_naive


class TokenStore:
    """Device tokens keyed by user id.

    Every call opens its own session, so the store can be shared between
    request handlers and dispatcher worker threads without locking.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        page_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.page_size = max(1, int(page_size or settings.token_page_size))

    def _session(self) -> Session:
        factory = self._session_factory or get_session_factory()
        return factory()

    @staticmethod
    def _clean(value: str) -> str:
        return (value or "").strip()

    def upsert(self, user_id: str, token: str) -> TokenRecord:
        clean_user = self._clean(user_id)
        clean_token = self._clean(token)
        if not clean_user or not clean_token:
            raise ValueError("user_id and token cannot be empty")

        db = self._session()
        try:
            # A device token belongs to one user at a time.
            db.execute(delete(UserToken).where(UserToken.token == clean_token, UserToken.user_id != clean_user))
            row = db.get(UserToken, clean_user)
            if row is None:
                row = UserToken(user_id=clean_user, token=clean_token, updated_at=utc_now_naive())
            else:
                row.token = clean_token
                row.updated_at = utc_now_naive()
            db.add(row)
            db.commit()
            db.refresh(row)
            return TokenRecord.model_validate(row)
        except SQLAlchemyError as exc:
            db.rollback()
            raise TokenStoreError("upsert", f"Failed to store token for {clean_user}: {exc}") from exc
        finally:
            db.close()

    def get(self, user_id: str) -> TokenRecord | None:
        db = self._session()
        try:
            row = db.get(UserToken, self._clean(user_id))
            return TokenRecord.model_validate(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise TokenStoreError("get", f"Failed to read token for {user_id}: {exc}") from exc
        finally:
            db.close()

    def count(self) -> int:
        db = self._session()
        try:
            return int(db.execute(select(func.count()).select_from(UserToken)).scalar_one())
        except SQLAlchemyError as exc:
            raise TokenStoreError("count", f"Failed to count tokens: {exc}") from exc
        finally:
            db.close()

    def _fetch_page(self, after_user_id: str | None) -> list[TokenRecord]:
        stmt = select(UserToken).order_by(UserToken.user_id.asc()).limit(self.page_size)
        if after_user_id is not None:
            stmt = stmt.where(UserToken.user_id > after_user_id)

        db = self._session()
        try:
            rows = db.execute(stmt).scalars().all()
            return [TokenRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as exc:
            raise TokenStoreError("list_all", f"Failed to list tokens: {exc}") from exc
        finally:
            db.close()

    def iter_all(self) -> Iterator[TokenRecord]:
        last_user_id: str | None = None
        while True:
            page = self._fetch_page(last_user_id)
            yield from page
            if len(page) < self.page_size:
                return
            last_user_id = page[-1].user_id

    def list_all(self) -> "TokenListing":
        return TokenListing(self)

    def remove(self, user_id: str, token: str | None = None) -> bool:
        """Delete the record for user_id; with token, only while it still holds that token."""
        stmt = delete(UserToken).where(UserToken.user_id == self._clean(user_id))
        if token is not None:
            stmt = stmt.where(UserToken.token == self._clean(token))

        db = self._session()
        try:
            deleted = db.execute(stmt).rowcount
            db.commit()
            return bool(deleted)
        except SQLAlchemyError as exc:
            db.rollback()
            raise TokenStoreError("remove", f"Failed to remove token for {user_id}: {exc}") from exc
        finally:
            db.close()

    def remove_token(self, token: str) -> int:
        db = self._session()
        try:
            deleted = db.execute(delete(UserToken).where(UserToken.token == self._clean(token))).rowcount
            db.commit()
            return int(deleted or 0)
        except SQLAlchemyError as exc:
            db.rollback()
            raise TokenStoreError("remove_token", f"Failed to remove token: {exc}") from exc
        finally:
            db.close()


class TokenListing:
    """Restartable view over every stored token; each iteration re-reads the store page by page."""

    def __init__(self, store: TokenStore) -> None:
        self._store = store

    def __iter__(self) -> Iterator[TokenRecord]:
        return self._store.iter_all()
