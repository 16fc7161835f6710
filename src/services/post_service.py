from __future__ import annotations

import uuid

from sqlalchemy.orm import Session

from src.models.notification import Post
from src.models.tables import PostRecord
from src.utils.time import utc_now_naive


class PostService:
    def __init__(self, db: Session) -> None:
        self.db = db

    @staticmethod
    def _to_post(row: PostRecord) -> Post:
        return Post(id=row.id, pet_name=row.pet_name, created_at=row.created_at)

    def create_post(self, pet_name: str | None) -> Post:
        clean_name = (pet_name or "").strip() or None
        row = PostRecord(
            id=uuid.uuid4().hex,
            pet_name=clean_name,
            created_at=utc_now_naive(),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return self._to_post(row)

    def get_post(self, post_id: str) -> Post | None:
        row = self.db.get(PostRecord, post_id)
        return self._to_post(row) if row is not None else None
