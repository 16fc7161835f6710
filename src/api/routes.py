from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from src.config import settings
from src.events.records import InvalidPostEvent, parse_post_event
from src.events.source import post_events
from src.models.db import get_db_session
from src.models.notification import USER_ID_MAX_LENGTH, DeviceRegistration, DispatchSummary, Post, TokenRecord
from src.models.schemas import DeviceRemovalResponse, HealthResponse, PostCreateRequest
from src.notifications.errors import NotifierError, TokenStoreError
from src.notifications.service import NotificationService
from src.services.post_service import PostService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pet-alert-notifier"])

notification_service = NotificationService()


def _publish_post(post: Post) -> None:
    try:
        post_events.publish(post)
    except NotifierError as exc:
        logger.exception("Post notification failed", extra={"post_id": post.id, "error": str(exc)})


def _check_user_id(user_id: str) -> None:
    if len(user_id) > USER_ID_MAX_LENGTH:
        raise HTTPException(status_code=400, detail=f"user_id longer than {USER_ID_MAX_LENGTH} characters")


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", provider=settings.notification_provider)


@router.put("/devices/{user_id}", response_model=TokenRecord)
def register_device(user_id: str, registration: DeviceRegistration):
    _check_user_id(user_id)
    try:
        return notification_service.register_device(user_id, registration.token)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TokenStoreError as exc:
        logger.exception("Device registration failed", extra={"user_id": user_id, "error": str(exc)})
        raise HTTPException(status_code=503, detail="Token store unavailable") from exc


@router.delete("/devices/{user_id}", response_model=DeviceRemovalResponse)
def unregister_device(user_id: str):
    _check_user_id(user_id)
    try:
        removed = notification_service.unregister_device(user_id)
    except TokenStoreError as exc:
        logger.exception("Device removal failed", extra={"user_id": user_id, "error": str(exc)})
        raise HTTPException(status_code=503, detail="Token store unavailable") from exc
    return DeviceRemovalResponse(user_id=user_id, removed=removed)


@router.post("/posts", response_model=Post, response_model_by_alias=True, status_code=201)
def create_post(
    payload: PostCreateRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db_session),
):
    post = PostService(db=db).create_post(payload.pet_name)
    background_tasks.add_task(_publish_post, post)
    return post


@router.get("/posts/{post_id}", response_model=Post, response_model_by_alias=True)
def get_post(post_id: str, db: Session = Depends(get_db_session)):
    post = PostService(db=db).get_post(post_id)
    if post is None:
        raise HTTPException(status_code=404, detail=f"Post not found: {post_id}")
    return post


@router.post("/events/post-created", response_model=DispatchSummary)
def post_created_event(record: dict[str, Any] = Body(...)):
    try:
        post = parse_post_event(record)
    except InvalidPostEvent as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        return notification_service.handle_post_created(post)
    except TokenStoreError as exc:
        logger.exception("Post event failed, source should redeliver", extra={"post_id": post.id, "error": str(exc)})
        raise HTTPException(status_code=503, detail="Token store unavailable, retry later") from exc
