from __future__ import annotations

from src.config import Settings, get_settings
from src.models.notification import NotificationPayload, Post


def _pet_name(post: Post, placeholder: str) -> str:
    name = (post.pet_name or "").strip()
    return name or placeholder


def build_notification(post: Post, settings: Settings | None = None) -> NotificationPayload:
    """Turn a newly created post into the broadcast payload.

    Never raises for a well-formed post: a missing or blank pet name falls
    back to the configured placeholder.
    """
    cfg = settings or get_settings()
    body = cfg.notification_body_template.replace("{pet_name}", _pet_name(post, cfg.pet_name_placeholder))
    return NotificationPayload(
        title=cfg.notification_title,
        body=body,
        click_action=cfg.notification_click_action,
        data={"post_id": post.id, "click_action": cfg.notification_click_action},
    )
