from __future__ import annotations

import logging
import threading

import firebase_admin
from firebase_admin import credentials

from src.config import settings

logger = logging.getLogger(__name__)

_init_lock = threading.Lock()


def init_firebase() -> firebase_admin.App:
    """Initialise the default Firebase app once per process and return it.

    Uses the service-account file from FIREBASE_CREDENTIALS_PATH when set,
    otherwise application default credentials. The app lives as long as the
    process.
    """
    with _init_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass

        credential = (
            credentials.Certificate(settings.firebase_credentials_path)
            if settings.firebase_credentials_path
            else credentials.ApplicationDefault()
        )
        options: dict[str, object] = {"httpTimeout": settings.dispatch_timeout_seconds}
        if settings.firebase_project_id:
            options["projectId"] = settings.firebase_project_id

        app = firebase_admin.initialize_app(credential, options)
        logger.info(
            "Firebase app initialised",
            extra={"project_id": settings.firebase_project_id or None, "http_timeout": settings.dispatch_timeout_seconds},
        )
        return app
