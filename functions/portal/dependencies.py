"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

import firebase_admin
from fastapi import Header
from firebase_admin import firestore

from mailer.mail import MailQueue
from portal.config import get_settings
from portal.db import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
)
from profiles.lifecycle import ProfileLifecycle
from shared.types import Actor
from teams.ledger import TeamLedger

_store: DocumentStore | None = None


def _firestore_client():
    try:
        firebase_admin.get_app()
    except ValueError:
        firebase_admin.initialize_app()
    return firestore.client()


def get_store() -> DocumentStore:
    """
    Return a singleton document store so state persists across requests.
    """
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    if settings.store_backend == "firestore":
        _store = FirestoreDocumentStore(_firestore_client())
    elif settings.store_backend == "sql":
        _store = SqlDocumentStore(settings.database_url or "")
    else:
        _store = InMemoryDocumentStore()
    return _store


def get_profile_lifecycle() -> ProfileLifecycle:
    return ProfileLifecycle(get_store())


def get_team_ledger() -> TeamLedger:
    return TeamLedger(get_store(), max_workers=get_settings().cascade_max_workers)


def get_mail_queue() -> MailQueue:
    return MailQueue(get_store())


def get_actor(
    x_portal_user: Optional[str] = Header(default=None),
) -> Optional[Actor]:
    """
    The signed-in user, as forwarded by the auth proxy in front of the service.

    A missing header yields no actor; operations that need one reject the
    request themselves.
    """
    if not x_portal_user:
        return None
    return Actor(uid=x_portal_user)
