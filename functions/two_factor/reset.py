# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""
Two-factor authentication reset for users who lost their authenticator.

A reset request emails a one-time link; confirming the link's token turns
2FA off so the user can enrol again.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from google.cloud.firestore_v1 import DELETE_FIELD, SERVER_TIMESTAMP

from mailer.mail import MailMessage, MailQueue
from portal.db import DocumentStore
from shared.errors import NotFoundError, TokenAlreadyUsed, TokenExpired, ValidationError
from shared.firebase_constants import (
    TWO_FACTOR_RESET_TOKENS_COLLECTION,
    USERS_COLLECTION,
)

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
DEFAULT_TOKEN_TTL_MINUTES = 30
RESET_REASON = "email_reset"
RESET_SUBJECT = "Reset Your 2FA - FMS Portal"

RESET_EMAIL_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Reset Your Two-Factor Authentication</h2>
  <p>Hello {first_name},</p>
  <p>We received a request to reset your two-factor authentication. Click the
  link below to disable your current 2FA and set up a new one.</p>
  <p><a href="{reset_link}">Reset My 2FA</a></p>
  <p><strong>This link will expire in {ttl_minutes} minutes.</strong></p>
  <p>If you didn't request this reset, you can safely ignore this email.</p>
  <p>Festival Medical Services - FMS Prehospital Portal</p>
</div>
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def request_reset(
    store: DocumentStore,
    mail_queue: MailQueue,
    email: Optional[str],
    reset_url: str,
    ttl_minutes: int = DEFAULT_TOKEN_TTL_MINUTES,
    now: Optional[datetime] = None,
) -> dict:
    """
    Emails a reset link to the 2FA-enabled user with this address.

    The response is the same whether or not such a user exists, so the
    endpoint cannot be used to probe for accounts.

    Raises:
        ValidationError: If the email is missing or malformed.
    """
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("Valid email is required")

    users = store.where(
        USERS_COLLECTION, [("email", "==", email), ("has2FA", "==", True)], limit=1
    )
    if not users:
        logger.info("No user found with 2FA for email: %s", email)
        return {"success": True}

    user = users[0]
    token = secrets.token_hex(TOKEN_BYTES)
    expires_at = (now or _utcnow()) + timedelta(minutes=ttl_minutes)
    store.add(
        TWO_FACTOR_RESET_TOKENS_COLLECTION,
        {
            "token": token,
            "userId": user.id,
            "email": email,
            "createdAt": SERVER_TIMESTAMP,
            "expiresAt": expires_at,
            "used": False,
        },
    )

    reset_link = f"{reset_url}?token={token}"
    mail_queue.enqueue(
        MailMessage(
            to=[email],
            subject=RESET_SUBJECT,
            html=RESET_EMAIL_HTML.format(
                first_name=user.data.get("firstName") or "there",
                reset_link=reset_link,
                ttl_minutes=ttl_minutes,
            ),
        )
    )
    logger.info("2FA reset email queued for: %s", email)
    return {"success": True}


def confirm_reset(
    store: DocumentStore, token: Optional[str], now: Optional[datetime] = None
) -> dict:
    """
    Validates a reset token and disables 2FA for its user.

    Raises:
        ValidationError: If no token is given.
        NotFoundError: If the token is unknown (or already consumed and deleted).
        TokenAlreadyUsed: If the token is marked used.
        TokenExpired: If the token is past its expiry; it is deleted.
    """
    token = (token or "").strip()
    if not token:
        raise ValidationError("Reset token is required")

    matches = store.where(
        TWO_FACTOR_RESET_TOKENS_COLLECTION, [("token", "==", token)], limit=1
    )
    if not matches:
        logger.info("Token not found: %s...", token[:10])
        raise NotFoundError(
            "This reset link is invalid. It may have already been used."
        )

    token_doc = matches[0]
    if token_doc.data.get("used"):
        logger.info("Token already used: %s", token_doc.id)
        raise TokenAlreadyUsed(
            "This reset link has already been used. Please request a new one."
        )

    expires_at = token_doc.data.get("expiresAt")
    if expires_at is None or (now or _utcnow()) > _as_aware(expires_at):
        logger.info("Token expired: %s", token_doc.id)
        store.delete(TWO_FACTOR_RESET_TOKENS_COLLECTION, token_doc.id)
        raise TokenExpired("This reset link has expired. Please request a new one.")

    user_id = token_doc.data["userId"]
    store.update(
        USERS_COLLECTION,
        user_id,
        {
            "has2FA": False,
            "secret2FA": DELETE_FIELD,
            "twoFactorDisabledAt": SERVER_TIMESTAMP,
            "twoFactorDisabledReason": RESET_REASON,
        },
    )
    store.delete(TWO_FACTOR_RESET_TOKENS_COLLECTION, token_doc.id)

    logger.info("2FA reset successful for user: %s", user_id)
    return {"success": True, "message": "2FA has been reset successfully"}
