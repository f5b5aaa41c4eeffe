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
Outgoing mail, written as documents into the `mail` collection.

A trigger-email extension watching the collection does the delivery; nothing
here waits for it.
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, List, Optional, Union

from portal.db import DocumentStore
from shared.errors import ValidationError
from shared.firebase_constants import MAIL_COLLECTION

logger = logging.getLogger(__name__)

DEFAULT_GREETING = "Dear Member,"
COPY_RECIPIENT_NAME = "COPY EMAIL"

# A plain address or {"email": ..., "name": ...}.
Recipient = Union[str, dict]


@dataclass
class MailMessage:
    to: List[Recipient]
    subject: str
    text: Optional[str] = None
    html: Optional[str] = None

    def to_document(self) -> dict:
        message: dict[str, Any] = {"subject": self.subject}
        if self.text is not None:
            message["text"] = self.text
        if self.html is not None:
            message["html"] = self.html
        to: Any = self.to[0] if len(self.to) == 1 else list(self.to)
        return {"to": to, "message": message}


class MailQueue:
    def __init__(self, store: DocumentStore, collection: str = MAIL_COLLECTION):
        self.store = store
        self.collection = collection

    def enqueue(self, message: MailMessage) -> str:
        """Queues a message for delivery and returns the mail document id."""
        return self.store.add(self.collection, message.to_document())


class MessageTarget(StrEnum):
    SELECTED = "selected"
    NOT_SELECTED = "notSelected"
    ALL = "all"


@dataclass
class Volunteer:
    name: str = ""
    email: str = ""
    selected: bool = False


@dataclass
class BulkSendResult:
    success_count: int = 0
    error_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        parts = []
        if self.success_count:
            plural = "s" if self.success_count != 1 else ""
            parts.append(f"Successfully sent {self.success_count} email{plural}")
        if self.error_count:
            plural = "s" if self.error_count != 1 else ""
            parts.append(f"{self.error_count} error{plural}")
        return " with ".join(parts)


def filter_volunteers(
    volunteers: List[Volunteer], target: MessageTarget
) -> List[Volunteer]:
    if target == MessageTarget.SELECTED:
        return [volunteer for volunteer in volunteers if volunteer.selected]
    if target == MessageTarget.NOT_SELECTED:
        return [volunteer for volunteer in volunteers if not volunteer.selected]
    return list(volunteers)


def personalize(content: str, name: str) -> str:
    first_name = name.split(" ")[0] if name else ""
    return content.replace(DEFAULT_GREETING, f"Dear {first_name or 'Member'},", 1)


def send_volunteer_emails(
    queue: MailQueue,
    volunteers: List[Volunteer],
    subject: str,
    content: str,
    target: MessageTarget,
    copy_to: str,
) -> BulkSendResult:
    """
    Queues one personalised email per targeted volunteer, each copied to the office.

    Args:
        queue: Where the mail documents are written.
        volunteers: Everyone signed up for the event.
        subject: Email subject; must not be blank.
        content: Plain-text body. "Dear Member," is replaced with the volunteer's first name.
        target: Which volunteers to message.
        copy_to: Address that receives a copy of every email.

    Returns:
        BulkSendResult with per-volunteer failures. A failure does not stop the batch.
    """
    subject = (subject or "").strip()
    content = (content or "").strip()
    if not subject:
        raise ValidationError("Please enter a subject")
    if not content:
        raise ValidationError("Please enter a message")

    recipients = filter_volunteers(volunteers, MessageTarget(target))
    if not recipients:
        raise ValidationError("No volunteers found for the selected target group")

    result = BulkSendResult()
    for volunteer in recipients:
        if not volunteer.email:
            result.error_count += 1
            result.errors.append(f"{volunteer.name or 'Unknown volunteer'}: no email address")
            continue

        body = personalize(content, volunteer.name)
        message = MailMessage(
            to=[volunteer.email, {"email": copy_to, "name": COPY_RECIPIENT_NAME}],
            subject=subject,
            text=body,
            html=body.replace("\n", "<br>"),
        )
        try:
            queue.enqueue(message)
            result.success_count += 1
        except Exception as e:
            logger.error("Error sending email to %s: %s", volunteer.email, e)
            result.error_count += 1
            result.errors.append(f"{volunteer.email}: {e}")

    if result.error_count:
        logger.warning("Email sending errors: %s", result.errors)
    logger.info(result.summary)
    return result
