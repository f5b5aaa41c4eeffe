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
Stripe checkout webhook: marks applicants awaiting payment as paid.

The HTTP entry points acknowledge every POST with 200, including ones that
fail here, so Stripe does not keep retrying an event we cannot process.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from portal.db import DocumentStore
from shared.firebase_constants import APPLICANTS_COLLECTION
from shared.types import ApplicantStatus

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
DEFAULT_PAID_AMOUNT = 30
DEFAULT_CURRENCY = "gbp"


@dataclass
class WebhookOutcome:
    status_code: int
    message: str
    updated_count: int = 0


def customer_email(session: dict) -> Optional[str]:
    details = session.get("customer_details") or {}
    email = details.get("email") or session.get("customer_email")
    if not email:
        return None
    return email.lower().strip()


def payment_fields(
    session: dict,
    default_amount: float = DEFAULT_PAID_AMOUNT,
    default_currency: str = DEFAULT_CURRENCY,
) -> dict:
    amount_total = session.get("amount_total")
    return {
        "status": ApplicantStatus.PAID.value,
        "stripePaymentId": session.get("payment_intent") or session.get("id"),
        "stripeSessionId": session.get("id"),
        "paidAt": SERVER_TIMESTAMP,
        # Stripe amounts are in the smallest currency unit.
        "paidAmount": amount_total / 100 if amount_total else default_amount,
        "paymentCurrency": session.get("currency") or default_currency,
    }


def handle_stripe_event(
    store: DocumentStore,
    event: dict,
    default_amount: float = DEFAULT_PAID_AMOUNT,
    default_currency: str = DEFAULT_CURRENCY,
) -> WebhookOutcome:
    """
    Applies a Stripe event to the applicants collection.

    Only `checkout.session.completed` is acted on; the customer's email is
    matched against applicants in `approved_to_pay`, and all matches are
    updated in one batch.

    Args:
        store: The document store holding applicants.
        event: The decoded Stripe event payload.
        default_amount: Paid amount recorded when the session has no total.
        default_currency: Currency recorded when the session has none.

    Returns:
        WebhookOutcome with the status code and body to send back.
    """
    event_type = event.get("type")
    logger.info("Received Stripe event: %s", event_type)

    if event_type != CHECKOUT_COMPLETED:
        logger.info("Ignoring event type: %s", event_type)
        return WebhookOutcome(200, "Event received")

    session = (event.get("data") or {}).get("object") or {}
    email = customer_email(session)
    if not email:
        logger.error("No customer email found in session")
        return WebhookOutcome(400, "No customer email found")

    logger.info("Processing payment for email: %s", email)
    awaiting = store.where(
        APPLICANTS_COLLECTION,
        [
            ("email", "==", email),
            ("status", "==", ApplicantStatus.APPROVED_TO_PAY.value),
        ],
    )

    if not awaiting:
        if store.where(APPLICANTS_COLLECTION, [("email", "==", email)], limit=1):
            logger.info("Applicant found but not in approved_to_pay status")
            return WebhookOutcome(200, "Applicant not awaiting payment")
        logger.info("No applicant found with email: %s", email)
        return WebhookOutcome(200, "No matching applicant found")

    fields = payment_fields(session, default_amount, default_currency)
    store.batch_update(
        APPLICANTS_COLLECTION, {applicant.id: fields for applicant in awaiting}
    )
    logger.info("Successfully marked %d applicant(s) as paid", len(awaiting))
    return WebhookOutcome(
        200, f"Updated {len(awaiting)} applicant(s)", updated_count=len(awaiting)
    )
