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

# Cloud functions for the FMS portal - Stripe payment webhook + 2FA reset.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Third-party library imports
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options

# Local application imports
from mailer.mail import MailQueue
from payments.stripe_webhook import handle_stripe_event
from portal.config import get_settings
from portal.db import DocumentStore, FirestoreDocumentStore
from shared.errors import (
    NotFoundError,
    TokenAlreadyUsed,
    TokenExpired,
    ValidationError,
)
from two_factor import reset as two_factor_reset

INTERNAL_ERROR_MESSAGE = "An error occurred processing your request"

initialize_app()


def _document_store() -> DocumentStore:
    return FirestoreDocumentStore(firestore.client())


@https_fn.on_request(memory=options.MemoryOption.MB_256)
def stripe_webhook(req: https_fn.Request) -> https_fn.Response:
    """
    Receives Stripe payment notifications and marks applicants as paid.

    Every POST is acknowledged with 200 (unless the session has no customer
    email), including when processing fails, so Stripe does not retry.
    """
    if req.method != "POST":
        logger.info("Rejected non-POST request")
        return https_fn.Response("Method Not Allowed", status=405)

    settings = get_settings()
    try:
        event = req.get_json(silent=True) or {}
        outcome = handle_stripe_event(
            _document_store(),
            event,
            default_amount=settings.default_payment_amount,
            default_currency=settings.default_payment_currency,
        )
    except Exception as e:
        logger.error("Error processing webhook:", str(e))
        return https_fn.Response("Error processed", status=200)

    return https_fn.Response(outcome.message, status=outcome.status_code)


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def request_2fa_reset(req: https_fn.CallableRequest) -> dict:
    """
    Sends a reset email to a user who has lost access to their authenticator.

    Args:
        req (https_fn.CallableRequest): The request, containing the email.

    Returns:
        {"success": True}, whether or not the account exists.
    """
    email = (req.data or {}).get("email")
    settings = get_settings()
    try:
        store = _document_store()
        return two_factor_reset.request_reset(
            store,
            MailQueue(store),
            email,
            reset_url=settings.two_factor_reset_url,
            ttl_minutes=settings.two_factor_token_ttl_minutes,
        )
    except ValidationError as e:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT, e.message
        )
    except Exception as e:
        logger.error("2FA reset error:", str(e))
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INTERNAL, INTERNAL_ERROR_MESSAGE
        )


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def confirm_2fa_reset(req: https_fn.CallableRequest) -> dict:
    """
    Validates a reset token and disables 2FA for its user.

    Args:
        req (https_fn.CallableRequest): The request, containing the token.

    Returns:
        A dictionary with `success` and a confirmation `message`.
    """
    token = (req.data or {}).get("token")
    try:
        return two_factor_reset.confirm_reset(_document_store(), token)
    except ValidationError as e:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT, e.message
        )
    except NotFoundError as e:
        raise https_fn.HttpsError(https_fn.FunctionsErrorCode.NOT_FOUND, e.message)
    except TokenAlreadyUsed as e:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.FAILED_PRECONDITION, e.message
        )
    except TokenExpired as e:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.DEADLINE_EXCEEDED, e.message
        )
    except Exception as e:
        logger.error("2FA confirmation error:", str(e))
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INTERNAL, INTERNAL_ERROR_MESSAGE
        )
