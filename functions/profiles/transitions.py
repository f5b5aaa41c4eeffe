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
Profile status transition table.

Every status write made by the lifecycle engine is looked up here, so the
set of reachable (status, operation) pairs is closed and visible in one
place. A current status of None means the stored status is empty or unset.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from shared.errors import IllegalTransition, ValidationError
from shared.types import ProfileStatus

INITIAL_STATUS = ProfileStatus.DRAFT


class ProfileOperation(StrEnum):
    SAVE_SECTION = "save_section"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RESUBMIT = "resubmit"


@dataclass(frozen=True)
class Transition:
    # None leaves the stored status untouched.
    target: Optional[ProfileStatus]


_KEEP = Transition(target=None)
_TO_DRAFT = Transition(target=ProfileStatus.DRAFT)
_TO_PENDING = Transition(target=ProfileStatus.PENDING)
_TO_APPROVED = Transition(target=ProfileStatus.APPROVED)
_TO_REJECTED = Transition(target=ProfileStatus.REJECTED)

_ALL_STATUSES: tuple[Optional[ProfileStatus], ...] = (None, *ProfileStatus)

TRANSITIONS: dict[tuple[Optional[ProfileStatus], ProfileOperation], Transition] = {
    # Saving a section withdraws a profile from the review queue, but never
    # revokes a decision; re-approval goes through resubmission.
    (None, ProfileOperation.SAVE_SECTION): _TO_DRAFT,
    (ProfileStatus.PENDING, ProfileOperation.SAVE_SECTION): _TO_DRAFT,
    (ProfileStatus.DRAFT, ProfileOperation.SAVE_SECTION): _KEEP,
    (ProfileStatus.APPROVED, ProfileOperation.SAVE_SECTION): _KEEP,
    (ProfileStatus.REJECTED, ProfileOperation.SAVE_SECTION): _KEEP,
    **{(status, ProfileOperation.SUBMIT): _TO_PENDING for status in _ALL_STATUSES},
    **{(status, ProfileOperation.APPROVE): _TO_APPROVED for status in _ALL_STATUSES},
    **{(status, ProfileOperation.REJECT): _TO_REJECTED for status in _ALL_STATUSES},
    **{(status, ProfileOperation.RESUBMIT): _TO_PENDING for status in _ALL_STATUSES},
}

# Operations whose target depends on the current status.
STATUS_DEPENDENT_OPERATIONS = frozenset({ProfileOperation.SAVE_SECTION})

REVIEW_OPERATIONS = {
    ProfileStatus.APPROVED: ProfileOperation.APPROVE,
    ProfileStatus.REJECTED: ProfileOperation.REJECT,
}


def parse_status(value: Optional[str]) -> Optional[ProfileStatus]:
    """
    Reads a stored status value. Empty or missing values are unset (None).

    Raises:
        ValidationError: If the stored value is not a known status.
    """
    if not value:
        return None
    try:
        return ProfileStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown profile status: {value!r}")


def current_status(
    value: Optional[str], operation: ProfileOperation
) -> Optional[ProfileStatus]:
    """
    Reads the stored status as seen by `operation`.

    An unknown stored value is only an error for operations whose outcome
    depends on it. Submission, resubmission and review overwrite the status
    regardless, so for them it reads as unset.
    """
    if operation in STATUS_DEPENDENT_OPERATIONS:
        return parse_status(value)
    try:
        return parse_status(value)
    except ValidationError:
        return None


def next_status(
    current: Optional[ProfileStatus], operation: ProfileOperation
) -> Optional[ProfileStatus]:
    """
    Returns the status to write for the operation, or None to leave it as is.

    Raises:
        IllegalTransition: If the pair is not in the transition table.
    """
    transition = TRANSITIONS.get((current, operation))
    if transition is None:
        raise IllegalTransition(
            f"Cannot {operation.value} a profile in status {current or 'unset'}"
        )
    return transition.target


def review_operation(status: str) -> ProfileOperation:
    """Maps a review decision to its operation; only approve/reject are valid."""
    try:
        return REVIEW_OPERATIONS[ProfileStatus(status)]
    except (ValueError, KeyError):
        raise ValidationError(
            f"Review status must be 'approved' or 'rejected', got {status!r}"
        )
