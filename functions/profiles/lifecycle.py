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
Profile lifecycle: section saves, submission, admin review and resubmission.

The signed-in actor is passed into every operation explicitly. Status
changes are decided by the transition table in profiles.transitions and
written in the same store call as the data they accompany.
"""

import dataclasses
import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

from dacite import Config, from_dict
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from portal.db import DocumentStore
from profiles import notes as notes_policy
from profiles.transitions import (
    INITIAL_STATUS,
    ProfileOperation,
    current_status,
    next_status,
    review_operation,
)
from shared.errors import (
    NotAuthenticated,
    PortalError,
    ProfileMissing,
    TermsNotAccepted,
    ValidationError,
)
from shared.firebase_constants import PROFILES_COLLECTION
from shared.json_utils import camel_to_snake, convert_keys
from shared.types import (
    SECTION_TYPES,
    Actor,
    AdminUse,
    Profile,
    ProfileSection,
    ProfileStatus,
)

logger = logging.getLogger(__name__)

_PROFILE_PARTS = (
    "personal_details",
    "driving",
    "medical_qualifications",
    "submission",
    "admin_use",
)


def _require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None or not actor.uid:
        raise NotAuthenticated()
    return actor


def _parse_section(section) -> ProfileSection:
    try:
        return ProfileSection(section)
    except ValueError:
        raise ValidationError(f"Unknown profile section: {section!r}")


def profile_from_document(data: dict) -> Profile:
    """Loads a stored (camelCase) profile document, filling in defaults."""
    doc = convert_keys(data, "camel_to_snake")
    for part in _PROFILE_PARTS:
        if doc.get(part) is None:
            doc.pop(part, None)
    return from_dict(data_class=Profile, data=doc, config=Config(check_types=False))


def profile_to_document(profile: Profile) -> dict:
    return convert_keys(asdict(profile), "snake_to_camel")


def _stored_status(existing: dict, operation: ProfileOperation):
    return current_status((existing.get("adminUse") or {}).get("status"), operation)


def section_from_payload(section: ProfileSection, data: Optional[dict]):
    """
    Loads a section payload into its dataclass, with defaults for missing fields.

    Raises:
        ValidationError: If the payload has keys the section does not define.
    """
    data_class = SECTION_TYPES[section]
    known = {field.name for field in dataclasses.fields(data_class)}
    unknown = [key for key in (data or {}) if camel_to_snake(key) not in known]
    if unknown:
        raise ValidationError(
            f"Unknown fields for {section.value}: {', '.join(sorted(unknown))}"
        )
    return from_dict(
        data_class=data_class,
        data=convert_keys(data or {}, "camel_to_snake"),
        config=Config(check_types=False),
    )


def normalize_section(section: ProfileSection, data: Optional[dict]) -> dict:
    """Shapes a section payload into its stored (camelCase) form."""
    return convert_keys(asdict(section_from_payload(section, data)), "snake_to_camel")


class ProfileLifecycle:
    """Owns profile status transitions and the note-preservation policy."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def _read(self, user_id: str) -> Optional[dict]:
        try:
            return self.store.get(PROFILES_COLLECTION, user_id)
        except PortalError as e:
            logger.error("Error getting profile for %s: %s", user_id, e)
            raise

    def _write(self, user_id: str, fields: dict, action: str) -> None:
        try:
            self.store.update(PROFILES_COLLECTION, user_id, fields)
        except PortalError as e:
            logger.error("Error %s for %s: %s", action, user_id, e)
            raise

    def get_profile(self, user_id: str) -> Optional[Profile]:
        """Returns the user's profile, or None if they have not created one."""
        data = self._read(user_id)
        if data is None:
            return None
        return profile_from_document(data)

    def get_current_profile(self, actor: Optional[Actor]) -> Optional[Profile]:
        actor = _require_actor(actor)
        return self.get_profile(actor.uid)

    def create_profile(
        self, actor: Optional[Actor], initial: Optional[dict] = None
    ) -> Profile:
        """
        Creates (or replaces) the actor's profile in draft status.

        Sections missing from `initial` are filled with empty defaults. The
        write is a full replace, so callers must not use this to re-create a
        profile that already holds other sections.
        """
        actor = _require_actor(actor)
        initial = initial or {}
        sections = {
            section: section_from_payload(section, initial.get(section.value))
            for section in ProfileSection
        }
        profile = Profile(
            personal_details=sections[ProfileSection.PERSONAL_DETAILS],
            driving=sections[ProfileSection.DRIVING],
            medical_qualifications=sections[ProfileSection.MEDICAL_QUALIFICATIONS],
            admin_use=AdminUse(status=INITIAL_STATUS.value),
        )
        try:
            self.store.set(PROFILES_COLLECTION, actor.uid, profile_to_document(profile))
        except PortalError as e:
            logger.error("Error creating profile for %s: %s", actor.uid, e)
            raise
        logger.info("Profile created for %s", actor.uid)
        return profile

    def update_section(
        self, actor: Optional[Actor], section, data: Optional[dict]
    ) -> Optional[ProfileStatus]:
        """
        Saves one editable section of the actor's profile.

        A profile under review (or without a status) drops back to draft, since
        the reviewer would otherwise be looking at stale data. Approved,
        rejected and draft profiles keep their status.

        Returns:
            The profile status after the save.
        """
        actor = _require_actor(actor)
        section = _parse_section(section)
        payload = normalize_section(section, data)

        existing = self._read(actor.uid)
        if existing is None:
            self.create_profile(actor, {section.value: payload})
            return INITIAL_STATUS

        current = _stored_status(existing, ProfileOperation.SAVE_SECTION)
        target = next_status(current, ProfileOperation.SAVE_SECTION)
        fields = {section.value: payload}
        if target is not None:
            fields["adminUse.status"] = target.value
        self._write(actor.uid, fields, f"updating {section.value}")
        logger.info("Updated %s for %s", section.value, actor.uid)
        return target or current

    def submit_profile(self, actor: Optional[Actor], agreed_to_terms: bool) -> None:
        """Submits the actor's profile for review."""
        actor = _require_actor(actor)
        if not agreed_to_terms:
            raise TermsNotAccepted()

        existing = self._read(actor.uid)
        if existing is None:
            raise ProfileMissing()

        current = _stored_status(existing, ProfileOperation.SUBMIT)
        target = next_status(current, ProfileOperation.SUBMIT)
        self._write(
            actor.uid,
            {
                "submission.agreedToTerms": True,
                "submission.submittedAt": SERVER_TIMESTAMP,
                "adminUse.status": target.value,
            },
            "submitting profile",
        )
        logger.info("Profile submitted for review by %s", actor.uid)

    def review_profile(
        self,
        actor: Optional[Actor],
        target_user_id: str,
        status: str,
        notes: str,
    ) -> ProfileStatus:
        """
        Records an admin decision on a profile.

        Admin rights are enforced by the store's access rules, not here. The
        notes overwrite whatever was stored before.
        """
        actor = _require_actor(actor)
        operation = review_operation(status)

        existing = self._read(target_user_id)
        if existing is None:
            raise ProfileMissing(f"No profile exists for user {target_user_id}")

        current = _stored_status(existing, operation)
        target = next_status(current, operation)
        self._write(
            target_user_id,
            {
                "adminUse.status": target.value,
                "adminUse.approvedBy": actor.uid,
                "adminUse.notes": notes or "",
                "adminUse.reviewedAt": SERVER_TIMESTAMP,
            },
            "reviewing profile",
        )
        logger.info(
            "Profile for %s reviewed by %s: %s", target_user_id, actor.uid, target
        )
        return target

    def resubmit_profile(
        self,
        actor: Optional[Actor],
        updated: dict,
        today: Optional[date] = None,
    ) -> str:
        """
        Replaces the editable sections and sends the profile back for review.

        Sections missing from `updated` are stored as empty maps, so callers
        must pass every section. Explicit notes may be given under
        `updated["adminUse"]["notes"]`.

        Args:
            actor: The signed-in user.
            updated: The new section payloads, keyed by stored section name.
            today: The caller's local date for the generated note line.

        Returns:
            The admin notes written.
        """
        actor = _require_actor(actor)

        existing = self._read(actor.uid)
        if existing is None:
            raise ProfileMissing()

        admin_use = existing.get("adminUse") or {}
        current = _stored_status(existing, ProfileOperation.RESUBMIT)
        target = next_status(current, ProfileOperation.RESUBMIT)

        explicit_notes = (updated.get("adminUse") or {}).get("notes")
        notes = notes_policy.resubmission_notes(
            admin_use.get("notes"), explicit_notes, today or date.today()
        )

        fields = {}
        for section in ProfileSection:
            payload = updated.get(section.value)
            fields[section.value] = normalize_section(section, payload) if payload else {}
        fields.update(
            {
                "submission.submittedAt": SERVER_TIMESTAMP,
                "adminUse.status": target.value,
                "adminUse.notes": notes,
            }
        )
        self._write(actor.uid, fields, "resubmitting profile")
        logger.info("Profile updated and resubmitted for review by %s", actor.uid)
        return notes

    def list_profiles(self, status) -> list[tuple[str, Profile]]:
        """Returns (user id, profile) pairs in the given status, e.g. the review queue."""
        try:
            status = ProfileStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown profile status: {status!r}")
        docs = self.store.where(
            PROFILES_COLLECTION, [("adminUse.status", "==", status.value)]
        )
        return [(doc.id, profile_from_document(doc.data)) for doc in docs]
