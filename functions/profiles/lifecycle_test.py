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

import unittest
from datetime import date, datetime

from portal.db import InMemoryDocumentStore
from profiles.lifecycle import ProfileLifecycle
from shared.errors import (
    NotAuthenticated,
    NotFoundError,
    ProfileMissing,
    StoreError,
    TermsNotAccepted,
    ValidationError,
)
from shared.firebase_constants import PROFILES_COLLECTION
from shared.types import Actor, ProfileSection, ProfileStatus

USER = Actor(uid="user1")
ADMIN = Actor(uid="admin1")

PERSONAL = {"dateOfBirth": "1990-01-01", "emergencyContact": "Jo 07700 900000"}
DRIVING = {"c1Classification": True, "licenceNumber": "ABC123", "points": "0"}
MEDICAL = {"qualification": "Paramedic", "hcpc": "PA12345"}


class CountingStore(InMemoryDocumentStore):
    """Records every call so tests can assert on store access."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def get(self, collection, doc_id):
        self.calls.append(("get", collection, doc_id))
        return super().get(collection, doc_id)

    def update(self, collection, doc_id, fields):
        self.calls.append(("update", collection, doc_id, dict(fields)))
        return super().update(collection, doc_id, fields)


class FailingStore(InMemoryDocumentStore):
    def update(self, collection, doc_id, fields):
        raise StoreError("Store unavailable")


class VanishingStore(InMemoryDocumentStore):
    """Shares another store's data, but every update finds the document gone."""

    def __init__(self, source):
        super().__init__()
        self.collections = source.collections

    def update(self, collection, doc_id, fields):
        raise NotFoundError(f"No document {doc_id} in {collection}")


class ProfileLifecycleTest(unittest.TestCase):

    def setUp(self):
        self.store = CountingStore()
        self.lifecycle = ProfileLifecycle(self.store)

    def _status(self, user_id="user1"):
        return self.store.get(PROFILES_COLLECTION, user_id)["adminUse"]["status"]

    def _set_status(self, status, user_id="user1", notes=""):
        self.store.update(
            PROFILES_COLLECTION,
            user_id,
            {"adminUse.status": status, "adminUse.notes": notes},
        )

    def test_get_profile_miss_is_none(self):
        self.assertIsNone(self.lifecycle.get_profile("nobody"))

    def test_create_profile_fills_defaults(self):
        profile = self.lifecycle.create_profile(
            USER, {ProfileSection.PERSONAL_DETAILS.value: PERSONAL}
        )

        self.assertEqual(profile.personal_details.emergency_contact, "Jo 07700 900000")
        self.assertEqual(profile.admin_use.status, "draft")
        stored = self.store.get(PROFILES_COLLECTION, "user1")
        self.assertEqual(
            stored["submission"], {"agreedToTerms": False, "submittedAt": None}
        )
        self.assertEqual(
            stored["adminUse"],
            {"status": "draft", "approvedBy": "", "notes": "", "reviewedAt": None},
        )
        self.assertEqual(stored["driving"]["licenceNumber"], "")

    def test_update_section_creates_missing_profile(self):
        status = self.lifecycle.update_section(USER, "driving", DRIVING)

        self.assertEqual(status, ProfileStatus.DRAFT)
        stored = self.store.get(PROFILES_COLLECTION, "user1")
        self.assertEqual(stored["driving"]["licenceNumber"], "ABC123")
        self.assertEqual(stored["personalDetails"]["emergencyContact"], "")

    def test_update_section_withdraws_pending_profile(self):
        self.lifecycle.create_profile(USER)
        self.lifecycle.submit_profile(USER, True)

        status = self.lifecycle.update_section(USER, "medicalQualifications", MEDICAL)

        self.assertEqual(status, ProfileStatus.DRAFT)
        self.assertEqual(self._status(), "draft")
        stored = self.store.get(PROFILES_COLLECTION, "user1")
        self.assertEqual(stored["medicalQualifications"]["hcpc"], "PA12345")

    def test_update_section_keeps_decided_status(self):
        for status in ("approved", "rejected", "draft"):
            with self.subTest(status=status):
                self.lifecycle.create_profile(USER)
                self._set_status(status)
                self.store.calls.clear()

                result = self.lifecycle.update_section(USER, "driving", DRIVING)

                self.assertEqual(result, ProfileStatus(status))
                self.assertEqual(self._status(), status)
                updates = [call for call in self.store.calls if call[0] == "update"]
                self.assertEqual(len(updates), 1)
                self.assertNotIn("adminUse.status", updates[0][3])

    def test_update_section_never_touches_submitted_at(self):
        self.lifecycle.create_profile(USER)
        self.lifecycle.submit_profile(USER, True)
        submitted_at = self.store.get(PROFILES_COLLECTION, "user1")["submission"][
            "submittedAt"
        ]

        self.lifecycle.update_section(USER, "driving", DRIVING)

        stored = self.store.get(PROFILES_COLLECTION, "user1")
        self.assertEqual(stored["submission"]["submittedAt"], submitted_at)

    def test_update_section_rejects_unknown_section(self):
        with self.assertRaises(ValidationError):
            self.lifecycle.update_section(USER, "adminUse", {"status": "approved"})

    def test_operations_require_actor(self):
        operations = [
            lambda: self.lifecycle.get_current_profile(None),
            lambda: self.lifecycle.create_profile(None),
            lambda: self.lifecycle.update_section(None, "driving", DRIVING),
            lambda: self.lifecycle.submit_profile(None, True),
            lambda: self.lifecycle.review_profile(None, "user1", "approved", ""),
            lambda: self.lifecycle.resubmit_profile(None, {}),
        ]
        for operation in operations:
            with self.assertRaises(NotAuthenticated):
                operation()
        self.assertEqual(self.store.calls, [])

    def test_submit_without_terms_touches_nothing(self):
        self.lifecycle.create_profile(USER)
        self.store.calls.clear()

        with self.assertRaises(TermsNotAccepted) as ctx:
            self.lifecycle.submit_profile(USER, False)

        self.assertEqual(
            ctx.exception.message, "You must agree to the terms to submit your profile"
        )
        self.assertEqual(self.store.calls, [])
        self.assertEqual(self._status(), "draft")

    def test_submit_missing_profile(self):
        with self.assertRaises(ProfileMissing):
            self.lifecycle.submit_profile(USER, True)

    def test_submit_sets_pending_and_timestamp(self):
        self.lifecycle.create_profile(USER)

        self.lifecycle.submit_profile(USER, True)

        stored = self.store.get(PROFILES_COLLECTION, "user1")
        self.assertEqual(stored["adminUse"]["status"], "pending")
        self.assertTrue(stored["submission"]["agreedToTerms"])
        self.assertIsInstance(stored["submission"]["submittedAt"], datetime)

    def test_review_overwrites_notes(self):
        self.lifecycle.create_profile(USER)
        self.lifecycle.submit_profile(USER, True)
        self._set_status("pending", notes="Old note")

        status = self.lifecycle.review_profile(ADMIN, "user1", "rejected", "Need GMC")

        self.assertEqual(status, ProfileStatus.REJECTED)
        admin_use = self.store.get(PROFILES_COLLECTION, "user1")["adminUse"]
        self.assertEqual(admin_use["status"], "rejected")
        self.assertEqual(admin_use["notes"], "Need GMC")
        self.assertEqual(admin_use["approvedBy"], "admin1")
        self.assertIsInstance(admin_use["reviewedAt"], datetime)

    def test_review_rejects_non_decision_status(self):
        self.lifecycle.create_profile(USER)
        with self.assertRaises(ValidationError):
            self.lifecycle.review_profile(ADMIN, "user1", "pending", "")
        self.assertEqual(self._status(), "draft")

    def test_review_missing_profile(self):
        with self.assertRaises(ProfileMissing):
            self.lifecycle.review_profile(ADMIN, "nobody", "approved", "")

    def test_resubmit_appends_update_line(self):
        self.lifecycle.create_profile(USER)
        self._set_status("rejected", notes="Need GMC")

        notes = self.lifecycle.resubmit_profile(
            USER,
            {"personalDetails": PERSONAL, "driving": DRIVING, "medicalQualifications": MEDICAL},
            today=date(2025, 3, 5),
        )

        expected = "Need GMC\n\nProfile updated by user on 05 Mar 2025. Requires review."
        self.assertEqual(notes, expected)
        stored = self.store.get(PROFILES_COLLECTION, "user1")
        self.assertEqual(stored["adminUse"]["notes"], expected)
        self.assertEqual(stored["adminUse"]["status"], "pending")
        self.assertIsInstance(stored["submission"]["submittedAt"], datetime)

    def test_resubmit_explicit_notes_win(self):
        self.lifecycle.create_profile(USER)
        self._set_status("rejected", notes="Need GMC")

        notes = self.lifecycle.resubmit_profile(
            USER, {"driving": DRIVING, "adminUse": {"notes": "Added GMC"}}
        )

        self.assertEqual(notes, "Added GMC")
        stored = self.store.get(PROFILES_COLLECTION, "user1")
        self.assertEqual(stored["adminUse"]["notes"], "Added GMC")
        # Omitted sections are replaced with empty maps.
        self.assertEqual(stored["personalDetails"], {})

    def test_resubmit_missing_profile(self):
        with self.assertRaises(ProfileMissing):
            self.lifecycle.resubmit_profile(USER, {})

    def test_store_failure_propagates_without_status_change(self):
        self.store.set(
            PROFILES_COLLECTION, "user1", {"adminUse": {"status": "pending"}}
        )
        failing = FailingStore()
        failing.collections = self.store.collections
        lifecycle = ProfileLifecycle(failing)

        with self.assertRaises(StoreError):
            lifecycle.update_section(USER, "driving", DRIVING)

        self.assertEqual(self._status(), "pending")

    def test_store_failure_is_logged(self):
        self.lifecycle.create_profile(USER)
        lifecycle = ProfileLifecycle(VanishingStore(self.store))

        with self.assertLogs("profiles.lifecycle", "ERROR") as logs:
            with self.assertRaises(NotFoundError):
                lifecycle.submit_profile(USER, True)

        self.assertIn("submitting profile for user1", logs.output[0])
        self.assertEqual(self._status(), "draft")

    def test_unknown_stored_status_is_overridden(self):
        self.store.set(PROFILES_COLLECTION, "user1", {"adminUse": {"status": "archived"}})
        self.lifecycle.submit_profile(USER, True)
        self.assertEqual(self._status(), "pending")

        self._set_status("archived")
        status = self.lifecycle.review_profile(ADMIN, "user1", "approved", "")
        self.assertEqual(status, ProfileStatus.APPROVED)
        self.assertEqual(self._status(), "approved")

        self._set_status("archived")
        self.lifecycle.resubmit_profile(USER, {"driving": DRIVING})
        self.assertEqual(self._status(), "pending")

    def test_unknown_stored_status_blocks_section_save(self):
        self.store.set(PROFILES_COLLECTION, "user1", {"adminUse": {"status": "archived"}})
        self.store.calls.clear()

        with self.assertRaises(ValidationError):
            self.lifecycle.update_section(USER, "driving", DRIVING)

        self.assertEqual(self._status(), "archived")
        self.assertNotIn("update", [call[0] for call in self.store.calls])

    def test_unknown_section_fields_rejected(self):
        self.lifecycle.create_profile(USER)
        self.store.calls.clear()

        with self.assertRaises(ValidationError) as ctx:
            self.lifecycle.update_section(USER, "driving", {"dlNumber": "X"})

        self.assertIn("dlNumber", ctx.exception.message)
        self.assertEqual(self.store.calls, [])
        with self.assertRaises(ValidationError):
            self.lifecycle.resubmit_profile(USER, {"medicalQualifications": {"gmcNo": "1"}})
        self.assertEqual(self._status(), "draft")

    def test_list_profiles_by_status(self):
        self.lifecycle.create_profile(USER)
        self.lifecycle.create_profile(Actor(uid="user2"))
        self.lifecycle.submit_profile(USER, True)

        pending = self.lifecycle.list_profiles("pending")

        self.assertEqual([user_id for user_id, _ in pending], ["user1"])
        with self.assertRaises(ValidationError):
            self.lifecycle.list_profiles("archived")

    def test_full_application_round(self):
        self.lifecycle.update_section(USER, "personalDetails", PERSONAL)
        self.lifecycle.update_section(USER, "driving", DRIVING)
        self.lifecycle.update_section(USER, "medicalQualifications", MEDICAL)
        self.assertEqual(self._status(), "draft")

        self.lifecycle.submit_profile(USER, True)
        self.assertEqual(self._status(), "pending")

        self.lifecycle.review_profile(ADMIN, "user1", "rejected", "Need GMC")
        self.assertEqual(self._status(), "rejected")

        # Editing a rejected profile keeps the decision visible.
        self.lifecycle.update_section(USER, "medicalQualifications", {**MEDICAL, "gmc": "7654321"})
        self.assertEqual(self._status(), "rejected")

        profile = self.lifecycle.get_current_profile(USER)
        self.lifecycle.resubmit_profile(
            USER,
            {
                "personalDetails": {"dateOfBirth": "1990-01-01", "emergencyContact": "Jo"},
                "driving": DRIVING,
                "medicalQualifications": {
                    "qualification": profile.medical_qualifications.qualification,
                    "gmc": profile.medical_qualifications.gmc,
                },
            },
            today=date(2025, 3, 5),
        )
        profile = self.lifecycle.get_current_profile(USER)
        self.assertEqual(profile.admin_use.status, "pending")
        self.assertEqual(
            profile.admin_use.notes,
            "Need GMC\n\nProfile updated by user on 05 Mar 2025. Requires review.",
        )
        self.assertEqual(profile.medical_qualifications.gmc, "7654321")

        self.lifecycle.review_profile(ADMIN, "user1", "approved", "")
        profile = self.lifecycle.get_current_profile(USER)
        self.assertEqual(profile.admin_use.status, "approved")
        self.assertEqual(profile.admin_use.notes, "")


if __name__ == "__main__":
    unittest.main()
