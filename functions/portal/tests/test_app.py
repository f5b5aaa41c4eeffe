import unittest
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from portal.app import create_app, status_code_for
from portal.db import InMemoryDocumentStore
from portal.dependencies import get_store
from shared.errors import (
    IllegalTransition,
    StoreError,
    TermsNotAccepted,
    TokenExpired,
)
from shared.firebase_constants import (
    APPLICANTS_COLLECTION,
    MAIL_COLLECTION,
    TWO_FACTOR_RESET_TOKENS_COLLECTION,
    USERS_COLLECTION,
)

USER = {"X-Portal-User": "user1"}
ADMIN = {"X-Portal-User": "admin1"}


class PortalApiTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_app())
        self.store = get_store()
        if isinstance(self.store, InMemoryDocumentStore):
            self.store.reset()

    def test_profile_requires_user(self):
        response = self.client.get("/api/profile")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "No user is signed in")

    def test_profile_review_flow(self):
        response = self.client.put(
            "/api/profile/sections/driving",
            json={"licenceNumber": "ABC123", "c1Classification": True},
            headers=USER,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"section": "driving", "status": "draft"})

        response = self.client.post(
            "/api/profile/submit", json={"agreed_to_terms": False}, headers=USER
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/profile/submit", json={"agreed_to_terms": True}, headers=USER
        )
        self.assertEqual(response.json()["status"], "pending")

        queue = self.client.get("/api/profiles", params={"status": "pending"}).json()
        self.assertEqual([item["user_id"] for item in queue["profiles"]], ["user1"])

        response = self.client.post(
            "/api/profiles/user1/review",
            json={"status": "rejected", "notes": "Need GMC"},
            headers=ADMIN,
        )
        self.assertEqual(response.json(), {"user_id": "user1", "status": "rejected"})

        response = self.client.post(
            "/api/profile/resubmit",
            json={"driving": {"licenceNumber": "ABC123"}},
            headers=USER,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "pending")
        self.assertTrue(response.json()["notes"].startswith("Need GMC\n\nProfile updated"))

        profile = self.client.get("/api/profile", headers=USER).json()["profile"]
        self.assertEqual(profile["adminUse"]["status"], "pending")
        self.assertEqual(profile["driving"]["licenceNumber"], "ABC123")
        self.assertEqual(profile["adminUse"]["approvedBy"], "admin1")

    def test_review_validation_and_missing_profile(self):
        response = self.client.post(
            "/api/profiles/nobody/review",
            json={"status": "approved"},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 404)

        response = self.client.post(
            "/api/profiles/nobody/review",
            json={"status": "pending"},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 400)

    def test_unknown_section(self):
        response = self.client.put(
            "/api/profile/sections/adminUse", json={"status": "approved"}, headers=USER
        )
        self.assertEqual(response.status_code, 400)

    def test_unknown_section_field(self):
        response = self.client.put(
            "/api/profile/sections/driving", json={"dlNumber": "X"}, headers=USER
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("dlNumber", response.json()["detail"])
        profile = self.client.get("/api/profile", headers=USER).json()["profile"]
        self.assertIsNone(profile)

    def test_team_crud_and_membership(self):
        response = self.client.post("/api/teams", json={"name": "Stages"})
        self.assertEqual(response.status_code, 201)
        team_id = response.json()["id"]

        self.assertEqual(
            self.client.post("/api/teams", json={"name": " "}).status_code, 400
        )
        response = self.client.post("/api/teams", json={"name": "Stages"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("already exists", response.json()["detail"])

        self.store.set(USERS_COLLECTION, "u1", {"surname": "Smith", "teams": []})
        self.client.put(f"/api/teams/{team_id}/members/u1")
        members = self.client.get(f"/api/teams/{team_id}/members").json()["members"]
        self.assertEqual([member["id"] for member in members], ["u1"])

        user_teams = self.client.get("/api/users/u1/teams").json()
        self.assertEqual([team["name"] for team in user_teams["teams"]], ["Stages"])
        self.assertEqual(user_teams["failed"], [])

        response = self.client.put(
            f"/api/teams/{team_id}", json={"name": "Stages Team Leaders"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            self.client.get(f"/api/teams/{team_id}").json()["name"],
            "Stages Team Leaders",
        )

        response = self.client.delete(f"/api/teams/{team_id}")
        self.assertEqual(response.json()["state"], "complete")
        self.assertEqual(response.json()["succeeded"], ["u1"])
        self.assertEqual(self.client.get(f"/api/teams/{team_id}").status_code, 404)
        self.assertEqual(self.store.get(USERS_COLLECTION, "u1")["teams"], [])

    def test_update_missing_team(self):
        response = self.client.put("/api/teams/missing", json={"name": "Stages"})
        self.assertEqual(response.status_code, 404)

    def test_my_events(self):
        self.assertEqual(self.client.get("/api/me/events").status_code, 401)
        self.store.set("events", "e1", {"name": "Glastonbury", "location": "Pilton"})
        self.store.set(
            "eventVolunteers", "s1", {"eventId": "e1", "userId": "user1", "selected": True}
        )

        events = self.client.get("/api/me/events", headers=USER).json()["events"]

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["volunteer_status"], "selected")

    def test_volunteer_mail(self):
        response = self.client.post(
            "/api/mail/volunteers",
            json={
                "subject": "Shift times",
                "content": "Dear Member,\nSee you there",
                "target": "all",
                "volunteers": [{"name": "Sam Smith", "email": "sam@example.com"}],
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["summary"], "Successfully sent 1 email")
        self.assertEqual(len(self.store.stream(MAIL_COLLECTION)), 1)

        response = self.client.post(
            "/api/mail/volunteers", json={"subject": "", "content": "x"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Please enter a subject")

    def test_stripe_webhook(self):
        self.store.set(
            APPLICANTS_COLLECTION,
            "a1",
            {"email": "sam@example.com", "status": "approved_to_pay"},
        )
        event = {
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "customer_email": "sam@example.com"}},
        }

        response = self.client.post("/api/webhooks/stripe", json=event)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "Updated 1 applicant(s)")
        self.assertEqual(self.store.get(APPLICANTS_COLLECTION, "a1")["status"], "paid")

    def test_stripe_webhook_acknowledges_bad_payload(self):
        response = self.client.post(
            "/api/webhooks/stripe",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "Error processed")

    def test_two_factor_reset(self):
        self.store.set(
            USERS_COLLECTION,
            "user1",
            {"email": "sam@example.com", "has2FA": True, "secret2FA": "s"},
        )

        response = self.client.post(
            "/api/2fa/reset-request", json={"email": "sam@example.com"}
        )
        self.assertEqual(response.json()["success"], True)
        token = self.store.stream(TWO_FACTOR_RESET_TOKENS_COLLECTION)[0].data["token"]

        response = self.client.post("/api/2fa/reset-confirm", json={"token": token})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(self.store.get(USERS_COLLECTION, "user1")["has2FA"])

        response = self.client.post("/api/2fa/reset-confirm", json={"token": token})
        self.assertEqual(response.status_code, 404)

    def test_two_factor_expired_token(self):
        self.store.add(
            TWO_FACTOR_RESET_TOKENS_COLLECTION,
            {
                "token": "tok",
                "userId": "user1",
                "expiresAt": datetime.now(timezone.utc) - timedelta(minutes=1),
                "used": False,
            },
        )
        response = self.client.post("/api/2fa/reset-confirm", json={"token": "tok"})
        self.assertEqual(response.status_code, 410)

    def test_status_code_mapping(self):
        self.assertEqual(status_code_for(TermsNotAccepted()), 400)
        self.assertEqual(status_code_for(IllegalTransition("x")), 409)
        self.assertEqual(status_code_for(TokenExpired("x")), 410)
        self.assertEqual(status_code_for(StoreError("x")), 503)


if __name__ == "__main__":
    unittest.main()
