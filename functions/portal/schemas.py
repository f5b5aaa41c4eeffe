"""
Pydantic schemas for the portal HTTP API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from shared.types import ProfileSection


class ProfileSectionsPayload(BaseModel):
    personal_details: Optional[dict] = None
    driving: Optional[dict] = None
    medical_qualifications: Optional[dict] = None

    def as_sections(self) -> dict:
        """Section payloads keyed by their stored names, omitting absent ones."""
        sections = {
            ProfileSection.PERSONAL_DETAILS.value: self.personal_details,
            ProfileSection.DRIVING.value: self.driving,
            ProfileSection.MEDICAL_QUALIFICATIONS.value: self.medical_qualifications,
        }
        return {key: value for key, value in sections.items() if value is not None}


class ProfileResponse(BaseModel):
    user_id: str
    profile: Optional[dict] = None


class ProfileListResponse(BaseModel):
    profiles: list[ProfileResponse]


class SectionUpdateResponse(BaseModel):
    section: str
    status: Optional[str] = None


class SubmitRequest(BaseModel):
    agreed_to_terms: bool = False


class ResubmitRequest(ProfileSectionsPayload):
    notes: Optional[str] = None


class ResubmitResponse(BaseModel):
    status: str
    notes: str


class ReviewRequest(BaseModel):
    status: str
    notes: str = Field(default="", max_length=10000)


class ReviewResponse(BaseModel):
    user_id: str
    status: str


class StatusResponse(BaseModel):
    status: str = "ok"


class TeamRequest(BaseModel):
    name: str = ""
    description: str = ""


class TeamResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None


class TeamCreateResponse(BaseModel):
    id: str


class TeamListResponse(BaseModel):
    teams: list[TeamResponse]


class UserTeamsResponse(TeamListResponse):
    # Team ids whose read failed; they are missing from `teams`.
    failed: list[str] = Field(default_factory=list)


class TeamDeletionResponse(BaseModel):
    team_id: str
    state: str
    succeeded: list[str]
    failed: dict[str, str]


class TeamMembersResponse(BaseModel):
    members: list[dict]


class VolunteerPayload(BaseModel):
    name: str = ""
    email: str = ""
    selected: bool = False


class BulkMailRequest(BaseModel):
    subject: str = ""
    content: str = ""
    target: str = "selected"
    volunteers: list[VolunteerPayload] = Field(default_factory=list)


class BulkMailResponse(BaseModel):
    success_count: int
    error_count: int
    errors: list[str]
    summary: str


class VolunteeredEventResponse(BaseModel):
    id: str
    name: str
    volunteer_status: str
    location: str = ""
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    notes: str = ""


class VolunteeredEventsResponse(BaseModel):
    events: list[VolunteeredEventResponse]


class TwoFactorResetRequest(BaseModel):
    email: Optional[str] = None


class TwoFactorConfirmRequest(BaseModel):
    token: Optional[str] = None


class TwoFactorResponse(BaseModel):
    success: bool
    message: Optional[str] = None
