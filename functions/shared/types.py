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

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional


class ProfileStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProfileSection(StrEnum):
    """The profile sections a user may edit directly."""

    PERSONAL_DETAILS = "personalDetails"
    DRIVING = "driving"
    MEDICAL_QUALIFICATIONS = "medicalQualifications"


class ApplicantStatus(StrEnum):
    APPROVED_TO_PAY = "approved_to_pay"
    PAID = "paid"


@dataclass(frozen=True)
class Actor:
    """The signed-in identity an operation runs on behalf of."""

    uid: str


@dataclass
class PersonalDetails:
    date_of_birth: Optional[Any] = None
    emergency_contact: str = ""


@dataclass
class Driving:
    c1_classification: bool = False
    licence_number: str = ""
    national_insurance_number: str = ""
    points: str = ""


@dataclass
class MedicalQualifications:
    certificate_expiry: Optional[Any] = None
    details: str = ""
    gmc: str = ""
    hcpc: str = ""
    nbc: str = ""
    qualification: str = ""


@dataclass
class Submission:
    agreed_to_terms: bool = False
    submitted_at: Optional[Any] = None  # Firestore timestamp


@dataclass
class AdminUse:
    # Kept as the raw stored string; see parse_status().
    status: str = ProfileStatus.DRAFT.value
    approved_by: str = ""
    notes: str = ""
    reviewed_at: Optional[Any] = None  # Firestore timestamp


@dataclass
class Profile:
    """A volunteer's application record, one document per user."""

    personal_details: PersonalDetails = field(default_factory=PersonalDetails)
    driving: Driving = field(default_factory=Driving)
    medical_qualifications: MedicalQualifications = field(
        default_factory=MedicalQualifications
    )
    submission: Submission = field(default_factory=Submission)
    admin_use: AdminUse = field(default_factory=AdminUse)


SECTION_TYPES = {
    ProfileSection.PERSONAL_DETAILS: PersonalDetails,
    ProfileSection.DRIVING: Driving,
    ProfileSection.MEDICAL_QUALIFICATIONS: MedicalQualifications,
}


@dataclass
class Team:
    id: str
    name: str
    description: str = ""
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None
