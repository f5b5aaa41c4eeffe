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

from datetime import date
from typing import Optional

# Fixed English abbreviations so notes do not depend on the process locale.
MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

UPDATE_NOTE_TEMPLATE = "Profile updated by user on {date}. Requires review."


def format_review_date(day: date) -> str:
    """Formats a date as 'DD Mon YYYY', e.g. '05 Mar 2025'."""
    return f"{day.day:02d} {MONTH_ABBREVIATIONS[day.month - 1]} {day.year:04d}"


def resubmission_notes(
    prior_notes: Optional[str], explicit_notes: Optional[str], today: date
) -> str:
    """
    Computes the admin notes to store when a user resubmits their profile.

    Explicit notes from the caller win outright. Otherwise a dated update line
    is appended to any prior notes, so the reviewer's earlier comments stay
    visible above it.

    Args:
        prior_notes: The notes currently stored on the profile.
        explicit_notes: Notes supplied with the resubmission, if any.
        today: The caller's local calendar date.

    Returns:
        The notes string to write.
    """
    if explicit_notes:
        return explicit_notes

    update_line = UPDATE_NOTE_TEMPLATE.format(date=format_review_date(today))
    if prior_notes:
        return f"{prior_notes}\n\n{update_line}"
    return update_line
