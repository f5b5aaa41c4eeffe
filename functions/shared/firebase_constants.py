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

PROFILES_COLLECTION = "profiles"
USERS_COLLECTION = "users"
TEAMS_COLLECTION = "teams"
MAIL_COLLECTION = "mail"
APPLICANTS_COLLECTION = "applicants"
TWO_FACTOR_RESET_TOKENS_COLLECTION = "2faResetTokens"
EVENTS_COLLECTION = "events"
EVENT_VOLUNTEERS_COLLECTION = "eventVolunteers"
