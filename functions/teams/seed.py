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

import logging

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from portal.db import DocumentStore
from shared.firebase_constants import TEAMS_COLLECTION, USERS_COLLECTION
from teams.saga import run_saga

logger = logging.getLogger(__name__)

INITIAL_TEAMS = (
    ("Ambulance Paramedics", "Qualified paramedics providing ambulance-based care"),
    ("Ambulance Crew", "Crew members supporting ambulance operations"),
    ("Cycle Crew", "Emergency response on bicycles"),
    ("Doctors (Static points only)", "Medical doctors stationed at fixed locations"),
    ("Nurses (Static points only)", "Nursing staff stationed at fixed locations"),
    ("Responders", "First responders providing initial emergency care"),
    ("Stages", "Medical staff stationed at event stages"),
    ("Stages Team Leaders", "Leadership personnel for stage medical teams"),
    ("Medcomms Clinical Supervisor", "Clinical oversight for medical communications"),
    ("Medcomms Dispatcher", "Resource allocation and dispatch personnel"),
    ("Medcomms Call Taker", "Staff receiving and processing emergency calls"),
    ("Medcomms Other", "Additional medical communications support staff"),
    (
        "Make Ready crew",
        "Staff responsible for equipment preparation and maintenance",
    ),
)


def initialize_teams(store: DocumentStore) -> bool:
    """
    Creates the initial set of teams.

    Skipped when the teams collection already has documents, so running it
    twice does not create duplicates.

    Returns:
        True if the teams were created.
    """
    if store.where(TEAMS_COLLECTION, [], limit=1):
        logger.info(
            "Teams collection is not empty. Initialization skipped to avoid duplicates."
        )
        return False

    for name, description in INITIAL_TEAMS:
        store.add(
            TEAMS_COLLECTION,
            {
                "name": name,
                "description": description,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("Created team: %s", name)

    logger.info("Teams initialization completed successfully")
    return True


def backfill_user_teams(store: DocumentStore) -> int:
    """Gives every user document without a `teams` field an empty one."""
    users = [
        user.id
        for user in store.stream(USERS_COLLECTION)
        if user.data.get("teams") is None
    ]
    if not users:
        logger.info("All users already have the teams field. Schema update skipped.")
        return 0

    def initialize_field(user_id: str):
        return lambda: store.update(USERS_COLLECTION, user_id, {"teams": []})

    result = run_saga(
        "backfill user teams",
        [(user_id, initialize_field(user_id)) for user_id in users],
    )
    logger.info("Updated %d users with teams field.", result.success_count)
    return result.success_count
