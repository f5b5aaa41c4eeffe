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
Team records and the user-side membership sets that point at them.

Each user document carries a `teams` array of team ids. The ledger is the
only writer of both sides and keeps them consistent when a team is deleted.
"""

import concurrent.futures
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from dacite import Config, from_dict
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion

from portal.db import DocumentStore
from shared.errors import PortalError, StoreError, ValidationError
from shared.firebase_constants import TEAMS_COLLECTION, USERS_COLLECTION
from shared.json_utils import convert_keys
from shared.types import Team
from teams.saga import DEFAULT_MAX_WORKERS, SagaResult, run_saga

logger = logging.getLogger(__name__)

TEAMS_FIELD = "teams"


@dataclass
class TeamDeletion:
    team_id: str
    cascade: SagaResult

    def as_dict(self) -> dict:
        return {"team_id": self.team_id, "cascade": self.cascade.as_dict()}


@dataclass
class UserTeams:
    """A user's resolved teams, plus the ids whose read failed."""

    teams: List[Team] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


def team_from_document(team_id: str, data: dict) -> Team:
    return from_dict(
        data_class=Team,
        data={**convert_keys(data, "camel_to_snake"), "id": team_id},
        config=Config(check_types=False),
    )


def _validated_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Team name is required")
    return name


def _member_sort_key(member: dict) -> str:
    return member.get("surname") or member.get("firstName") or ""


@contextmanager
def _logged_failure(action: str) -> Iterator[None]:
    try:
        yield
    except PortalError as e:
        logger.error("Error %s: %s", action, e)
        raise


class TeamLedger:
    """Team CRUD plus the many-to-many link between users and teams."""

    def __init__(self, store: DocumentStore, max_workers: int = DEFAULT_MAX_WORKERS):
        self.store = store
        self.max_workers = max_workers

    def get_all_teams(self) -> List[Team]:
        with _logged_failure("listing teams"):
            docs = self.store.stream(TEAMS_COLLECTION)
        teams = [team_from_document(doc.id, doc.data) for doc in docs]
        return sorted(teams, key=lambda team: team.name)

    def get_team(self, team_id: str) -> Optional[Team]:
        with _logged_failure(f"getting team {team_id}"):
            return self._read_team(team_id)

    def _read_team(self, team_id: str) -> Optional[Team]:
        data = self.store.get(TEAMS_COLLECTION, team_id)
        if data is None:
            return None
        return team_from_document(team_id, data)

    def _check_name_free(self, name: str, team_id: Optional[str] = None) -> None:
        # Not transactional: two concurrent creates can still both pass.
        with _logged_failure(f"checking team name {name}"):
            docs = self.store.where(TEAMS_COLLECTION, [("name", "==", name)])
        for doc in docs:
            if doc.id != team_id:
                raise ValidationError(f"A team named {name!r} already exists")

    def create_team(self, name: str, description: str = "") -> str:
        """
        Creates a team and returns its id.

        Raises:
            ValidationError: If the name is blank or already taken.
        """
        name = _validated_name(name)
        self._check_name_free(name)
        with _logged_failure(f"creating team {name}"):
            team_id = self.store.add(
                TEAMS_COLLECTION,
                {
                    "name": name,
                    "description": description or "",
                    "createdAt": SERVER_TIMESTAMP,
                    "updatedAt": SERVER_TIMESTAMP,
                },
            )
        logger.info("Created team %s (%s)", team_id, name)
        return team_id

    def update_team(self, team_id: str, name: str, description: str = "") -> None:
        name = _validated_name(name)
        self._check_name_free(name, team_id)
        with _logged_failure(f"updating team {team_id}"):
            self.store.update(
                TEAMS_COLLECTION,
                team_id,
                {
                    "name": name,
                    "description": description or "",
                    "updatedAt": SERVER_TIMESTAMP,
                },
            )

    def delete_team(self, team_id: str) -> TeamDeletion:
        """
        Deletes a team and removes its id from every member's set.

        The team document is deleted first; a failure there propagates and
        nothing else is touched. Member updates then run concurrently, and a
        failed update does not stop the others. Completed removals are not
        rolled back; the returned cascade result lists what failed.
        """
        with _logged_failure(f"deleting team {team_id}"):
            self.store.delete(TEAMS_COLLECTION, team_id)
            members = self.store.where(
                USERS_COLLECTION, [(TEAMS_FIELD, "array-contains", team_id)]
            )
        cascade = run_saga(
            f"delete team {team_id}",
            [
                (member.id, self._removal_step(member.id, team_id))
                for member in members
            ],
            max_workers=self.max_workers,
        )
        if cascade.failed:
            logger.warning(
                "Team %s deleted but %d member(s) still reference it: %s",
                team_id,
                cascade.failure_count,
                ", ".join(cascade.failed),
            )
        return TeamDeletion(team_id=team_id, cascade=cascade)

    def _removal_step(self, user_id: str, team_id: str):
        def step() -> None:
            self.store.update(
                USERS_COLLECTION, user_id, {TEAMS_FIELD: ArrayRemove([team_id])}
            )

        return step

    def get_users_in_team(self, team_id: str) -> List[dict]:
        """Members of a team, ordered by surname, falling back to first name."""
        with _logged_failure(f"listing members of team {team_id}"):
            docs = self.store.where(
                USERS_COLLECTION, [(TEAMS_FIELD, "array-contains", team_id)]
            )
        members = [{"id": doc.id, **doc.data} for doc in docs]
        return sorted(members, key=_member_sort_key)

    def add_user_to_team(self, user_id: str, team_id: str) -> None:
        with _logged_failure(f"adding {user_id} to team {team_id}"):
            self.store.update(
                USERS_COLLECTION, user_id, {TEAMS_FIELD: ArrayUnion([team_id])}
            )

    def remove_user_from_team(self, user_id: str, team_id: str) -> None:
        with _logged_failure(f"removing {user_id} from team {team_id}"):
            self.store.update(
                USERS_COLLECTION, user_id, {TEAMS_FIELD: ArrayRemove([team_id])}
            )

    def get_user_teams(self, user_id: str) -> UserTeams:
        """
        Resolves a user's membership set to team records, sorted by name.

        Ids of deleted teams are skipped. Ids whose read fails are left out of
        `teams` and listed in `failed`. A user document without a `teams`
        field gets an empty one.
        """
        with _logged_failure(f"getting teams of {user_id}"):
            user = self.store.get(USERS_COLLECTION, user_id)
            if user is None:
                return UserTeams()
            if TEAMS_FIELD not in user or user[TEAMS_FIELD] is None:
                self.store.update(USERS_COLLECTION, user_id, {TEAMS_FIELD: []})
                return UserTeams()

        team_ids = list(dict.fromkeys(user[TEAMS_FIELD]))
        if not team_ids:
            return UserTeams()

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(team_ids)))
        ) as executor:
            resolved = list(executor.map(self._resolve_team, team_ids))

        outcome = UserTeams()
        for team_id, (team, failed) in zip(team_ids, resolved):
            if failed:
                outcome.failed.append(team_id)
            elif team is not None:
                outcome.teams.append(team)
        outcome.teams.sort(key=lambda team: team.name)
        if outcome.failed:
            logger.warning(
                "Could not resolve %d of %d team(s) for %s: %s",
                len(outcome.failed),
                len(team_ids),
                user_id,
                ", ".join(outcome.failed),
            )
        return outcome

    def _resolve_team(self, team_id: str) -> tuple[Optional[Team], bool]:
        try:
            team = self._read_team(team_id)
        except StoreError as e:
            logger.error("Error resolving team %s: %s", team_id, e)
            return None, True
        if team is None:
            logger.debug("Skipping dangling team id %s", team_id)
        return team, False
