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
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from portal.db import DocumentStore
from shared.errors import NotAuthenticated
from shared.firebase_constants import EVENT_VOLUNTEERS_COLLECTION, EVENTS_COLLECTION
from shared.types import Actor

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class VolunteeredEvent:
    id: str
    name: str
    volunteer_status: str  # "selected" or "volunteered"
    location: str = ""
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    volunteered_at: Optional[Any] = None
    selected_at: Optional[Any] = None
    notes: str = ""
    event: dict = field(default_factory=dict)


def _start_key(event: VolunteeredEvent) -> datetime:
    start = event.start_date
    if not isinstance(start, datetime):
        return _EPOCH
    if start.tzinfo is None:
        return start.replace(tzinfo=timezone.utc)
    return start


def get_volunteered_events(
    store: DocumentStore, actor: Optional[Actor]
) -> List[VolunteeredEvent]:
    """Events the actor has volunteered for, soonest first; undated events lead."""
    if actor is None or not actor.uid:
        raise NotAuthenticated()

    signups = store.where(EVENT_VOLUNTEERS_COLLECTION, [("userId", "==", actor.uid)])
    events: List[VolunteeredEvent] = []
    for signup in signups:
        event_id = signup.data.get("eventId")
        if not event_id:
            continue
        event = store.get(EVENTS_COLLECTION, event_id)
        if event is None:
            logger.debug("Skipping missing event %s for %s", event_id, actor.uid)
            continue
        events.append(
            VolunteeredEvent(
                id=event_id,
                name=event.get("name", ""),
                volunteer_status="selected" if signup.data.get("selected") else "volunteered",
                location=event.get("location") or "",
                start_date=event.get("startDate"),
                end_date=event.get("endDate"),
                volunteered_at=signup.data.get("volunteeredAt"),
                selected_at=signup.data.get("selectedAt"),
                notes=signup.data.get("notes") or "",
                event=event,
            )
        )
    return sorted(events, key=_start_key)
