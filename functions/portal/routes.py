"""
HTTP routes for the portal API.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from mailer.mail import MailQueue, Volunteer, send_volunteer_emails
from payments.stripe_webhook import handle_stripe_event
from portal.config import get_settings
from portal.db import DocumentStore
from portal.dependencies import (
    get_actor,
    get_mail_queue,
    get_profile_lifecycle,
    get_store,
    get_team_ledger,
)
from portal.schemas import (
    BulkMailRequest,
    BulkMailResponse,
    ProfileListResponse,
    ProfileResponse,
    ProfileSectionsPayload,
    ResubmitRequest,
    ResubmitResponse,
    ReviewRequest,
    ReviewResponse,
    SectionUpdateResponse,
    StatusResponse,
    SubmitRequest,
    TeamCreateResponse,
    TeamDeletionResponse,
    TeamListResponse,
    TeamMembersResponse,
    TeamRequest,
    TeamResponse,
    TwoFactorConfirmRequest,
    TwoFactorResetRequest,
    TwoFactorResponse,
    UserTeamsResponse,
    VolunteeredEventResponse,
    VolunteeredEventsResponse,
)
from profiles.lifecycle import ProfileLifecycle, profile_to_document
from shared.errors import NotAuthenticated, NotFoundError
from shared.types import Actor, ProfileStatus
from teams.ledger import TeamLedger
from two_factor import reset as two_factor_reset
from volunteering.events import get_volunteered_events

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise NotAuthenticated()
    return actor


# Profiles


@router.get("/profile", response_model=ProfileResponse)
def get_my_profile(
    actor: Optional[Actor] = Depends(get_actor),
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    actor = _require_actor(actor)
    profile = lifecycle.get_current_profile(actor)
    return ProfileResponse(
        user_id=actor.uid,
        profile=profile_to_document(profile) if profile else None,
    )


@router.post("/profile", response_model=ProfileResponse, status_code=201)
def create_profile(
    payload: ProfileSectionsPayload,
    actor: Optional[Actor] = Depends(get_actor),
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    profile = lifecycle.create_profile(actor, payload.as_sections())
    return ProfileResponse(user_id=actor.uid, profile=profile_to_document(profile))


@router.put("/profile/sections/{section}", response_model=SectionUpdateResponse)
def update_profile_section(
    section: str,
    data: dict = Body(...),
    actor: Optional[Actor] = Depends(get_actor),
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    status = lifecycle.update_section(actor, section, data)
    return SectionUpdateResponse(
        section=section, status=status.value if status else None
    )


@router.post("/profile/submit", response_model=StatusResponse)
def submit_profile(
    payload: SubmitRequest,
    actor: Optional[Actor] = Depends(get_actor),
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    lifecycle.submit_profile(actor, payload.agreed_to_terms)
    return StatusResponse(status=ProfileStatus.PENDING.value)


@router.post("/profile/resubmit", response_model=ResubmitResponse)
def resubmit_profile(
    payload: ResubmitRequest,
    actor: Optional[Actor] = Depends(get_actor),
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    updated = payload.as_sections()
    if payload.notes:
        updated["adminUse"] = {"notes": payload.notes}
    notes = lifecycle.resubmit_profile(actor, updated)
    return ResubmitResponse(status=ProfileStatus.PENDING.value, notes=notes)


@router.get("/profiles", response_model=ProfileListResponse)
def list_profiles(
    status: str = Query(ProfileStatus.PENDING.value),
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    profiles = lifecycle.list_profiles(status)
    return ProfileListResponse(
        profiles=[
            ProfileResponse(user_id=user_id, profile=profile_to_document(profile))
            for user_id, profile in profiles
        ]
    )


@router.get("/profiles/{user_id}", response_model=ProfileResponse)
def get_profile(
    user_id: str,
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    profile = lifecycle.get_profile(user_id)
    return ProfileResponse(
        user_id=user_id,
        profile=profile_to_document(profile) if profile else None,
    )


@router.post("/profiles/{user_id}/review", response_model=ReviewResponse)
def review_profile(
    user_id: str,
    payload: ReviewRequest,
    actor: Optional[Actor] = Depends(get_actor),
    lifecycle: ProfileLifecycle = Depends(get_profile_lifecycle),
):
    status = lifecycle.review_profile(actor, user_id, payload.status, payload.notes)
    return ReviewResponse(user_id=user_id, status=status.value)


# Teams


@router.get("/teams", response_model=TeamListResponse)
def list_teams(ledger: TeamLedger = Depends(get_team_ledger)):
    teams = ledger.get_all_teams()
    return TeamListResponse(teams=[TeamResponse(**asdict(team)) for team in teams])


@router.post("/teams", response_model=TeamCreateResponse, status_code=201)
def create_team(payload: TeamRequest, ledger: TeamLedger = Depends(get_team_ledger)):
    team_id = ledger.create_team(payload.name, payload.description)
    return TeamCreateResponse(id=team_id)


@router.get("/teams/{team_id}", response_model=TeamResponse)
def get_team(team_id: str, ledger: TeamLedger = Depends(get_team_ledger)):
    team = ledger.get_team(team_id)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    return TeamResponse(**asdict(team))


@router.put("/teams/{team_id}", response_model=StatusResponse)
def update_team(
    team_id: str,
    payload: TeamRequest,
    ledger: TeamLedger = Depends(get_team_ledger),
):
    ledger.update_team(team_id, payload.name, payload.description)
    return StatusResponse()


@router.delete("/teams/{team_id}", response_model=TeamDeletionResponse)
def delete_team(team_id: str, ledger: TeamLedger = Depends(get_team_ledger)):
    deletion = ledger.delete_team(team_id)
    cascade = deletion.cascade.as_dict()
    return TeamDeletionResponse(
        team_id=team_id,
        state=cascade["state"],
        succeeded=cascade["succeeded"],
        failed=cascade["failed"],
    )


@router.get("/teams/{team_id}/members", response_model=TeamMembersResponse)
def list_team_members(team_id: str, ledger: TeamLedger = Depends(get_team_ledger)):
    return TeamMembersResponse(members=ledger.get_users_in_team(team_id))


@router.put("/teams/{team_id}/members/{user_id}", response_model=StatusResponse)
def add_team_member(
    team_id: str, user_id: str, ledger: TeamLedger = Depends(get_team_ledger)
):
    ledger.add_user_to_team(user_id, team_id)
    return StatusResponse()


@router.delete("/teams/{team_id}/members/{user_id}", response_model=StatusResponse)
def remove_team_member(
    team_id: str, user_id: str, ledger: TeamLedger = Depends(get_team_ledger)
):
    ledger.remove_user_from_team(user_id, team_id)
    return StatusResponse()


@router.get("/users/{user_id}/teams", response_model=UserTeamsResponse)
def list_user_teams(user_id: str, ledger: TeamLedger = Depends(get_team_ledger)):
    outcome = ledger.get_user_teams(user_id)
    return UserTeamsResponse(
        teams=[TeamResponse(**asdict(team)) for team in outcome.teams],
        failed=outcome.failed,
    )


# Events and messaging


@router.get("/me/events", response_model=VolunteeredEventsResponse)
def list_my_events(
    actor: Optional[Actor] = Depends(get_actor),
    store: DocumentStore = Depends(get_store),
):
    events = get_volunteered_events(store, actor)
    return VolunteeredEventsResponse(
        events=[
            VolunteeredEventResponse(
                id=event.id,
                name=event.name,
                volunteer_status=event.volunteer_status,
                location=event.location,
                start_date=event.start_date,
                end_date=event.end_date,
                notes=event.notes,
            )
            for event in events
        ]
    )


@router.post("/mail/volunteers", response_model=BulkMailResponse)
def send_volunteer_mail(
    payload: BulkMailRequest,
    queue: MailQueue = Depends(get_mail_queue),
):
    result = send_volunteer_emails(
        queue,
        [Volunteer(**volunteer.model_dump()) for volunteer in payload.volunteers],
        subject=payload.subject,
        content=payload.content,
        target=payload.target,
        copy_to=get_settings().mail_copy_address,
    )
    return BulkMailResponse(
        success_count=result.success_count,
        error_count=result.error_count,
        errors=result.errors,
        summary=result.summary,
    )


# Webhooks and account recovery


@router.post("/webhooks/stripe", response_class=PlainTextResponse)
async def stripe_webhook(request: Request, store: DocumentStore = Depends(get_store)):
    """
    Stripe checkout webhook. Always acknowledges with 200 except for a
    session without a customer email, so Stripe does not retry.
    """
    settings = get_settings()
    try:
        event = await request.json()
        outcome = await run_in_threadpool(
            handle_stripe_event,
            store,
            event,
            settings.default_payment_amount,
            settings.default_payment_currency,
        )
    except Exception as e:
        logger.error("Error processing webhook: %s", e)
        return PlainTextResponse("Error processed", status_code=200)
    return PlainTextResponse(outcome.message, status_code=outcome.status_code)


@router.post("/2fa/reset-request", response_model=TwoFactorResponse)
def request_two_factor_reset(
    payload: TwoFactorResetRequest,
    store: DocumentStore = Depends(get_store),
    queue: MailQueue = Depends(get_mail_queue),
):
    settings = get_settings()
    result = two_factor_reset.request_reset(
        store,
        queue,
        payload.email,
        reset_url=settings.two_factor_reset_url,
        ttl_minutes=settings.two_factor_token_ttl_minutes,
    )
    return TwoFactorResponse(**result)


@router.post("/2fa/reset-confirm", response_model=TwoFactorResponse)
def confirm_two_factor_reset(
    payload: TwoFactorConfirmRequest,
    store: DocumentStore = Depends(get_store),
):
    return TwoFactorResponse(**two_factor_reset.confirm_reset(store, payload.token))
