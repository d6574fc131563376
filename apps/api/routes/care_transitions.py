"""
API route: Care transitions
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from apps.api.authz import TenantContext, get_tenant_context, resolve_tenant
from packages.db.database import get_db
from packages.shared.models import (
    AssignCareManager,
    CareTransitionAssignment,
    CareTransitionNoteRecord,
    CareTransitionRecord,
    CareTransitionResult,
    CareTransitionStatus,
    CareTransitionSummary,
    CloseCareTransition,
    CreateCareTransition,
    OutreachAttempt,
    Priority,
    RiskTier,
    TimelineEvent,
    TransitionCompliance,
    UpdateCareTransition,
    UpdatePriority,
    UpdateRiskTier,
)
from packages.tcm import intake, lifecycle, outreach
from packages.tcm.compliance import get_compliance
from packages.tcm.timeline import get_timeline

router = APIRouter(prefix="/tenants/{tenant_key}", tags=["care-transitions"])

_NOT_FOUND_MESSAGES = {lifecycle.NOT_FOUND_MESSAGE, "Encounter not found"}


class OpenFromEncounterRequest(BaseModel):
    care_manager_user_key: str | None = Field(default=None, max_length=64)
    priority: Priority | None = None
    risk_tier: RiskTier | None = None


def _result_response(result: CareTransitionResult, success_status: int = 200) -> JSONResponse:
    if result.success:
        status_code = success_status
    elif result.message in _NOT_FOUND_MESSAGES:
        status_code = 404
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content=result.model_dump())


def _require_transition(db: Session, tenant_key: str, key: int) -> CareTransitionRecord:
    record = lifecycle.get_by_key(db, tenant_key, key)
    if record is None:
        raise HTTPException(status_code=404, detail=lifecycle.NOT_FOUND_MESSAGE)
    return record


# ── Mutations ───────────────────────────────────────────────────────────


@router.post("/care-transitions", response_model=CareTransitionResult, status_code=201)
def create_care_transition(
    req: CreateCareTransition,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    result = lifecycle.create_care_transition(db, tenant_key, req)
    return _result_response(result, success_status=201)


@router.post("/care-transitions/from-encounter/{encounter_key}", response_model=CareTransitionResult)
def open_from_encounter(
    encounter_key: int,
    req: OpenFromEncounterRequest | None = None,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    """Open (or return the already active) care transition for a discharged encounter."""
    req = req or OpenFromEncounterRequest()
    result = intake.open_transition_for_encounter(
        db,
        tenant_key,
        encounter_key,
        care_manager_user_key=req.care_manager_user_key,
        priority=req.priority,
        risk_tier=req.risk_tier,
    )
    return _result_response(result)


@router.patch("/care-transitions/{key}", response_model=CareTransitionResult)
def update_care_transition(
    key: int,
    req: UpdateCareTransition,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return _result_response(lifecycle.update_care_transition(db, tenant_key, key, req))


@router.post("/care-transitions/{key}/close", response_model=CareTransitionResult)
def close_care_transition(
    key: int,
    req: CloseCareTransition,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    closed_by = req.closed_by_user_key or context.user_id
    return _result_response(lifecycle.close_care_transition(db, tenant_key, key, req.close_reason, closed_by))


@router.post("/care-transitions/{key}/assign", response_model=CareTransitionResult)
def assign_care_manager(
    key: int,
    req: AssignCareManager,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return _result_response(lifecycle.assign_care_manager(db, tenant_key, key, req))


@router.post("/care-transitions/{key}/priority", response_model=CareTransitionResult)
def update_priority(
    key: int,
    req: UpdatePriority,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return _result_response(lifecycle.update_priority(db, tenant_key, key, req.priority))


@router.post("/care-transitions/{key}/risk-tier", response_model=CareTransitionResult)
def update_risk_tier(
    key: int,
    req: UpdateRiskTier,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return _result_response(lifecycle.update_risk_tier(db, tenant_key, key, req.risk_tier))


@router.post("/care-transitions/{key}/outreach", response_model=CareTransitionResult)
def log_outreach(
    key: int,
    req: OutreachAttempt,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
    context: TenantContext = Depends(get_tenant_context),
):
    result = outreach.log_outreach(db, tenant_key, key, req, author_user_key=context.user_id)
    return _result_response(result)


# ── Queries (static segments first so they are not read as keys) ───────


@router.get("/care-transitions", response_model=list[CareTransitionSummary])
def list_care_transitions(
    skip: int = 0,
    take: int = lifecycle.DEFAULT_TAKE,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return lifecycle.list_by_tenant(db, tenant_key, skip=skip, take=take)


@router.get("/care-transitions/active", response_model=list[CareTransitionRecord])
def list_active(
    skip: int = 0,
    take: int = lifecycle.DEFAULT_TAKE,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return lifecycle.list_active(db, tenant_key, skip=skip, take=take)


@router.get("/care-transitions/status/{status}", response_model=list[CareTransitionRecord])
def list_by_status(
    status: CareTransitionStatus,
    skip: int = 0,
    take: int = lifecycle.DEFAULT_TAKE,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return lifecycle.list_by_status(db, tenant_key, status, skip=skip, take=take)


@router.get("/care-transitions/encounter/{encounter_key}", response_model=CareTransitionRecord)
def get_by_encounter(
    encounter_key: int,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    record = lifecycle.get_by_encounter(db, tenant_key, encounter_key)
    if record is None:
        raise HTTPException(status_code=404, detail=lifecycle.NOT_FOUND_MESSAGE)
    return record


@router.get("/care-transitions/patient/{patient_key}", response_model=list[CareTransitionRecord])
def list_by_patient(
    patient_key: int,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return lifecycle.list_by_patient(db, tenant_key, patient_key)


@router.get("/care-transitions/{key}", response_model=CareTransitionRecord)
def get_care_transition(
    key: int,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    return _require_transition(db, tenant_key, key)


@router.get("/care-transitions/{key}/assign", response_model=CareTransitionAssignment)
def get_assignment(
    key: int,
    assigned_to_user_key: str | None = None,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    assignment = lifecycle.get_assignment(db, tenant_key, key, assigned_to_user_key)
    if assignment is None:
        raise HTTPException(status_code=404, detail="Care transition assignment not found")
    return assignment


@router.get("/care-transitions/{key}/timeline", response_model=list[TimelineEvent])
def get_care_transition_timeline(
    key: int,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    _require_transition(db, tenant_key, key)
    return get_timeline(db, tenant_key, key)


@router.get("/care-transitions/{key}/compliance", response_model=TransitionCompliance)
def get_care_transition_compliance(
    key: int,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    compliance = get_compliance(db, tenant_key, key)
    if compliance is None:
        raise HTTPException(status_code=404, detail=lifecycle.NOT_FOUND_MESSAGE)
    return compliance


@router.get("/care-transitions/{key}/notes", response_model=list[CareTransitionNoteRecord])
def list_care_transition_notes(
    key: int,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    _require_transition(db, tenant_key, key)
    return outreach.list_notes(db, tenant_key, key)
