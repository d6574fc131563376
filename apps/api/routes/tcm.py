"""
API route: TCM dashboards (metrics, overdue work queues, alerts, workload)
"""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from apps.api.authz import resolve_tenant
from packages.db.database import get_db
from packages.shared.models import AlertSummary, OverdueTcmEncounter, TcmMetrics, WorkloadSummary
from packages.shared.utils.timestamps import to_naive_utc
from packages.tcm.alerts import (
    get_overdue_alerts,
    get_overdue_tcm_schedule1,
    get_overdue_tcm_schedule2,
    get_todays_workload,
)
from packages.tcm.metrics import get_tcm_metrics

router = APIRouter(prefix="/tenants/{tenant_key}/tcm", tags=["tcm"])


@router.get("/metrics", response_model=TcmMetrics)
def tcm_metrics(
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    tenant_key: str = Depends(resolve_tenant),
    db: Session = Depends(get_db),
):
    """Dashboard metrics over transitions created in the optional [date_from, date_to] range."""
    date_from = to_naive_utc(date_from) if date_from is not None else None
    date_to = to_naive_utc(date_to) if date_to is not None else None
    if date_from is not None and date_to is not None and date_from > date_to:
        raise HTTPException(status_code=400, detail="date_from must not be after date_to")
    return get_tcm_metrics(db, tenant_key, date_from=date_from, date_to=date_to)


@router.get("/overdue", response_model=list[OverdueTcmEncounter])
def overdue_contact(tenant_key: str = Depends(resolve_tenant), db: Session = Depends(get_db)):
    return get_overdue_tcm_schedule1(db, tenant_key)


@router.get("/overdue2", response_model=list[OverdueTcmEncounter])
def overdue_follow_up(tenant_key: str = Depends(resolve_tenant), db: Session = Depends(get_db)):
    return get_overdue_tcm_schedule2(db, tenant_key)


@router.get("/alerts", response_model=AlertSummary)
def overdue_alerts(tenant_key: str = Depends(resolve_tenant), db: Session = Depends(get_db)):
    return get_overdue_alerts(db, tenant_key)


@router.get("/workload", response_model=WorkloadSummary)
def todays_workload(tenant_key: str = Depends(resolve_tenant), db: Session = Depends(get_db)):
    return get_todays_workload(db, tenant_key)
