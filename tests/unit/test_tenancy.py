from __future__ import annotations

from types import SimpleNamespace

import pytest

from packages.db.models import CareTransition
from packages.shared.models import CreateCareTransition
from packages.tcm.lifecycle import create_care_transition
from packages.tcm.tenancy import TenantScopeError, ensure_tenant, require_tenant_key, tenant_query


def test_require_tenant_key_strips():
    assert require_tenant_key("  t1 ") == "t1"


@pytest.mark.parametrize("value", [None, "", "   ", "x" * 65])
def test_require_tenant_key_rejects(value):
    with pytest.raises(TenantScopeError):
        require_tenant_key(value)


def test_ensure_tenant():
    row = SimpleNamespace(tenant_key="t1")
    assert ensure_tenant(row, "t1") is row
    assert ensure_tenant(None, "t1") is None
    with pytest.raises(TenantScopeError):
        ensure_tenant(row, "t2")


def test_tenant_query_only_sees_own_rows(db_session):
    for tenant_key in ("t1", "t1", "t2"):
        create_care_transition(
            db_session,
            tenant_key,
            CreateCareTransition(encounter_key=1, patient_key=1, hospital_key=1, visit_number="V"),
        )
    assert tenant_query(db_session, CareTransition, "t1").count() == 2
    assert tenant_query(db_session, CareTransition, "t2").count() == 1
    assert tenant_query(db_session, CareTransition, "t3").count() == 0
