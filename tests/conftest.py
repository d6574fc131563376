"""
Shared pytest setup: a throwaway sqlite database configured before any
application module is imported.
"""
from __future__ import annotations

import os
import tempfile
from datetime import datetime

_TEST_DB_DIR = tempfile.mkdtemp(prefix="transitline-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DB_DIR}/transitline_test.db")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("HIPAA_AUDIT_LOGGING", "false")

import pytest  # noqa: E402

from packages.db.database import engine, get_session  # noqa: E402
from packages.db.models import Base, Encounter, Hospital, Patient  # noqa: E402


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    with get_session() as session:
        yield session


@pytest.fixture
def seed_registry(db_session):
    """Insert and commit hospital/patient/encounter reference rows for a tenant."""

    def _seed(
        tenant_key: str,
        encounter_key: int,
        patient_key: int = 10,
        hospital_key: int = 3,
        discharge: datetime | None = None,
        admit: datetime | None = None,
        visit_status: str | None = "D",
        given_name: str | None = "Ada",
        family_name: str | None = "Lovelace",
        tcm_schedule1: datetime | None = None,
        tcm_schedule2: datetime | None = None,
    ) -> None:
        if db_session.get(Hospital, hospital_key) is None:
            db_session.add(
                Hospital(
                    hospital_key=hospital_key,
                    tenant_key=tenant_key,
                    hospital_code=f"H{hospital_key}",
                    hospital_name="General Hospital",
                    city="Springfield",
                    state="IL",
                )
            )
        if given_name is not None and db_session.get(Patient, patient_key) is None:
            db_session.add(
                Patient(
                    patient_key=patient_key,
                    tenant_key=tenant_key,
                    given_name=given_name,
                    family_name=family_name,
                    mrn=f"MRN{patient_key}",
                )
            )
        db_session.add(
            Encounter(
                encounter_key=encounter_key,
                tenant_key=tenant_key,
                hospital_key=hospital_key,
                patient_key=patient_key,
                visit_number=f"V-{encounter_key}",
                admit_datetime=admit,
                discharge_datetime=discharge,
                location="4 West",
                visit_status=visit_status,
                tcm_schedule1=tcm_schedule1,
                tcm_schedule2=tcm_schedule2,
            )
        )
        db_session.commit()

    return _seed
