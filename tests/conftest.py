"""Shared fixtures for billing sheet tests."""

from datetime import datetime, timezone

import pytest

from clinicsheet.models.constants import Role
from clinicsheet.models.lookups import BillingCode, LookupTables
from clinicsheet.models.patient import Patient, PatientIndex
from clinicsheet.models.sheet_row import RowIdMinter
from clinicsheet.models.view_context import StaffView
from clinicsheet.services.derivation_service import DerivationContext
from clinicsheet.services.projection_service import project_columns

FIXED_NOW = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Frozen clock for timestamps."""
    return lambda: FIXED_NOW


@pytest.fixture
def minter():
    """Deterministic id minter: new-1000-<n>-500000000."""
    return RowIdMinter(clock=lambda: 1.0, rand=lambda: 0.5)


@pytest.fixture
def patients():
    return [
        Patient("A123", "Jane", "Doe", "Acme Health", "20", "10%"),
        Patient("B456", "John", "Smith", "Blue Plan", None, None),
    ]


@pytest.fixture
def billing_codes():
    return [
        BillingCode("90837", "Psychotherapy 60 min", "#ff0000"),
        BillingCode("90791", "Diagnostic evaluation", "#00ff00"),
    ]


@pytest.fixture
def lookups(patients, billing_codes):
    return LookupTables.build(billing_codes=billing_codes, patients=PatientIndex(patients))


@pytest.fixture
def derivation_context(lookups):
    return DerivationContext(
        lookups=lookups,
        user_highlight_color="#eab308",
        zero_marker_color="#f87171",
    )


@pytest.fixture
def admin_projection():
    """Full 19-column projection, everything but Total editable."""
    return project_columns(StaffView(Role.ADMIN), can_edit=True)
