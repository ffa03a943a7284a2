# ==============================================================================
# Billing Sheet Field Configuration
# ==============================================================================

# The provider billing sheet has 19 columns. Field order here IS the column
# order of the full (expanded) view.
from enum import Enum

SHEET_FIELDS: tuple[str, ...] = (
    "patient_id",
    "patient_first_name",
    "last_initial",
    "patient_insurance",
    "patient_copay",
    "patient_coinsurance",
    "appointment_date",
    "cpt_code",
    "appointment_status",
    "claim_status",
    "submit_date",
    "insurance_payment",
    "payment_date",
    "insurance_adjustment",
    "collected_from_patient",
    "patient_pay_status",
    "ar_date",
    "total",
    "notes",
)

FIELD_TITLES: dict[str, str] = {
    "patient_id": "Patient ID",
    "patient_first_name": "First Name",
    "last_initial": "Last Initial",
    "patient_insurance": "Insurance",
    "patient_copay": "Co-pay",
    "patient_coinsurance": "Co-Ins",
    "appointment_date": "Date of Service",
    "cpt_code": "CPT Code",
    "appointment_status": "Appt/Note Status",
    "claim_status": "Claim Status",
    "submit_date": "Most Recent Submit Date",
    "insurance_payment": "Ins Pay",
    "payment_date": "Ins Pay Date",
    "insurance_adjustment": "PT RES",
    "collected_from_patient": "Collected from PT",
    "patient_pay_status": "PT Pay Status",
    "ar_date": "PT Payment AR Ref Date",
    "total": "Total",
    "notes": "Notes",
}

# Column names in the lock-state record (is_lock_providers table)
LOCK_KEYS: dict[str, str] = {
    "patient_id": "patient_id",
    "patient_first_name": "first_name",
    "last_initial": "last_initial",
    "patient_insurance": "insurance",
    "patient_copay": "copay",
    "patient_coinsurance": "coinsurance",
    "appointment_date": "date_of_service",
    "cpt_code": "cpt_code",
    "appointment_status": "appointment_note_status",
    "claim_status": "claim_status",
    "submit_date": "most_recent_submit_date",
    "insurance_payment": "ins_pay",
    "payment_date": "ins_pay_date",
    "insurance_adjustment": "pt_res",
    "collected_from_patient": "collected_from_pt",
    "patient_pay_status": "pt_pay_status",
    "ar_date": "pt_payment_ar_ref_date",
    "total": "total",
    "notes": "notes",
}


# ==============================================================================
# Field Kinds (drives coercion)
# ==============================================================================


class FieldKind(Enum):
    """How raw grid text is coerced into a stored field value."""

    TEXT = "text"
    NUMERIC = "numeric"
    DATE = "date"
    MONTH = "month"
    STATUS = "status"
    CODES = "codes"


FIELD_KINDS: dict[str, FieldKind] = {
    "appointment_date": FieldKind.DATE,
    "submit_date": FieldKind.DATE,
    "insurance_payment": FieldKind.NUMERIC,
    "collected_from_patient": FieldKind.NUMERIC,
    "total": FieldKind.NUMERIC,
    "payment_date": FieldKind.MONTH,
    "ar_date": FieldKind.MONTH,
    "appointment_status": FieldKind.STATUS,
    "claim_status": FieldKind.STATUS,
    "patient_pay_status": FieldKind.STATUS,
    "cpt_code": FieldKind.CODES,
}

CURRENCY_FIELDS: tuple[str, str] = ("insurance_payment", "collected_from_patient")
TOTAL_FIELD = "total"
PATIENT_ID_FIELD = "patient_id"


# ==============================================================================
# Status Types and Color Shadows
# ==============================================================================


class StatusType(str, Enum):
    """Status table the color lookup is keyed on."""

    APPOINTMENT = "appointment"
    CLAIM = "claim"
    PATIENT_PAY = "patient_pay"
    MONTH = "month"


# field -> (status type used for lookup, shadow color field)
COLOR_SHADOWS: dict[str, tuple[StatusType, str]] = {
    "appointment_status": (StatusType.APPOINTMENT, "appointment_status_color"),
    "claim_status": (StatusType.CLAIM, "claim_status_color"),
    "patient_pay_status": (StatusType.PATIENT_PAY, "patient_pay_status_color"),
    "payment_date": (StatusType.MONTH, "payment_date_color"),
    "ar_date": (StatusType.MONTH, "ar_date_color"),
}

COLOR_FIELDS: tuple[str, ...] = tuple(shadow for _, shadow in COLOR_SHADOWS.values())

APPOINTMENT_STATUSES: tuple[str, ...] = (
    "Complete",
    "PP Complete",
    "Charge NP",
    "No Show",
    "Late Cancellation",
    "Cancelled",
)

CLAIM_STATUSES: tuple[str, ...] = (
    "Claim Sent",
    "RS",
    "IP",
    "Paid",
    "Deductible",
    "N/A",
    "PP",
    "Denial",
    "Rejection",
    "No Coverage",
)

PATIENT_PAY_STATUSES: tuple[str, ...] = (
    "Paid",
    "CC declined",
    "Secondary",
    "Refunded",
    "Payment Plan",
    "Waiting on Claims",
)

MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

STATUS_OPTIONS: dict[StatusType, tuple[str, ...]] = {
    StatusType.APPOINTMENT: APPOINTMENT_STATUSES,
    StatusType.CLAIM: CLAIM_STATUSES,
    StatusType.PATIENT_PAY: PATIENT_PAY_STATUSES,
    StatusType.MONTH: MONTH_NAMES,
}

# (status, type) -> (background, text) used when a clinic has no configured colors
DEFAULT_STATUS_COLORS: dict[tuple[str, StatusType], tuple[str, str]] = {
    ("Complete", StatusType.APPOINTMENT): ("#22c55e", "#ffffff"),
    ("PP Complete", StatusType.APPOINTMENT): ("#16a34a", "#ffffff"),
    ("Charge NP", StatusType.APPOINTMENT): ("#f97316", "#ffffff"),
    ("No Show", StatusType.APPOINTMENT): ("#ef4444", "#ffffff"),
    ("Late Cancellation", StatusType.APPOINTMENT): ("#f59e0b", "#000000"),
    ("Cancelled", StatusType.APPOINTMENT): ("#6b7280", "#ffffff"),
    ("Claim Sent", StatusType.CLAIM): ("#3b82f6", "#ffffff"),
    ("RS", StatusType.CLAIM): ("#8b5cf6", "#ffffff"),
    ("IP", StatusType.CLAIM): ("#eab308", "#000000"),
    ("Paid", StatusType.CLAIM): ("#22c55e", "#ffffff"),
    ("Deductible", StatusType.CLAIM): ("#f97316", "#ffffff"),
    ("N/A", StatusType.CLAIM): ("#9ca3af", "#000000"),
    ("PP", StatusType.CLAIM): ("#14b8a6", "#ffffff"),
    ("Denial", StatusType.CLAIM): ("#dc2626", "#ffffff"),
    ("Rejection", StatusType.CLAIM): ("#b91c1c", "#ffffff"),
    ("No Coverage", StatusType.CLAIM): ("#4b5563", "#ffffff"),
    ("Paid", StatusType.PATIENT_PAY): ("#22c55e", "#ffffff"),
    ("CC declined", StatusType.PATIENT_PAY): ("#ef4444", "#ffffff"),
    ("Secondary", StatusType.PATIENT_PAY): ("#3b82f6", "#ffffff"),
    ("Refunded", StatusType.PATIENT_PAY): ("#a855f7", "#ffffff"),
    ("Payment Plan", StatusType.PATIENT_PAY): ("#f59e0b", "#000000"),
    ("Waiting on Claims", StatusType.PATIENT_PAY): ("#6b7280", "#ffffff"),
    ("January", StatusType.MONTH): ("#dc2626", "#ffffff"),
    ("February", StatusType.MONTH): ("#ea580c", "#ffffff"),
    ("March", StatusType.MONTH): ("#d97706", "#ffffff"),
    ("April", StatusType.MONTH): ("#65a30d", "#ffffff"),
    ("May", StatusType.MONTH): ("#16a34a", "#ffffff"),
    ("June", StatusType.MONTH): ("#059669", "#ffffff"),
    ("July", StatusType.MONTH): ("#0d9488", "#ffffff"),
    ("August", StatusType.MONTH): ("#0891b2", "#ffffff"),
    ("September", StatusType.MONTH): ("#2563eb", "#ffffff"),
    ("October", StatusType.MONTH): ("#7c3aed", "#ffffff"),
    ("November", StatusType.MONTH): ("#c026d3", "#ffffff"),
    ("December", StatusType.MONTH): ("#0ea5e9", "#ffffff"),
}


# ==============================================================================
# Row Identity
# ==============================================================================

EMPTY_ID_PREFIX = "empty-"
NEW_ID_PREFIX = "new-"
MIN_ROWS = 200


# ==============================================================================
# Sheets and Roles
# ==============================================================================


class SheetKind(str, Enum):
    """Spreadsheet tab an annotation or lock record belongs to."""

    PATIENTS = "patients"
    TODO = "todo"
    PROVIDERS = "providers"
    ACCOUNTS_RECEIVABLE = "accounts_receivable"


class Role(str, Enum):
    """User role as resolved by the authentication layer."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    VIEW_ONLY_ADMIN = "view_only_admin"
    BILLING_STAFF = "billing_staff"
    VIEW_ONLY_BILLING = "view_only_billing"
    PROVIDER = "provider"
    OFFICE_STAFF = "office_staff"
    OFFICIAL_STAFF = "official_staff"


FULL_ACCESS_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.BILLING_STAFF})
VIEW_ONLY_ROLES = frozenset({Role.VIEW_ONLY_ADMIN, Role.VIEW_ONLY_BILLING})

# Scheduling-only staff see every column but edit only the first 7
SCHEDULING_EDIT_COUNT = 7

# Patient-intake (office) staff column subset and their editable fields
OFFICE_VISIBLE_FIELDS: tuple[str, ...] = SHEET_FIELDS[:9] + (
    "collected_from_patient",
    "patient_pay_status",
    "ar_date",
)
OFFICE_EDITABLE_FIELDS = frozenset(
    SHEET_FIELDS[:SCHEDULING_EDIT_COUNT]
    + ("collected_from_patient", "patient_pay_status", "ar_date")
)

# Condensed staff view collapses the claim block
CONDENSED_HIDDEN_FIELDS = frozenset(
    {"claim_status", "submit_date", "insurance_payment", "payment_date", "insurance_adjustment"}
)

# Provider self-service tiers
PROVIDER_LEVEL1_VISIBLE = 9
PROVIDER_LEVEL1_EDITABLE = frozenset({"appointment_status"})

# Fields that are never directly editable (computed)
DERIVED_FIELDS = frozenset({TOTAL_FIELD})

# Footer sums shown under the provider sheet
SUMMED_FIELDS: tuple[str, ...] = ("insurance_payment", "collected_from_patient", "total")
