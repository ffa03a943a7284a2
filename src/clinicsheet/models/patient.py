"""Patient reference entity and the lookup index used by auto-fill."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

PATIENT_ID_SEPARATOR = " - "


@dataclass(frozen=True)
class Patient:
    """Read-only patient record as returned by the patient lookup query."""

    patient_id: str
    first_name: str | None = None
    last_name: str | None = None
    insurance: str | None = None
    copay: str | None = None
    coinsurance: str | None = None

    @property
    def last_initial(self) -> str | None:
        if not self.last_name:
            return None
        return self.last_name.strip()[:1] or None


def parse_patient_reference(raw: str) -> str:
    """Extract the identifier from picker text like ``"A123 - Jane Doe"``.

    Falls back to the raw text when the id portion is blank.
    """
    head = raw.split(PATIENT_ID_SEPARATOR)[0].strip()
    return head or raw


class PatientIndex:
    """Case-insensitive, whitespace-trimmed lookup of patients by identifier."""

    def __init__(self, patients: Iterable[Patient] = ()):
        self._by_key: dict[str, Patient] = {}
        for patient in patients:
            self.add(patient)

    @staticmethod
    def _key(patient_id: str) -> str:
        return patient_id.strip().lower()

    def add(self, patient: Patient) -> None:
        self._by_key.setdefault(self._key(patient.patient_id), patient)

    def find(self, patient_id: str | None) -> Patient | None:
        if not patient_id:
            return None
        return self._by_key.get(self._key(patient_id))

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self):
        return iter(self._by_key.values())
