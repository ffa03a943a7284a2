import os
from collections.abc import Mapping
from dataclasses import dataclass, fields

from .models.constants import MIN_ROWS
from .models.lookups import NEUTRAL_CPT_COLOR

ENV_PREFIX = "CLINICSHEET_"


@dataclass
class SheetSettings:
    """Application settings and configuration."""

    clinic_id: str = "default"
    user_id: str | None = None
    role: str = "billing_staff"
    min_rows: int = MIN_ROWS
    debounce_ms: int = 1000
    # Reserved highlight for a literal "00" collected-from-patient entry
    zero_marker_color: str = "#f87171"
    user_highlight_color: str = "#eab308"
    neutral_cpt_color: str = NEUTRAL_CPT_COLOR
    odbc_connection_string: str = ""
    poll_interval_ms: int = 20
    condensed: bool = False
    provider_level: int = 1

    @property
    def debounce_seconds(self) -> float:
        """Get the save debounce delay in seconds."""
        return self.debounce_ms / 1000

    @property
    def use_database(self) -> bool:
        """Check if an ODBC connection string is configured."""
        return bool(self.odbc_connection_string)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SheetSettings":
        """Build settings from ``CLINICSHEET_<FIELD>`` environment variables.

        Unset variables keep their defaults; values are converted to the
        field's type (int and bool fields included).
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            default = getattr(cls, f.name, None)
            if isinstance(default, bool):
                values[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif isinstance(default, int):
                values[f.name] = int(raw)
            else:
                values[f.name] = raw
        return cls(**values)
