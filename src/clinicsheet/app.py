import logging
import tkinter as tk
from datetime import date
from tkinter import ttk

from .data.backend import InMemoryBackend, SheetBackend
from .data.sheet_controller import SheetController
from .models.constants import MONTH_NAMES, Role
from .models.sheet_row import SheetPeriod
from .models.view_context import resolve_view_context
from .settings import SheetSettings
from .utils.async_bridge import TkAsyncioBridge
from .views.billing_sheet.panel import BillingSheetPanel

logger = logging.getLogger(__name__)


def get_version():
    """Get version from package metadata."""
    try:
        from importlib.metadata import version

        return version("clinicsheet")
    except Exception:
        return "Development"


def create_backend(settings: SheetSettings) -> SheetBackend:
    """ODBC backend when a connection string is configured, else in-memory."""
    if settings.use_database:
        from .data.odbc_backend import OdbcBackend

        return OdbcBackend(settings.odbc_connection_string, settings.clinic_id)
    logger.warning("No ODBC connection string configured; edits are kept in memory only")
    return InMemoryBackend(clinic_id=settings.clinic_id)


class ClinicSheetApp:
    """Main application window for the billing sheet."""

    def _setup_variables(self):
        """Initialize Tkinter variables."""
        today = date.today()
        default_owner = self.settings.user_id if self.settings.role == Role.PROVIDER.value else ""
        self.owner_var = tk.StringVar(value=default_owner or "")
        self.month_var = tk.StringVar(value=MONTH_NAMES[today.month - 1])
        self.year_var = tk.IntVar(value=today.year)

    def _create_widgets(self):
        toolbar = ttk.Frame(self.root, padding=(5, 5, 5, 0))
        toolbar.pack(fill=tk.X)

        ttk.Label(toolbar, text="Provider:").pack(side=tk.LEFT)
        owner_entry = ttk.Entry(toolbar, textvariable=self.owner_var, width=20)
        owner_entry.pack(side=tk.LEFT, padx=(5, 10))
        owner_entry.bind("<Return>", lambda e: self.open_sheet())

        ttk.Combobox(
            toolbar, textvariable=self.month_var, values=MONTH_NAMES, state="readonly", width=10
        ).pack(side=tk.LEFT)
        ttk.Spinbox(toolbar, textvariable=self.year_var, from_=2000, to=2100, width=6).pack(
            side=tk.LEFT, padx=(5, 10)
        )

        ttk.Button(toolbar, text="Open", command=self.open_sheet).pack(side=tk.LEFT)
        ttk.Button(toolbar, text="Refresh", command=self.refresh).pack(side=tk.LEFT, padx=(5, 0))

        self.panel = BillingSheetPanel(self.root, self.controller, self.bridge)
        self.panel.pack(fill=tk.BOTH, expand=True)

    def __init__(self, settings: SheetSettings | None = None, backend: SheetBackend | None = None):
        self.settings = settings or SheetSettings.from_env()
        self.root = tk.Tk()
        self.root.title(f"ClinicSheet - v{get_version()}")
        self.root.geometry("1400x700")

        self.bridge = TkAsyncioBridge(interval_ms=self.settings.poll_interval_ms)
        self.backend = backend or create_backend(self.settings)
        view_context = resolve_view_context(
            self.settings.role, self.settings.condensed, self.settings.provider_level
        )
        self.controller = SheetController(
            self.backend,
            self.settings,
            view_context,
            loop=self.bridge.loop,
            on_error=self._on_controller_error,
        )

        self._setup_variables()
        self._create_widgets()
        self.root.protocol("WM_DELETE_WINDOW", self.on_closing)

    def _on_controller_error(self, message: str) -> None:
        logger.error(message)
        self.panel.show_error(message)

    def _selected_period(self) -> SheetPeriod | None:
        try:
            return SheetPeriod(MONTH_NAMES.index(self.month_var.get()) + 1, int(self.year_var.get()))
        except (ValueError, tk.TclError) as e:
            self.panel.show_error(f"Invalid month or year: {e}")
            return None

    def open_sheet(self):
        owner_id = self.owner_var.get().strip()
        period = self._selected_period()
        if not owner_id or period is None:
            return
        self.panel.open(owner_id, period)

    def refresh(self):
        if self.controller.owner_id is None:
            return
        self.bridge.spawn(
            self.controller.refresh(),
            on_done=lambda _: self.panel.refresh_view(),
            on_error=lambda exc: self.panel.show_error(f"Refresh failed: {exc}"),
        )

    def on_closing(self):
        """Flush pending saves, then shut down."""
        try:
            self.bridge.run_until_complete(self.controller.flush())
        except Exception:
            logger.exception("Flushing pending saves on exit failed")
        self.bridge.close()
        self.root.destroy()

    def run(self):
        self.bridge.start(self.root)
        self.bridge.spawn(
            self.controller.load_reference_data(),
            on_done=lambda _: self.panel.refresh_view(),
            on_error=lambda exc: self.panel.show_error(f"Could not load clinic data: {exc}"),
        )
        if self.owner_var.get():
            self.open_sheet()
        self.root.mainloop()


def main() -> None:
    """Entry point for the application."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    app = ClinicSheetApp()
    app.run()


if __name__ == "__main__":
    main()
