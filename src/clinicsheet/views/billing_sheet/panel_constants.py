"""Shared constants for the billing sheet panel and styler."""

# Cell colors
COLOR_TOTAL_BG = "#f3f4f6"
COLOR_PENDING_INDEX_BG = "#fef3c7"

# Corner indicator drawn for cells with a comment
NOTE_CORNER_SYMBOL = "●"
NOTE_CORNER_COLOR = "#2563eb"

# Popup menu labels
MENU_HIGHLIGHT = "Toggle highlight"
MENU_COMMENT = "Comment..."
MENU_RESOLVE = "Resolve comment"
MENU_REOPEN = "Reopen comment"
MENU_INSERT_ABOVE = "Insert row above"
MENU_INSERT_BELOW = "Insert row below"
MENU_DELETE_ROW = "Delete row"
MENU_LOCK = "Lock column..."
MENU_UNLOCK = "Unlock column"

DYNAMIC_MENU_LABELS = (
    MENU_HIGHLIGHT,
    MENU_COMMENT,
    MENU_RESOLVE,
    MENU_REOPEN,
    MENU_INSERT_ABOVE,
    MENU_INSERT_BELOW,
    MENU_DELETE_ROW,
    MENU_LOCK,
    MENU_UNLOCK,
)

# Default column widths by field (others use DEFAULT_COLUMN_WIDTH)
DEFAULT_COLUMN_WIDTH = 110
COLUMN_WIDTHS = {
    "patient_id": 90,
    "last_initial": 70,
    "cpt_code": 140,
    "notes": 240,
    "total": 80,
}
