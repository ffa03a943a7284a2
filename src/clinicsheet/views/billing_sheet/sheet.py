"""Custom Sheet subclass for the billing sheet."""

from __future__ import annotations

from tksheet import Sheet

from .panel_constants import NOTE_CORNER_COLOR, NOTE_CORNER_SYMBOL


class BillingSheet(Sheet):
    """Custom Sheet subclass with additional features for billing sheets.

    Customizations:
    - Dot symbol in cell corners (for comments)
    - add_begin_right_click() for handlers that run before popup menu builds
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Override the internal main table's redraw_corner method
        self.MT.redraw_corner = self.custom_redraw_corner

    def add_begin_right_click(self, callback) -> None:
        """Add a right-click handler that runs BEFORE the popup menu is built.

        Uses bindtag ordering to insert a custom tag at the start, ensuring
        the callback runs before tksheet's internal handlers build the menu.

        Args:
            callback: Function to call on right-click, receives the event.
        """
        custom_tag = f"BeginRC_{id(self)}"
        for widget in (self.MT, self.RI, self.CH):
            current_tags = widget.bindtags()
            if custom_tag not in current_tags:
                widget.bindtags((custom_tag,) + current_tags)
        self.MT.bind_class(custom_tag, "<Button-3>", callback)

    def custom_redraw_corner(self, x: float, y: float, tags: str | tuple[str]) -> None:
        """Draw a comment dot in cell corners instead of the default triangle."""
        text_x = x - 6
        text_y = y + 6

        if self.MT.hidd_corners:
            iid = self.MT.hidd_corners.pop()
            self.MT.coords(iid, text_x, text_y)
            self.MT.itemconfig(
                iid,
                text=NOTE_CORNER_SYMBOL,
                fill=NOTE_CORNER_COLOR,
                font=("Arial", 8),
                state="normal",
                tags=tags,
            )
            self.MT.disp_corners.add(iid)
        else:
            iid = self.MT.create_text(
                text_x, text_y, text=NOTE_CORNER_SYMBOL, fill=NOTE_CORNER_COLOR, font=("Arial", 8), tags=tags
            )
            self.MT.disp_corners.add(iid)
