"""Billing sheet views package.

Provider month sheet rendered with tksheet. The panel never mutates rows
itself: every grid interaction is turned into a call on SheetController and
the grid is then redrawn from controller.rows().

Grid Interaction Routing
========================

+-------------------------+----------------------------------------+
| Grid event              | Controller call                        |
+-------------------------+----------------------------------------+
| Cell edit / paste       | handle_edits(list[CellEdit])           |
| Row drag and drop       | move_rows(row_ids, dest_index)         |
| Delete row (menu)       | delete_row(index)                      |
| Insert above/below      | insert_row(index, above)               |
| Highlight / comment     | toggle_highlight / set_comment         |
| Lock column (header)    | toggle_lock(field, comment)  (async)   |
+-------------------------+----------------------------------------+
"""
