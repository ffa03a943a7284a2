import tkinter as tk
from tkinter import messagebox, simpledialog, ttk


class CommentDialog:
    """Modal editor for a cell comment.

    After the window closes, ``result`` holds the entered text ("" to
    remove the comment) or None if the dialog was cancelled.
    """

    def __init__(self, parent, title, initial=None):
        self.parent = parent
        self.title = title
        self.initial = initial or ""
        self.result = None

        self.create_window()

    def create_window(self):
        self.window = tk.Toplevel(self.parent)
        self.window.title(self.title)
        self.window.resizable(False, False)
        self.window.transient(self.parent)

        main_frame = ttk.Frame(self.window, padding="10")
        main_frame.pack(fill=tk.BOTH, expand=True)

        self.text = tk.Text(main_frame, height=6, width=48, wrap=tk.WORD)
        self.text.insert("1.0", self.initial)
        self.text.pack(fill=tk.BOTH, expand=True)
        self.text.focus_set()

        ttk.Label(main_frame, text="Leave empty to remove the comment.", foreground="gray").pack(
            anchor=tk.W, pady=(5, 0)
        )

        button_frame = ttk.Frame(main_frame)
        button_frame.pack(fill=tk.X, pady=(10, 0))
        ttk.Button(button_frame, text="Cancel", command=self.window.destroy).pack(side=tk.RIGHT)
        ttk.Button(button_frame, text="Save", command=self.save).pack(side=tk.RIGHT, padx=(0, 5))

        self.window.bind("<Escape>", lambda e: self.window.destroy())
        self.window.bind("<Control-Return>", lambda e: self.save())

        self.window.grab_set()
        self.window.wait_window()

    def save(self):
        self.result = self.text.get("1.0", tk.END).strip()
        self.window.destroy()


def ask_comment(parent, title, initial=None):
    """Show the comment editor; returns the text or None if cancelled."""
    return CommentDialog(parent, title, initial).result


def ask_lock_comment(parent, column_title):
    """Ask for the optional reason shown on a locked column header."""
    return simpledialog.askstring(
        "Lock Column",
        f"Lock '{column_title}' for everyone.\nReason (optional):",
        parent=parent,
    )


def confirm_delete_row(parent, row_number):
    return messagebox.askyesno(
        "Delete Row", f"Delete row {row_number}? This is saved immediately.", parent=parent
    )


def show_error(parent, message):
    messagebox.showerror("Billing Sheet", message, parent=parent)
