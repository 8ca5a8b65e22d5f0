import tkinter as tk
from tkinter import ttk, messagebox
from typing import Callable, List

from pgedit.state.cell_values import display_text
from pgedit.state.pending_changes import Change


class ChangesDialog(tk.Toplevel):
    """Несохранённые правки: ключ строки, колонка, было -> стало."""

    def __init__(
        self,
        parent: tk.Misc,
        changes: List[Change],
        on_apply: Callable[[], None],
        on_discard: Callable[[], None],
    ):
        super().__init__(parent)
        self.title(f"Pending changes ({len(changes)})")
        self.transient(parent)
        self.geometry("720x360")
        self.on_apply = on_apply
        self.on_discard = on_discard

        cols = ("row", "column", "original", "new")
        self.tree = ttk.Treeview(self, columns=cols, show="headings")
        for c, w in zip(cols, (200, 120, 180, 180)):
            self.tree.heading(c, text=c.capitalize())
            self.tree.column(c, width=w, anchor="w")
        self.tree.pack(fill="both", expand=True, padx=10, pady=(10, 4))

        for ch in changes:
            key = ", ".join(f"{k}={display_text(v, max_len=20)}" for k, v in ch.pks.items())
            for column, new in ch.changes.items():
                self.tree.insert("", "end", values=(
                    key,
                    column,
                    display_text(ch.original.get(column)),
                    display_text(new),
                ))

        btns = ttk.Frame(self)
        btns.pack(fill="x", padx=10, pady=(0, 10))
        btn_apply = ttk.Button(btns, text="Apply Changes", command=self._apply)
        btn_apply.pack(side="right")
        btn_discard = ttk.Button(btns, text="Discard All", command=self._discard)
        btn_discard.pack(side="left")
        ttk.Button(btns, text="Close", command=self.destroy).pack(side="right", padx=6)
        if not changes:
            btn_apply.state(["disabled"])
            btn_discard.state(["disabled"])

        self.bind("<Escape>", lambda e: self.destroy())

    def _apply(self):
        self.on_apply()
        self.destroy()

    def _discard(self):
        if not messagebox.askyesno("Discard changes", "Drop all pending changes?", parent=self):
            return
        self.on_discard()
        self.destroy()
