import tkinter as tk
from tkinter import ttk, messagebox
from typing import Callable, List

from pgedit.extractors.base import FILTER_OPERATORS, LOGICAL_OPERATORS, NULL_OPERATORS
from pgedit.state.query_builder_state import QueryBuilderState


class FilterDialog(tk.Toplevel):
    """
    Конструктор WHERE:
    - AND / OR для всех условий
    - строки: колонка, оператор, значение, ×
    - Apply Filters переносит draft в active
    Правки идут в draft; закрыли без Apply — при следующем открытии draft
    снова берётся из active.
    """

    def __init__(
        self,
        parent: tk.Misc,
        query: QueryBuilderState,
        columns: List[str],
        on_apply: Callable[[], None],
    ):
        super().__init__(parent)
        self.title("Filters")
        self.transient(parent)
        self.query = query
        self.columns = columns
        self.on_apply = on_apply

        self.query.open_filter_editor()

        top = ttk.Frame(self)
        top.pack(fill="x", padx=10, pady=8)
        self.cmb_logic = ttk.Combobox(top, values=list(LOGICAL_OPERATORS), state="readonly", width=6)
        self.cmb_logic.set(self.query.draft_logical_operator)
        self.cmb_logic.pack(side="left")
        self.cmb_logic.bind("<<ComboboxSelected>>", self._on_logic_change)
        ttk.Label(top, text="Combine filters with this logical operator.").pack(side="left", padx=8)

        self.rows_container = ttk.Frame(self)
        self.rows_container.pack(fill="both", expand=True, padx=10, pady=4)

        btns = ttk.Frame(self)
        btns.pack(fill="x", padx=10, pady=(4, 10))
        self.btn_add = ttk.Button(btns, text="+ Add filter", command=self._add_filter)
        self.btn_add.pack(side="left")
        if not self.columns:
            self.btn_add.state(["disabled"])
        ttk.Button(btns, text="Apply Filters", command=self._apply).pack(side="right")

        self._render_rows()
        self.grab_set()

    # --- internal ---

    def _render_rows(self):
        for w in self.rows_container.winfo_children():
            w.destroy()

        for index, f in enumerate(self.query.draft_filters):
            row = ttk.Frame(self.rows_container)
            row.pack(fill="x", pady=2)

            cmb_col = ttk.Combobox(row, values=self.columns, state="readonly", width=18)
            cmb_col.set(f["column"])
            cmb_col.pack(side="left")
            cmb_col.bind("<<ComboboxSelected>>",
                         lambda e, i=index, w=cmb_col: self.query.set_filter_column(i, w.get()))

            cmb_op = ttk.Combobox(row, values=list(FILTER_OPERATORS), state="readonly", width=12)
            cmb_op.set(f["operator"])
            cmb_op.pack(side="left", padx=4)
            cmb_op.bind("<<ComboboxSelected>>",
                        lambda e, i=index, w=cmb_op: self._on_operator_change(i, w.get()))

            var_val = tk.StringVar(value=f.get("value", ""))
            ent_val = ttk.Entry(row, width=24, textvariable=var_val)
            ent_val.pack(side="left", padx=4, fill="x", expand=True)
            if f["operator"] in NULL_OPERATORS:
                ent_val.state(["disabled"])
            var_val.trace_add("write",
                              lambda *_, i=index, v=var_val: self.query.set_filter_value(i, v.get()))

            ttk.Button(row, text="×", width=3,
                       command=lambda i=index: self._remove_filter(i)).pack(side="left", padx=4)

    def _on_logic_change(self, _evt=None):
        self.query.set_draft_logical_operator(self.cmb_logic.get())

    def _on_operator_change(self, index: int, op: str):
        # смена оператора сбрасывает значение — перерисуем строку
        self.query.set_operator(index, op)
        self._render_rows()

    def _add_filter(self):
        self.query.add_filter(self.columns)
        self._render_rows()

    def _remove_filter(self, index: int):
        self.query.remove_filter(index)
        self._render_rows()

    def _apply(self):
        incomplete = [
            f["column"] for f in self.query.draft_filters
            if f["operator"] not in NULL_OPERATORS and f.get("value", "") == ""
        ]
        if incomplete and not messagebox.askyesno(
            "Empty values",
            "Some filters have an empty value:\n" + ", ".join(incomplete) + "\n\nApply anyway?",
            parent=self,
        ):
            return
        self.on_apply()
        self.destroy()
