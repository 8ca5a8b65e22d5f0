import json
import tkinter as tk
from datetime import datetime
from tkinter import ttk, messagebox
from typing import Any, Callable

from pgedit.db.errors import EditRejectedError
from pgedit.state.cell_values import (
    CellKind,
    bool_choices,
    canonical_date,
    canonical_timestamp,
    parse_json_text,
    vector_summary,
)

_BOOL_LABELS = {True: "True", False: "False", None: "NULL"}


class CellEditor(tk.Toplevel):
    """
    Редактор одной ячейки. Виджет выбирается по CellKind:
    bool — выпадашка (NULL третьим пунктом для nullable), дата/время — поле
    с форматом, json — текстовый редактор, vector — только просмотр.
    on_update получает сырое значение; приведение делает TableSession.
    """

    def __init__(
        self,
        parent: tk.Misc,
        column: str,
        column_type: str,
        kind: CellKind,
        value: Any,
        nullable: bool,
        on_update: Callable[[Any], None],
    ):
        super().__init__(parent)
        self.title(f"{column} ({column_type})")
        self.transient(parent)
        self.kind = kind
        self.nullable = nullable
        self.on_update = on_update
        self._get_value: Callable[[], Any] = lambda: value

        body = ttk.Frame(self)
        body.pack(fill="both", expand=True, padx=10, pady=10)

        builder = {
            CellKind.BOOLEAN: self._build_bool,
            CellKind.DATE: self._build_datetime,
            CellKind.TIMESTAMP: self._build_datetime,
            CellKind.STRUCTURED: self._build_json,
            CellKind.VECTOR: self._build_vector,
        }.get(kind, self._build_text)
        builder(body, value)

        btns = ttk.Frame(self)
        btns.pack(fill="x", padx=10, pady=(0, 10))
        if kind is not CellKind.VECTOR:
            ttk.Button(btns, text="Apply", command=self._apply).pack(side="right")
            if nullable and kind is not CellKind.BOOLEAN:
                ttk.Button(btns, text="Set to NULL", command=self._set_null).pack(side="left")
        ttk.Button(btns, text="Cancel" if kind is not CellKind.VECTOR else "Close",
                   command=self.destroy).pack(side="right", padx=6)

        self.bind("<Escape>", lambda e: self.destroy())
        self.grab_set()

    # --- виджеты по типам ---

    def _build_bool(self, body, value):
        choices = bool_choices(self.nullable)
        cmb = ttk.Combobox(body, values=[_BOOL_LABELS[c] for c in choices], state="readonly", width=10)
        cmb.set(_BOOL_LABELS.get(value, "NULL"))
        cmb.pack(anchor="w")
        by_label = {_BOOL_LABELS[c]: c for c in choices}
        self._get_value = lambda: by_label.get(cmb.get())
        # выбор сразу применяет значение
        cmb.bind("<<ComboboxSelected>>", lambda e: self._apply())

    def _build_datetime(self, body, value):
        date_only = self.kind is CellKind.DATE
        fmt = "YYYY-MM-DD" if date_only else "YYYY-MM-DD HH:MM:SS"
        try:
            initial = "" if value is None else (canonical_date(value) if date_only else canonical_timestamp(value))
        except EditRejectedError:
            initial = str(value)
        ttk.Label(body, text=f"Format: {fmt}").pack(anchor="w")
        var = tk.StringVar(value=initial)
        ent = ttk.Entry(body, textvariable=var, width=24)
        ent.pack(anchor="w", pady=4)
        ent.focus_set()
        ent.bind("<Return>", lambda e: self._apply())

        def now():
            n = datetime.now()
            var.set(canonical_date(n) if date_only else canonical_timestamp(n))

        ttk.Button(body, text="Today" if date_only else "Now", command=now).pack(anchor="w")
        self._get_value = lambda: var.get().strip()

    def _build_json(self, body, value):
        parsed = parse_json_text(value)
        txt = tk.Text(body, width=70, height=18, font="TkFixedFont")
        txt.pack(fill="both", expand=True)
        if value is not None:
            txt.insert("1.0", json.dumps(parsed, indent=2, ensure_ascii=False, default=str))
        self._get_value = lambda: txt.get("1.0", "end").strip()

    def _build_vector(self, body, value):
        values = parse_json_text(value) or []
        s = vector_summary(values)
        ttk.Label(
            body,
            text=(
                f"Vector ({s['dimensions']} dimensions)   "
                f"min {s['min']:.4f}   max {s['max']:.4f}   "
                f"mean {s['mean']:.4f}   norm {s['norm']:.4f}"
            ),
        ).pack(anchor="w", pady=(0, 6))
        txt = tk.Text(body, width=70, height=14, font="TkFixedFont")
        txt.pack(fill="both", expand=True)
        for i, v in enumerate(values):
            txt.insert("end", f"[{i}] {v}\n")
        txt.configure(state="disabled")

    def _build_text(self, body, value):
        var = tk.StringVar(value="" if value is None else str(value))
        ent = ttk.Entry(body, textvariable=var, width=60)
        ent.pack(fill="x")
        ent.focus_set()
        ent.select_range(0, "end")
        ent.bind("<Return>", lambda e: self._apply())
        self._get_value = var.get

    # --- действия ---

    def _submit(self, raw: Any):
        try:
            self.on_update(raw)
        except EditRejectedError as e:
            messagebox.showerror("Invalid value", str(e), parent=self)
            return
        self.destroy()

    def _apply(self):
        self._submit(self._get_value())

    def _set_null(self):
        self._submit(None)
