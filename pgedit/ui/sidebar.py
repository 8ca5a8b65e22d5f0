import tkinter as tk
from tkinter import ttk
from typing import Callable, List, Optional


class Sidebar(ttk.Frame):
    """Схемы и таблицы выбранного подключения."""

    def __init__(
        self,
        parent: tk.Misc,
        on_schema: Callable[[str], None],
        on_table: Callable[[str], None],
    ):
        super().__init__(parent)
        self.on_schema = on_schema
        self.on_table = on_table

        ttk.Label(self, text="Schemas").pack(anchor="w", padx=4, pady=(4, 0))
        self.lst_schemas = tk.Listbox(self, height=8, exportselection=False)
        self.lst_schemas.pack(fill="x", padx=4, pady=4)
        self.lst_schemas.bind("<<ListboxSelect>>", self._on_schema_select)

        self.lbl_tables = ttk.Label(self, text="Tables")
        self.lbl_tables.pack(anchor="w", padx=4)
        frm = ttk.Frame(self)
        frm.pack(fill="both", expand=True, padx=4, pady=4)
        self.lst_tables = tk.Listbox(frm, exportselection=False)
        self.lst_tables.pack(side="left", fill="both", expand=True)
        sb = ttk.Scrollbar(frm, orient="vertical", command=self.lst_tables.yview)
        sb.pack(side="right", fill="y")
        self.lst_tables.configure(yscrollcommand=sb.set)
        self.lst_tables.bind("<<ListboxSelect>>", self._on_table_select)

        self._schemas: List[str] = []
        self._tables: List[str] = []

    # --- public ---

    def render(self, schemas: List[str], schema: Optional[str], tables: List[str],
               table: Optional[str], loading_tables: bool):
        if schemas != self._schemas:
            self._schemas = list(schemas)
            self.lst_schemas.delete(0, "end")
            for s in schemas:
                self.lst_schemas.insert("end", s)
        self._select(self.lst_schemas, self._schemas, schema)

        if tables != self._tables:
            self._tables = list(tables)
            self.lst_tables.delete(0, "end")
            for t in tables:
                self.lst_tables.insert("end", t)
        self._select(self.lst_tables, self._tables, table)
        self.lbl_tables.configure(text="Tables (loading...)" if loading_tables else "Tables")

    # --- private ---

    @staticmethod
    def _select(lst: tk.Listbox, items: List[str], value: Optional[str]):
        lst.selection_clear(0, "end")
        if value in items:
            idx = items.index(value)
            lst.selection_set(idx)
            lst.see(idx)

    def _on_schema_select(self, _evt=None):
        sel = self.lst_schemas.curselection()
        if sel:
            self.on_schema(self._schemas[sel[0]])

    def _on_table_select(self, _evt=None):
        sel = self.lst_tables.curselection()
        if sel:
            self.on_table(self._tables[sel[0]])
