import tkinter as tk
from tkinter import ttk
from typing import Callable, List, Optional

from pgedit.extractors.base import ColumnInfo
from pgedit.state.cell_values import classify, display_text
from pgedit.state.row_view import DisplayRow

PENDING_MARK = "✎ "


class TableGrid(ttk.Frame):
    """
    Сетка данных (Treeview):
    - клик по заголовку — сортировка (Shift — добавить к текущим)
    - двойной клик — редактор ячейки
    - правый клик — меню Edit / Set to NULL
    Ячейки с несохранёнными правками помечены ✎, строка подсвечена.
    """

    def __init__(
        self,
        parent: tk.Misc,
        on_sort: Callable[[str, bool], None],
        on_edit: Callable[[int, str], None],
        on_set_null: Callable[[int, str], None],
    ):
        super().__init__(parent)
        self.on_sort = on_sort
        self.on_edit = on_edit
        self.on_set_null = on_set_null

        self.tree = ttk.Treeview(self, show="headings", selectmode="browse")
        vsb = ttk.Scrollbar(self, orient="vertical", command=self.tree.yview)
        hsb = ttk.Scrollbar(self, orient="horizontal", command=self.tree.xview)
        self.tree.configure(yscrollcommand=vsb.set, xscrollcommand=hsb.set)
        self.tree.grid(row=0, column=0, sticky="nsew")
        vsb.grid(row=0, column=1, sticky="ns")
        hsb.grid(row=1, column=0, sticky="ew")
        self.rowconfigure(0, weight=1)
        self.columnconfigure(0, weight=1)

        self.tree.tag_configure("pending", background="#fff3b0")
        self.tree.bind("<Double-1>", self._on_double_click)
        self.tree.bind("<Button-3>", self._on_right_click)
        self.tree.bind("<ButtonPress-1>", self._remember_modifiers, add="+")

        self.menu = tk.Menu(self, tearoff=False)
        self._columns: List[ColumnInfo] = []
        self._shift = False

    # --- public ---

    def render(self, columns: List[ColumnInfo], rows: List[DisplayRow], sorts: List[dict]):
        names = [c["name"] for c in columns]
        if [c["name"] for c in self._columns] != names:
            self.tree["columns"] = names
            for c in columns:
                self.tree.column(c["name"], width=max(90, len(c["name"]) * 9), stretch=True, anchor="w")
        self._columns = list(columns)

        for c in columns:
            self.tree.heading(
                c["name"],
                text=self._heading_text(c["name"], sorts),
                command=lambda n=c["name"]: self._on_heading(n),
            )

        self.tree.delete(*self.tree.get_children())
        for idx, row in enumerate(rows):
            values = []
            for c in columns:
                v = row.values.get(c["name"])
                text = display_text(v, classify(c["type"], v))
                values.append(PENDING_MARK + text if row.is_pending(c["name"]) else text)
            self.tree.insert("", "end", iid=str(idx), values=values,
                             tags=("pending",) if row.pending else ())

    def clear(self):
        self.tree.delete(*self.tree.get_children())
        self.tree["columns"] = []
        self._columns = []

    # --- internal ---

    @staticmethod
    def _heading_text(name: str, sorts: List[dict]) -> str:
        for i, s in enumerate(sorts):
            if s["column"] == name:
                arrow = "↑" if s["direction"] == "asc" else "↓"
                prio = f"{i + 1}" if len(sorts) > 1 else ""
                return f"{name} {arrow}{prio}"
        return name

    def _remember_modifiers(self, event):
        # команда заголовка не получает event — Shift запоминаем при нажатии
        self._shift = bool(event.state & 0x0001)

    def _on_heading(self, name: str):
        self.on_sort(name, self._shift)

    def _cell_at(self, event) -> Optional[tuple]:
        if self.tree.identify_region(event.x, event.y) != "cell":
            return None
        iid = self.tree.identify_row(event.y)
        col_id = self.tree.identify_column(event.x)  # '#1', '#2', ...
        if not iid or not col_id:
            return None
        col_index = int(col_id.lstrip("#")) - 1
        if not 0 <= col_index < len(self._columns):
            return None
        return int(iid), self._columns[col_index]

    def _on_double_click(self, event):
        target = self._cell_at(event)
        if target:
            self.on_edit(target[0], target[1]["name"])

    def _on_right_click(self, event):
        target = self._cell_at(event)
        if not target:
            return
        row_index, column = target
        self.tree.selection_set(str(row_index))
        self.menu.delete(0, "end")
        self.menu.add_command(label="Edit", command=lambda: self.on_edit(row_index, column["name"]))
        if column["nullable"]:
            self.menu.add_command(label="Set to NULL",
                                  command=lambda: self.on_set_null(row_index, column["name"]))
        self.menu.tk_popup(event.x_root, event.y_root)
