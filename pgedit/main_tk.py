import logging
import tkinter as tk
from tkinter import ttk, messagebox

from pgedit.db.connections import Settings, load_settings, startup_healthcheck
from pgedit.db.errors import TableEditorError
from pgedit.extractors.postgres import PostgresTableSource
from pgedit.repositories.connection_repository import ConnectionRepository
from pgedit.services.fetcher import KeyedFetcher
from pgedit.services.table_service import TableService
from pgedit.state.table_session import TableSession

# виджеты
from pgedit.ui.changes_dialog import ChangesDialog
from pgedit.ui.cell_editor import CellEditor
from pgedit.ui.connection_bar import ConnectionBar
from pgedit.ui.dispatch import TkDispatcher
from pgedit.ui.filter_dialog import FilterDialog
from pgedit.ui.sidebar import Sidebar
from pgedit.ui.table_grid import TableGrid

logger = logging.getLogger(__name__)


class App(tk.Tk):
    def __init__(self, settings: Settings, repo: ConnectionRepository, service: TableService):
        super().__init__()
        self.title("PG Table Editor")
        self.geometry("1200x720")

        # зависимости/сервисы
        self.settings = settings
        self.repo = repo
        self.fetcher = KeyedFetcher(dispatch=TkDispatcher(self))
        self.session = TableSession(service, self.fetcher, page_size=settings.page_size)
        self.session.add_listener(self._render)
        # последняя операция — в строку статуса (колбэк приходит из фонового потока)
        service.on_logged = lambda entry: self.fetcher.dispatch(lambda: self._on_logged(entry))

        # верх: подключение
        self.conn_bar = ConnectionBar(
            parent=self,
            repo=self.repo,
            on_connect=self.session.connect,
            on_disconnect=self.session.disconnect,
            initial_uri=settings.default_uri,
        )
        self.conn_bar.pack(fill="x", padx=8, pady=6)

        self.lbl_conn_error = ttk.Label(self, foreground="#b00020")
        self.lbl_conn_error.pack(fill="x", padx=8)

        paned = ttk.PanedWindow(self, orient="horizontal")
        paned.pack(fill="both", expand=True, padx=8, pady=4)

        self.sidebar = Sidebar(paned, on_schema=self._on_schema, on_table=self._on_table)
        paned.add(self.sidebar, weight=1)

        main = ttk.Frame(paned)
        paned.add(main, weight=5)

        # тулбар
        bar = ttk.Frame(main)
        bar.pack(fill="x", pady=(0, 4))
        self.lbl_table = ttk.Label(bar, text="No table selected", font=("TkDefaultFont", 10, "bold"))
        self.lbl_table.pack(side="left")

        self.btn_apply = ttk.Button(bar, text="Apply Changes", command=self._apply_changes)
        self.btn_apply.pack(side="right")
        self.btn_changes = ttk.Button(bar, text="Show Changes (0)", command=self._show_changes)
        self.btn_changes.pack(side="right", padx=4)

        ttk.Label(bar, text="Offset:").pack(side="right", padx=(8, 2))
        self.var_offset = tk.StringVar(value="0")
        ent_offset = ttk.Entry(bar, textvariable=self.var_offset, width=7)
        ent_offset.pack(side="right")
        ent_offset.bind("<Return>", lambda e: self._set_paging())

        ttk.Label(bar, text="Limit:").pack(side="right", padx=(8, 2))
        self.var_limit = tk.StringVar(value=str(settings.page_size))
        ent_limit = ttk.Entry(bar, textvariable=self.var_limit, width=7)
        ent_limit.pack(side="right")
        ent_limit.bind("<Return>", lambda e: self._set_paging())

        self.btn_filter = ttk.Button(bar, text="Filter", command=self._open_filters)
        self.btn_clear_sort = ttk.Button(bar, text="Clear Sort", command=self.session.clear_sorts)
        self.btn_clear_sort.pack(side="right", padx=4)
        self.btn_filter.pack(side="right", padx=4)

        # сетка
        self.grid_view = TableGrid(
            main,
            on_sort=self._on_sort,
            on_edit=self._on_edit,
            on_set_null=self._on_set_null,
        )
        self.grid_view.pack(fill="both", expand=True)

        # пейджер + статус
        pager = ttk.Frame(main)
        pager.pack(fill="x", pady=4)
        self.btn_prev = ttk.Button(pager, text="◀ Previous", command=self.session.previous_page)
        self.btn_prev.pack(side="left")
        self.btn_next = ttk.Button(pager, text="Next ▶", command=self.session.next_page)
        self.btn_next.pack(side="left", padx=4)
        self.lbl_status = ttk.Label(pager, text="")
        self.lbl_status.pack(side="left", padx=8)
        self.lbl_last_op = ttk.Label(pager, text="", foreground="#666666")
        self.lbl_last_op.pack(side="right")
        self.lbl_error = ttk.Label(main, foreground="#b00020", wraplength=900, justify="left")
        self.lbl_error.pack(fill="x")

        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self._render()

    # --- callbacks wiring ---

    def _on_schema(self, schema: str):
        # повторный клик по той же схеме не сбрасывает таблицу
        if schema != self.session.schema:
            self.session.select_schema(schema)

    def _on_table(self, table: str):
        if table == self.session.table:
            return
        if self.session.store and not messagebox.askyesno(
            "Unsaved changes",
            f"{len(self.session.store)} row(s) have unsaved changes. Discard them?",
        ):
            self._render()
            return
        self.session.select_table(table)

    def _on_sort(self, column: str, multi: bool):
        self.session.toggle_sort(column, multi)

    def _set_paging(self):
        try:
            self.session.query.set_limit(self.var_limit.get())
            self.session.query.set_offset(self.var_offset.get())
        except TableEditorError as e:
            messagebox.showerror("Paging", str(e))
            return
        self.session.refresh()

    def _open_filters(self):
        if not self.session.table:
            return
        FilterDialog(
            self,
            self.session.query,
            [c["name"] for c in self.session.columns],
            on_apply=self.session.apply_filters,
        )

    def _row(self, row_index: int):
        rows = self.session.display_rows()
        return rows[row_index] if 0 <= row_index < len(rows) else None

    def _on_edit(self, row_index: int, column: str):
        row = self._row(row_index)
        if row is None:
            return
        if not self.session.can_edit:
            messagebox.showinfo(
                "Read-only",
                "Primary keys are still loading." if self.session.primary_keys is None
                else "This table has no primary key; editing is disabled.",
            )
            return
        info = self.session.column(column)
        value = row.values.get(column)
        CellEditor(
            self,
            column=column,
            column_type=info["type"],
            kind=self.session.column_kind(column, value),
            value=value,
            nullable=info["nullable"],
            on_update=lambda raw: self.session.edit_cell(row, column, raw),
        )

    def _on_set_null(self, row_index: int, column: str):
        row = self._row(row_index)
        if row is None:
            return
        try:
            self.session.set_null(row, column)
        except TableEditorError as e:
            messagebox.showerror("Set to NULL", str(e))

    def _show_changes(self):
        ChangesDialog(
            self,
            self.session.store.list(),
            on_apply=self._apply_changes,
            on_discard=self.session.discard_changes,
        )

    def _apply_changes(self):
        if not self.session.store or self.session.applying:
            return
        try:
            self.session.apply_changes(on_done=self._on_applied)
        except TableEditorError as e:
            messagebox.showerror("Apply", str(e))

    def _on_applied(self, result: dict):
        if not result["ok"]:
            messagebox.showerror("Apply failed", str(result["error"]))

    def _on_logged(self, entry: dict):
        state = "ok" if entry["ok"] else entry["error"].kind + " error"
        self.lbl_last_op.configure(text=f"{entry['op']}: {state}, {entry['duration_ms']} ms")

    def _on_close(self):
        self.fetcher.shutdown()
        self.destroy()

    # --- отрисовка ---

    def _render(self):
        s = self.session
        self.conn_bar.set_state(s.connected, s.connecting)
        self.lbl_conn_error.configure(text=s.connect_error or "")
        self.sidebar.render(s.schemas, s.schema, s.tables, s.table, s.loading_tables)

        if s.table:
            suffix = "" if s.primary_keys is None else (
                f"  PK: {', '.join(s.primary_keys)}" if s.primary_keys else "  (read-only: no primary key)"
            )
            self.lbl_table.configure(text=f"{s.schema}.{s.table}{suffix}")
        else:
            self.lbl_table.configure(text="No table selected")

        n_filters = len(s.query.active_filters)
        self.btn_filter.configure(text=f"Filter ({n_filters})" if n_filters else "Filter")
        self.btn_filter.state(["!disabled"] if s.table else ["disabled"])
        self.btn_clear_sort.state(["!disabled"] if s.query.sorts else ["disabled"])

        self.var_limit.set(str(s.query.limit))
        self.var_offset.set(str(s.query.offset))

        n_changes = len(s.store)
        self.btn_changes.configure(text=f"Show Changes ({n_changes})")
        if s.applying:
            self.btn_apply.configure(text="Applying...")
            self.btn_apply.state(["disabled"])
        else:
            self.btn_apply.configure(text="Apply Changes")
            self.btn_apply.state(["!disabled"] if n_changes else ["disabled"])

        if s.table_data is not None:
            self.grid_view.render(s.columns, s.display_rows(), s.query.sorts)
        else:
            self.grid_view.clear()

        self.btn_prev.state(["!disabled"] if s.table and s.query.offset > 0 else ["disabled"])
        self.btn_next.state(["!disabled"] if s.has_next_page else ["disabled"])
        if s.loading_data:
            self.lbl_status.configure(text="Loading...")
        elif s.table_data is not None:
            shown = len(s.table_data["rows"])
            start = s.query.offset + 1 if shown else 0
            self.lbl_status.configure(text=f"Rows {start}–{s.query.offset + shown}")
        else:
            self.lbl_status.configure(text="")

        errors = [e for e in (s.error, s.apply_error) if e]
        self.lbl_error.configure(text="\n".join(errors))


def main():
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    startup_healthcheck(settings)

    repo = ConnectionRepository(settings.connections_db)
    repo.load()
    service = TableService(PostgresTableSource(connect_timeout=settings.connect_timeout))
    app = App(settings, repo, service)
    app.mainloop()


if __name__ == "__main__":
    main()
