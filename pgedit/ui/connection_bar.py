import tkinter as tk
from tkinter import ttk, messagebox, simpledialog
from typing import Callable, Optional

from pgedit.repositories.connection_repository import ConnectionRepository


class ConnectionBar(ttk.Frame):
    """
    Верхняя панель:
    - выбор сохранённого подключения
    - строка подключения + Connect
    - Save / Delete сохранённых подключений
    """

    def __init__(
        self,
        parent: tk.Misc,
        repo: ConnectionRepository,
        on_connect: Callable[[str], None],
        on_disconnect: Optional[Callable[[], None]] = None,
        initial_uri: str = "",
    ):
        super().__init__(parent)
        self.repo = repo
        self.on_connect = on_connect
        self.on_disconnect = on_disconnect

        ttk.Label(self, text="Saved:").pack(side="left")
        self.cmb_saved = ttk.Combobox(self, values=self.repo.names(), state="readonly", width=18)
        self.cmb_saved.pack(side="left", padx=6)
        self.cmb_saved.bind("<<ComboboxSelected>>", self._on_saved_selected)

        self.var_uri = tk.StringVar(value=initial_uri)
        ent = ttk.Entry(self, textvariable=self.var_uri, width=60)
        ent.pack(side="left", fill="x", expand=True, padx=6)
        ent.bind("<Return>", lambda e: self._connect())

        self.btn_connect = ttk.Button(self, text="Connect", command=self._connect)
        self.btn_connect.pack(side="left", padx=4)
        self.btn_disconnect = ttk.Button(self, text="Disconnect", command=self._disconnect, state="disabled")
        self.btn_disconnect.pack(side="left", padx=4)
        ttk.Button(self, text="Save", command=self._save_dialog).pack(side="left", padx=4)
        ttk.Button(self, text="Delete", command=self._delete_selected).pack(side="left", padx=4)

    # --- public ---

    def refresh_saved(self):
        cur = self.cmb_saved.get()
        self.cmb_saved["values"] = self.repo.names()
        if cur not in self.repo.connections:
            self.cmb_saved.set("")

    def set_state(self, connected: bool, connecting: bool):
        if connecting:
            self.btn_connect.configure(text="Connecting...", state="disabled")
        elif connected:
            self.btn_connect.configure(text="Reconnect", state="normal")
        else:
            self.btn_connect.configure(text="Connect", state="normal")
        self.btn_disconnect.configure(state="normal" if connected and self.on_disconnect else "disabled")

    # --- private ---

    def _on_saved_selected(self, _evt=None):
        uri = self.repo.get(self.cmb_saved.get())
        if uri:
            self.var_uri.set(uri)

    def _connect(self):
        uri = self.var_uri.get().strip()
        if not uri:
            messagebox.showwarning("Connect", "Enter a connection string first.")
            return
        self.on_connect(uri)

    def _disconnect(self):
        if self.on_disconnect:
            self.on_disconnect()

    def _save_dialog(self):
        uri = self.var_uri.get().strip()
        if not uri:
            messagebox.showwarning("Save connection", "Enter a connection string first.")
            return
        name = simpledialog.askstring("Save connection", "Name:", initialvalue=self.cmb_saved.get())
        if not name:
            return
        try:
            self.repo.save(name, uri)
        except Exception as e:
            messagebox.showerror("Save error", str(e))
            return
        self.refresh_saved()
        self.cmb_saved.set(name.strip())

    def _delete_selected(self):
        name = self.cmb_saved.get()
        if not name:
            messagebox.showwarning("Delete connection", "Choose a saved connection first.")
            return
        if not messagebox.askyesno("Delete connection", f"Delete saved connection '{name}'?"):
            return
        try:
            self.repo.delete(name)
        except Exception as e:
            messagebox.showerror("Delete error", str(e))
            return
        self.refresh_saved()
