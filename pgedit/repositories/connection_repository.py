# pgedit/repositories/connection_repository.py
import logging
import os
from typing import Dict, List, Optional

from sqlalchemy import text
from pgedit.db.connections import get_engine, load_settings

logger = logging.getLogger(__name__)


class ConnectionRepository:
    """
    Сохранённые подключения: плоский словарь имя -> строка подключения
    в локальном SQLite-файле. Ядро буфера правок сюда не ходит.

    connections заполняется только явным load(); save()/delete() сразу
    пишут в файл и обновляют словарь.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or load_settings().connections_db
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)
        self.engine = get_engine(f"sqlite:///{self.path}")
        self.connections: Dict[str, str] = {}
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS saved_connections (
                    name       TEXT PRIMARY KEY,
                    uri        TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))

    def load(self) -> Dict[str, str]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text("SELECT name, uri FROM saved_connections ORDER BY name")
            ).mappings().all()
        self.connections = {r["name"]: r["uri"] for r in rows}
        logger.debug("[connections] loaded %d saved connection(s)", len(self.connections))
        return dict(self.connections)

    def save(self, name: str, uri: str) -> None:
        name = (name or "").strip()
        if not name:
            raise ValueError("Connection name is empty")
        if not uri or not uri.strip():
            raise ValueError("Connection URI is empty")
        with self.engine.begin() as conn:
            conn.execute(
                text("""
                    INSERT INTO saved_connections (name, uri)
                    VALUES (:n, :u)
                    ON CONFLICT (name) DO UPDATE
                       SET uri = excluded.uri,
                           updated_at = CURRENT_TIMESTAMP
                """),
                {"n": name, "u": uri.strip()},
            )
        self.connections[name] = uri.strip()

    def delete(self, name: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("DELETE FROM saved_connections WHERE name = :n"), {"n": name})
        self.connections.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self.connections)

    def get(self, name: str) -> Optional[str]:
        return self.connections.get(name)
