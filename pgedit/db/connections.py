import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from dotenv import load_dotenv

from pgedit.db.errors import DbConnectionError

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    default_uri: str
    page_size: int
    connect_timeout: int
    connections_db: str
    log_level: str
    startup_check: bool
    startup_strict: bool


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[config] %s=%r is not an integer, using %s", name, raw, default)
        return default


def load_settings() -> Settings:
    """
    Читает настройки из окружения (.env уже подгружен при импорте модуля).
    """
    connections_db = os.getenv("PGEDIT_CONNECTIONS_DB") or os.path.join(
        os.path.expanduser("~"), ".pgedit", "connections.db"
    )
    return Settings(
        default_uri=os.getenv("PGEDIT_DEFAULT_URI", "").strip(),
        page_size=max(1, _int_env("PGEDIT_PAGE_SIZE", 100)),
        connect_timeout=max(1, _int_env("PGEDIT_CONNECT_TIMEOUT", 5)),
        connections_db=connections_db,
        log_level=os.getenv("PGEDIT_LOG_LEVEL", "INFO").upper(),
        startup_check=os.getenv("STARTUP_CHECK", "1") == "1",
        startup_strict=os.getenv("STARTUP_STRICT", "0") == "1",
    )


# кеш движков по строке подключения
_engines: Dict[str, Engine] = {}


def mask_uri(uri: str) -> str:
    """URI для логов: пароль заменён на ***."""
    try:
        return make_url(normalize_uri(uri)).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid uri>"


def normalize_uri(uri: str) -> str:
    """
    'postgres://...' и 'postgresql://...' -> 'postgresql+psycopg2://...'
    Остальные схемы (sqlite и т.п.) не трогаем.
    """
    uri = (uri or "").strip()
    for prefix in ("postgresql://", "postgres://"):
        if uri.startswith(prefix):
            return "postgresql+psycopg2://" + uri[len(prefix):]
    return uri


def get_engine(uri: str, *, connect_timeout: Optional[int] = None) -> Engine:
    """
    Возвращает (или создаёт) SQLAlchemy Engine для строки подключения.
    """
    if not uri or not uri.strip():
        raise DbConnectionError("Connection URI is empty")
    if uri in _engines:
        return _engines[uri]

    dsn = normalize_uri(uri)
    try:
        url = make_url(dsn)
    except ArgumentError as e:
        raise DbConnectionError(f"Invalid connection URI: {e}", cause=e) from e

    connect_args = {}
    if url.get_backend_name() == "postgresql":
        timeout = connect_timeout if connect_timeout is not None else load_settings().connect_timeout
        connect_args["connect_timeout"] = timeout

    logger.debug("[db] new engine for %s", mask_uri(uri))
    engine = create_engine(
        url,
        echo=False,
        pool_pre_ping=True,             # пинг перед выдачей соединения из пула
        connect_args=connect_args,
    )
    _engines[uri] = engine
    return engine


def dispose_engine(uri: str) -> None:
    """Закрыть пул для URI (например, при переподключении)."""
    engine = _engines.pop(uri, None)
    if engine is not None:
        engine.dispose()


def test_connection(uri: str) -> bool:
    """
    Пинг базы: выполняет SELECT 1. Возвращает True/False.
    """
    try:
        eng = get_engine(uri)
        t0 = time.perf_counter()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        dt = (time.perf_counter() - t0) * 1000
        logger.info("[db] OK  %s (%.1f ms)", mask_uri(uri), dt)
        return True
    except Exception as e:
        logger.error("[db] ERR %s: %s", mask_uri(uri), e)
        return False


def startup_healthcheck(settings: Optional[Settings] = None) -> None:
    """
    Автопроверка соединения при старте:
    - пингует PGEDIT_DEFAULT_URI (если задан)
    - при STARTUP_STRICT=1 падает, если пинг не прошёл
    """
    settings = settings or load_settings()
    if not settings.startup_check or not settings.default_uri:
        return

    logger.info("[startup] health check for %s", mask_uri(settings.default_uri))
    if test_connection(settings.default_uri):
        return

    msg = "[startup] default connection failed"
    if settings.startup_strict:
        raise DbConnectionError(msg)
    logger.warning(msg)
