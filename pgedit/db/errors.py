# pgedit/db/errors.py
from __future__ import annotations


class TableEditorError(Exception):
    """Базовая ошибка редактора таблиц."""

    kind = "error"

    def __init__(self, message: str, *, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class DbConnectionError(TableEditorError):
    """Не удалось подключиться / аутентифицироваться."""

    kind = "connection"


class QueryError(TableEditorError):
    """Кривой фильтр, несовпадение оператора и типа, плохая пагинация."""

    kind = "query"


class UpdateError(TableEditorError):
    """Коммит изменений упал (транспорт или ограничения БД)."""

    kind = "update"


class EditRejectedError(TableEditorError):
    """
    Правку нельзя принять в буфер:
      - у таблицы нет первичного ключа;
      - NULL в NOT NULL колонку;
      - значение не парсится под тип колонки.
    """

    kind = "edit"
