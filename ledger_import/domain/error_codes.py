from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов диагностики и ошибок импорта.
    """

    REQUIRED_FIELD_MISSING = "REQUIRED_FIELD_MISSING"
    MAX_LENGTH_EXCEEDED = "MAX_LENGTH_EXCEEDED"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    INVALID_DECIMAL = "INVALID_DECIMAL"
    INVALID_ENUM = "INVALID_ENUM"
    INVALID_COLUMN_COUNT = "INVALID_COLUMN_COUNT"

    SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"
    SOURCE_FORMAT_ERROR = "SOURCE_FORMAT_ERROR"
    SOURCE_CHANGED = "SOURCE_CHANGED"

    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    INVALID_JSON = "INVALID_JSON"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    REJECTED = "REJECTED"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

    @classmethod
    def from_status(cls, status_code: int | None) -> "ErrorCode":
        """
        Назначение:
            Подбор общего кода по HTTP-статусу.
        """
        if status_code == 401:
            return cls.UNAUTHORIZED
        if status_code == 403:
            return cls.FORBIDDEN
        return cls.HTTP_ERROR
