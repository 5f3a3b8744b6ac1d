from __future__ import annotations

SECRET_MASK = "***"
ELLIPSIS = "..."


def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Скрывает api key в stdout и логах: заданное значение -> '***', пустое -> None.
    """
    if not value:
        return None
    return SECRET_MASK


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """
    Назначение:
        Обрезает сообщения сервиса для логов и отчёта.

    Контракт:
        - Результат не длиннее limit; обрезанный текст заканчивается на '...'.
        - None возвращается как есть.
    """
    if value is None or len(value) <= limit:
        return value
    if limit <= len(ELLIPSIS):
        return value[:limit]
    return value[: limit - len(ELLIPSIS)] + ELLIPSIS
