from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict


@dataclass
class AppError(Exception):
    """
    Назначение:
        Базовая ошибка приложения с категорией и стабильным кодом для логов и отчёта.

    Поля:
        category: слой-источник (api, source, import)
        code: значение ErrorCode или HTTP_<status>
        details: контекст для отчёта (путь файла, статус, индекс строки)
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = ["AppError"]
