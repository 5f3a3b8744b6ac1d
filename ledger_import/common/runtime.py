from __future__ import annotations

import uuid
from datetime import datetime


def generate_run_id() -> str:
    """Новый run_id (UUID4) для логов, отчёта и имён файлов запуска."""
    return str(uuid.uuid4())


def getNowIso() -> str:
    """Локальное время с timezone, ISO 8601."""
    return datetime.now().astimezone().isoformat()


def getDurationMs(startMonotonic: float, endMonotonic: float) -> int:
    return int((endMonotonic - startMonotonic) * 1000)
