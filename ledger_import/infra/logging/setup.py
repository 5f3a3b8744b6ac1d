from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, TextIO

LOGGER_PREFIX = "ledgerImport"
LOG_FORMAT = "%(asctime)s %(levelname)s runId=%(runId)s comp=%(component)s msg=%(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

LEVELS = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


class RunContextFilter(logging.Filter):
    """
    Назначение:
        Подставляет runId и component в записи, где их не передали через extra,
        иначе форматтер упадёт с KeyError.
    """

    def __init__(self, runId: str, defaultComponent: str = "core"):
        super().__init__()
        self.runId = runId
        self.defaultComponent = defaultComponent

    def filter(self, record: logging.LogRecord) -> bool:
        record.runId = getattr(record, "runId", self.runId)
        record.component = getattr(record, "component", self.defaultComponent)
        return True


class TeeToLogger:
    """
    Назначение:
        Stream-обёртка: пишет в исходный поток и построчно дублирует вывод в лог.

    Инварианты:
        - Пустые строки в лог не попадают.
        - Незавершённая строка уходит в лог на flush().
    """

    def __init__(self, stream: TextIO, logger: logging.Logger, level: int, runId: str, component: str):
        self.stream = stream
        self.logger = logger
        self.level = level
        self.runId = runId
        self.component = component
        self.pending = ""

    def write(self, s: str) -> int:
        written = self.stream.write(s)
        self.pending += s
        *lines, self.pending = self.pending.split("\n")
        for line in lines:
            self._emit(line)
        return written

    def flush(self) -> None:
        self.stream.flush()
        self._emit(self.pending)
        self.pending = ""

    def _emit(self, line: str) -> None:
        if line.strip():
            logEvent(self.logger, self.level, self.runId, self.component, line.rstrip())


def mapLogLevel(levelName: str) -> int:
    """ERROR|WARN|INFO|DEBUG -> уровень logging; иначе ValueError."""
    level = LEVELS.get((levelName or "").strip().upper())
    if level is None:
        raise ValueError(f"Unsupported log level: {levelName}")
    return level


def createCommandLogger(commandName: str, logDir: str, runId: str, logLevel: str) -> tuple[logging.Logger, str]:
    """
    Назначение:
        Логгер одного запуска команды с собственным файлом.

    Выходные данные:
        (logger, logFilePath), файл <logDir>/<commandName>_<runId>.log

    Ограничения:
        - Логгер не передаёт записи корневому; повторный вызов с тем же runId
          пересоздаёт обработчик.
    """
    level = mapLogLevel(logLevel)
    Path(logDir).mkdir(parents=True, exist_ok=True)
    logFilePath = str(Path(logDir) / f"{commandName}_{runId}.log")

    logger = logging.getLogger(f"{LOGGER_PREFIX}.{commandName}.{runId}")
    closeCommandLogger(logger)
    logger.propagate = False
    logger.setLevel(level)

    handler = logging.FileHandler(logFilePath, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    handler.addFilter(RunContextFilter(runId=runId))
    logger.addHandler(handler)
    return logger, logFilePath


def closeCommandLogger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


@contextmanager
def teeStdStreams(logger: logging.Logger, runId: str) -> Iterator[None]:
    """
    Назначение:
        На время команды дублирует stdout (INFO) и stderr (ERROR) в лог запуска.
        Исходные потоки восстанавливаются при любом исходе.
    """
    originalStdout, originalStderr = sys.stdout, sys.stderr
    stdout = TeeToLogger(originalStdout, logger, logging.INFO, runId, "stdout")
    stderr = TeeToLogger(originalStderr, logger, logging.ERROR, runId, "stderr")
    sys.stdout, sys.stderr = stdout, stderr
    try:
        yield
    finally:
        stdout.flush()
        stderr.flush()
        sys.stdout, sys.stderr = originalStdout, originalStderr


def logEvent(logger: logging.Logger, level: int, runId: str, component: str, message: str) -> None:
    logger.log(level, message, extra={"runId": runId, "component": component})
