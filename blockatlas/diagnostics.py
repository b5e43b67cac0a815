"""Structured diagnostics collected from the ``blockatlas`` logger hierarchy."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List


ROOT_LOGGER = "blockatlas"


class BlockAtlasError(Exception):
    pass


class StrictModeError(BlockAtlasError):
    """Raised for programmer-error-class inputs when strict mode is enabled."""


@dataclass(slots=True, frozen=True)
class Diagnostic:
    level: str
    source: str
    message: str

    def to_dict(self) -> dict:
        return {"level": self.level, "source": self.source, "message": self.message}


class DiagnosticLog(logging.Handler):
    """Logging handler that keeps every record as a ``Diagnostic``."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self.records: List[Diagnostic] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(
            Diagnostic(level=record.levelname, source=record.name, message=record.getMessage())
        )

    def at_least(self, level: int) -> List[Diagnostic]:
        return [d for d in self.records if logging.getLevelName(d.level) >= level]

    @property
    def errors(self) -> List[Diagnostic]:
        return self.at_least(logging.ERROR)

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.records if d.level == "WARNING"]


@contextmanager
def capture_diagnostics(level: int = logging.DEBUG) -> Iterator[DiagnosticLog]:
    logger = logging.getLogger(ROOT_LOGGER)
    handler = DiagnosticLog(level)
    previous_level = logger.level
    if logger.level == logging.NOTSET or logger.level > level:
        logger.setLevel(level)
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)


def programmer_error(logger: logging.Logger, message: str, *, strict: bool) -> None:
    logger.error(message)
    if strict:
        raise StrictModeError(message)
