"""Run-tracking hooks: progress callbacks and structured stage logs."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

logger = logging.getLogger("wp_porter")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class RunReporter(Protocol):
    """Receives progress and log lines for an external run tracker."""

    def progress(self, step: str, percent: float, **counters: Any) -> None:
        ...

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class LoggingReporter:
    """Reporter used when no tracker is attached; writes to the package logger."""

    def progress(self, step: str, percent: float, **counters: Any) -> None:
        details = ", ".join(f"{key}={value}" for key, value in sorted(counters.items()))
        logger.info("[%3.0f%%] %s%s", percent, step, f" ({details})" if details else "")

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        suffix = f" {dict(context)}" if context else ""
        logger.log(_LEVELS.get(level.lower(), logging.INFO), "[%s] %s%s", stage, message, suffix)


class SafeReporter:
    """Wraps a tracker so its failures never interrupt the pipeline."""

    def __init__(self, reporter: Optional[RunReporter]) -> None:
        self._local = LoggingReporter()
        self._remote = reporter

    def progress(self, step: str, percent: float, **counters: Any) -> None:
        if self._remote is None:
            self._local.progress(step, percent, **counters)
            return
        try:
            self._remote.progress(step, percent, **counters)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Run reporter failed to record progress for %s", step)
            self._local.progress(step, percent, **counters)

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if self._remote is None:
            self._local.log(level, stage, message, context)
            return
        try:
            self._remote.log(level, stage, message, context)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Run reporter failed to record log line for %s", stage)
            self._local.log(level, stage, message, context)


def resolve_reporter(reporter: Optional[RunReporter]) -> SafeReporter:
    if isinstance(reporter, SafeReporter):
        return reporter
    return SafeReporter(reporter)
