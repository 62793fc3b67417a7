"""Error kinds raised by the pipeline stages."""

from __future__ import annotations

from typing import Any, Dict, Optional


class PorterError(Exception):
    """Base class carrying the offending URL/filename and the original cause."""

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        filename: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.filename = filename
        self.context: Dict[str, Any] = context
        if cause is not None:
            self.__cause__ = cause

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause__

    def describe(self) -> str:
        """Message plus the root cause, suitable for summaries."""
        if self.__cause__ is not None and str(self.__cause__) not in self.message:
            return f"{self.message}: {self.__cause__}"
        return self.message


class FetchError(PorterError):
    """Navigation, timeout, HTTP status or missing content region."""

    kind = "fetch"


class AssetError(PorterError):
    """Image download, empty payload or unusable format."""

    kind = "asset"


class SanitizationError(PorterError):
    kind = "sanitize"


class ExportError(PorterError):
    """No documents to export or the export file could not be written."""

    kind = "export"
