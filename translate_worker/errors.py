"""Error types shared by the catalog client, translators and the job runner.

Review note:
- 执行循环只区分两类错误：QuitJob（结束整个任务）与其他异常（跳过当前章节）。
- 鉴权失败同时继承 QuitJob，凭据失效时后续章节没有继续的意义。
"""

from __future__ import annotations

from typing import Optional


class WorkerError(Exception):
    """Base error for this application."""


class QuitJob(WorkerError):
    """Raised to abandon the remaining work of a job."""


class CatalogError(WorkerError):
    """Raised when a catalog request fails or returns an unexpected body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CatalogAuthError(CatalogError, QuitJob):
    """Raised when the catalog rejects the job's credentials."""


class TranslatorConfigError(WorkerError):
    """Raised when a translator cannot be constructed."""


class TranslationError(WorkerError):
    """Raised when a translation backend call fails."""


class TranslatorAuthError(TranslationError, QuitJob):
    """Raised when a translation backend rejects its credential."""
