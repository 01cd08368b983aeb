"""
Built-in cross-cutting logic - request logging filter and interceptor.
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar
from typing import Any, Optional

from .dispatch import Interceptor, NextHandler
from .request import RequestRecord

_log_id: ContextVar[Optional[str]] = ContextVar("errorpipe_log_id", default=None)


class LogFilter:
    """
    Logs every request passing through it with a short random id.

    Registered with the default dispatch types it only sees client requests;
    add ``RequestOrigin.INTERNAL_ERROR_REPLAY`` to log replays too.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("errorpipe.filter")
        self._urandom = os.urandom

    async def __call__(self, request: RequestRecord, next: NextHandler) -> Any:
        uid = self._urandom(4).hex()
        self.logger.info(f"REQUEST  [{uid}][{request.origin.value}][{request.path}]")
        try:
            return await next(request)
        except Exception as e:
            self.logger.info(f"EXCEPTION [{uid}] {type(e).__name__}: {e}")
            raise
        finally:
            self.logger.info(f"RESPONSE [{uid}][{request.origin.value}][{request.path}]")


class LogInterceptor(Interceptor):
    """Logs handler entry, completion and the error it completed with."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("errorpipe.interceptor")

    async def pre_handle(self, request: RequestRecord) -> bool:
        uid = os.urandom(4).hex()
        _log_id.set(uid)
        self.logger.info(f"REQUEST  [{uid}][{request.origin.value}][{request.path}]")
        return True

    async def post_handle(self, request: RequestRecord, response: Any) -> None:
        self.logger.info(f"postHandle [{_log_id.get()}] {type(response).__name__}")

    async def after_completion(
        self, request: RequestRecord, error: Optional[BaseException]
    ) -> None:
        uid = _log_id.get()
        self.logger.info(f"RESPONSE [{uid}][{request.origin.value}][{request.path}]")
        if error is not None:
            self.logger.error(f"afterCompletion error [{uid}]: {error!r}")
