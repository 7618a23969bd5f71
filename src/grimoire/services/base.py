"""Base class for orchestration workflows.

A workflow takes one request object and returns one outcome. It raises
``GrimoireError`` for expected failures; ``__call__`` records the failure code
at DEBUG and hands the error to ``_handle_failure``, which re-raises so the
command boundary can report it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from .. import log
from .errors import GrimoireError

R = TypeVar("R")
T = TypeVar("T")


class BaseService(ABC, Generic[R, T]):
    """Callable workflow over a request of type ``R`` producing ``T``."""

    @property
    def workflow_name(self) -> str:
        return type(self).__name__

    def __call__(self, request: R) -> T:
        try:
            return self._run(request)
        except GrimoireError as exc:
            log.debug(f"{self.workflow_name} failed [{exc.code}]: {exc}")
            return self._handle_failure(exc)

    @abstractmethod
    def _run(self, request: R) -> T: ...

    def _handle_failure(self, error: GrimoireError) -> T:
        raise error
