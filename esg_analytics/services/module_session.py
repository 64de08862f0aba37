from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from ..models.analytics import ModuleAnalytics
from ..models.config_models import ModuleConfig
from ..models.load_result import LoadErrorType, LoadResult, LoadStatus
from .analytics import compute_module_analytics, empty_analytics
from .record_loader import MSG_FETCH_FAILED

"""Per-module load state with refresh fencing.

Every ``begin_load`` takes a new generation ticket. A completion that carries
an older ticket is dropped, so a slow earlier load cannot overwrite the result
of a newer one. The payload is rebuilt in full on each accepted completion.
"""

__all__ = [
    "ModuleSession",
]

logger = logging.getLogger(__name__)


class ModuleSession:
    """Holds the current ``ModuleAnalytics`` of one module (idle until the first load)."""

    def __init__(self, module: ModuleConfig) -> None:
        self.module = module
        self._lock = threading.Lock()
        self._generation = 0
        self._status = LoadStatus.IDLE
        self._current = empty_analytics(module)

    @property
    def status(self) -> LoadStatus:
        return self._status

    @property
    def current(self) -> ModuleAnalytics:
        return self._current

    @property
    def generation(self) -> int:
        return self._generation

    def begin_load(self) -> int:
        with self._lock:
            self._generation += 1
            self._status = LoadStatus.LOADING
            return self._generation

    def complete_load(self, ticket: int, result: LoadResult) -> bool:
        """Publish ``result`` if ``ticket`` is still the newest; return whether it was applied."""
        analytics = compute_module_analytics(self.module, result)
        with self._lock:
            if ticket != self._generation:
                logger.debug(
                    "module=%s stale load dropped (ticket=%d current=%d)",
                    self.module.name,
                    ticket,
                    self._generation,
                )
                return False
            self._current = analytics
            self._status = analytics.status
            return True

    def refresh(self, loader: Callable[[], LoadResult]) -> ModuleAnalytics:
        """Run ``loader`` under a fresh ticket and return the current payload.

        A loader that raises is published as a FETCH_FAILED error, so the
        session never stays in LOADING.
        """
        ticket = self.begin_load()
        try:
            result = loader()
        except Exception:
            logger.exception("module=%s loader raised", self.module.name)
            result = LoadResult.failure(LoadErrorType.FETCH_FAILED, MSG_FETCH_FAILED)
        self.complete_load(ticket, result)
        return self._current
