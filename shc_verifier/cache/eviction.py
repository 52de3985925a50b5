# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
This module contains the periodical reclamation of expired cache entries.
Eviction is pure storage cleanup, reads never depend on it.
"""

import contextlib
import logging
import threading

from shc_verifier.cache.expiring_cache import ExpiringCache
from shc_verifier.exception import CacheUnavailable

_logger = logging.getLogger(__name__)


@contextlib.contextmanager
def eviction_lifespan(cache: ExpiringCache, interval: float) -> contextlib.AbstractContextManager:
    """
    Lifespan managing the eviction timer.
    Runs once shortly after creating to start from a clean state.
    """
    timer = EvictionTimer(cache, interval)
    timer.set_immediate_timer()
    yield timer
    timer.cancel_timer()


class EvictionTimer:
    """Timer, once started will run every interval seconds, rescheduling itself afterwards"""

    _timer: threading.Timer = None

    def __init__(self, cache: ExpiringCache, interval: float) -> None:
        self._cache = cache
        self._interval = interval
        self._lock = threading.Lock()
        self._cancelled = False

    def _evict(self) -> None:
        """Deletes the expired cache entries and starts a new timer."""
        try:
            evicted = self._cache.evict_expired()
            _logger.info(f"Evicted {evicted} expired cache entries")
        except CacheUnavailable:
            _logger.exception("Eviction of expired cache entries failed, retrying next interval")
        self.set_timer(self._interval)

    def set_timer(self, time: float) -> None:
        """Starts the timer. Cancels other instances of the timer"""
        with self._lock:
            if self._cancelled:
                return
            if self._timer:
                self._timer.cancel()
            _logger.debug(f"Next cache eviction in {time=}")
            self._timer = threading.Timer(time, self._evict)
            self._timer.daemon = True
            self._timer.start()

    def set_immediate_timer(self) -> None:
        """Runs the eviction immediatly. Reschedules it after normally"""
        self.set_timer(1)

    def cancel_timer(self) -> None:
        """Stops the timer thread."""
        with self._lock:
            self._cancelled = True
            if self._timer:
                self._timer.cancel()
