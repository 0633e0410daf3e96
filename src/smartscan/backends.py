"""
Lazy optional backends
======================
Heavy collaborators (OCR engine, zero-shot model) are loaded on first use,
once, under a lock, with a bounded wait. A load that fails or exceeds
`init_timeout` leaves the backend permanently unavailable and the pipeline
continues in degraded mode.

The loaded handle is shared read-only between documents; subclasses must
not keep per-call state on it.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Optional

from loguru import logger

from smartscan.exceptions import BackendUnavailableError


STATE_UNINITIALIZED = "uninitialized"
STATE_READY = "ready"
STATE_FAILED = "failed"


class LazyBackend:
    """Base class: subclasses implement _load() and return the handle."""

    name = "backend"

    def __init__(self, init_timeout: float = 30.0, enabled: bool = True):
        self.init_timeout = float(init_timeout)
        self.enabled = enabled
        self.error: Optional[str] = None
        self._handle: Any = None
        self._state = STATE_UNINITIALIZED
        self._lock = threading.Lock()

    def _load(self) -> Any:
        raise NotImplementedError

    def initialize(self) -> bool:
        """
        Load the backend if not done yet. Safe to call repeatedly.

        Returns:
            True if the backend is ready
        """
        with self._lock:
            if self._state != STATE_UNINITIALIZED:
                return self._state == STATE_READY

            if not self.enabled:
                self._state = STATE_FAILED
                self.error = "disabled by configuration"
                logger.info(f"[{self.name}] disabled by configuration")
                return False

            logger.info(f"[{self.name}] Loading (timeout {self.init_timeout:.0f}s)...")
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name}-init")
            future = executor.submit(self._load)
            try:
                self._handle = future.result(timeout=self.init_timeout)
                self._state = STATE_READY
                logger.success(f"[{self.name}] ready")
            except FuturesTimeout:
                self._state = STATE_FAILED
                self.error = f"initialization timed out after {self.init_timeout:.0f}s"
                logger.warning(f"[{self.name}] {self.error}, continuing without it")
            except Exception as e:
                self._state = STATE_FAILED
                self.error = str(e)
                logger.warning(f"[{self.name}] initialization failed: {e}, continuing without it")
            finally:
                # Do not wait for a hung loader thread
                executor.shutdown(wait=False)

            return self._state == STATE_READY

    def is_available(self) -> bool:
        return self.initialize()

    @property
    def state(self) -> str:
        return self._state

    @property
    def handle(self) -> Any:
        if not self.initialize():
            raise BackendUnavailableError(self.name, self.error or "")
        return self._handle
