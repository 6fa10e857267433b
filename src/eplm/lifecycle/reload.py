"""
Reload Scheduler

Coalesces lifecycle operations that complete within a debounce window into a
single host process reload.
"""

import asyncio
from typing import Any, Callable, Optional

from ..core.logging import get_logger
from .interfaces import ProcessManager

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_MS = 3000

# (delay_seconds, callback) -> handle with cancel(); loop.call_later by default
TimerFactory = Callable[[float, Callable[[], None]], Any]


class ReloadScheduler:
    """
    Debounced reload of the host process.

    One instance is shared by every lifecycle operation in the process. Each
    ``arm()`` (re)starts the debounce timer, so any number of calls inside the
    window produce exactly one reload once the window elapses.
    """

    def __init__(
        self,
        process_manager: ProcessManager,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        app_name: Optional[str] = None,
        timer_factory: Optional[TimerFactory] = None,
    ):
        """
        Initialize reload scheduler

        Args:
            process_manager: Host process manager to reload
            debounce_ms: Debounce window in milliseconds
            app_name: Application name passed to the process manager
            timer_factory: Replacement for ``loop.call_later`` (fake clocks)
        """
        self.process_manager = process_manager
        self.debounce_ms = debounce_ms
        self.app_name = app_name
        self._timer_factory = timer_factory

        self._armed = False
        self._handle: Optional[Any] = None
        self._inflight: Optional[asyncio.Task] = None
        self.reload_count = 0

    @property
    def armed(self) -> bool:
        """Whether a reload is pending or running."""
        return self._armed

    def arm(self) -> None:
        """Schedule a reload, extending the window if one is already pending."""
        if self._handle is not None:
            logger.info("Reload already scheduled, extending debounce timer...")
            self._handle.cancel()
            self._handle = None
        else:
            logger.info("Scheduling host reload...")

        self._armed = True
        self._handle = self._call_later(self.debounce_ms / 1000.0, self._on_timer)

    def cancel(self) -> None:
        """Disarm a pending reload that has not fired yet."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._inflight is None or self._inflight.done():
            self._armed = False

    async def drain(self) -> None:
        """Wait for a reload that has already fired to finish."""
        if self._inflight is not None:
            await asyncio.shield(self._inflight)

    def _call_later(self, delay: float, callback: Callable[[], None]) -> Any:
        if self._timer_factory is not None:
            return self._timer_factory(delay, callback)
        return asyncio.get_running_loop().call_later(delay, callback)

    def _on_timer(self) -> None:
        self._handle = None
        self._inflight = asyncio.get_running_loop().create_task(self._fire())

    async def _fire(self) -> None:
        try:
            logger.info("Executing scheduled host reload...")
            await self._reload()
        except Exception as e:
            logger.error(f"Failed to reload host after scheduling: {e}")
        finally:
            self.reload_count += 1
            # An arm() during the reload started a new cycle
            if self._handle is None:
                self._armed = False

    async def _reload(self) -> None:
        if not self.process_manager.is_available():
            logger.warning(
                "Process manager is not available. Extension installed but requires "
                "manual restart to take effect."
            )
            return

        result = await self.process_manager.reload(self.app_name)
        if result.success:
            logger.info("Host process reloaded successfully")
        else:
            logger.warning(
                f"Failed to reload host process: {result.message}. "
                "Extension installed but requires manual restart."
            )
