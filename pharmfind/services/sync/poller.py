"""Periodic reconciliation of the dispatch pool."""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from pharmfind.services.dispatch.models import DeliveryClaim
from pharmfind.services.sync.alerts import DRIVERS, AlertCenter

logger = logging.getLogger(__name__)

PoolSource = Callable[[], Awaitable[List[DeliveryClaim]]]


class DispatchPoller:
    """
    Re-fetches the available pool on a fixed interval and alerts on new deliveries.

    The first poll only records a baseline. Later polls compare the pool with
    the previous one and emit one alert when deliveries were added. Polling
    cannot guarantee that several observers each see an update; PoolEventBus
    is the push-based alternative.
    """

    def __init__(
        self,
        fetch_pool: PoolSource,
        alert_center: AlertCenter,
        interval_seconds: float = 15.0,
        recipient: str = DRIVERS,
    ):
        self.fetch_pool = fetch_pool
        self.alert_center = alert_center
        self.interval_seconds = interval_seconds
        self.recipient = recipient
        self._known: Optional[Set[str]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def known_pool_size(self) -> int:
        return len(self._known or ())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> List[str]:
        """
        Fetch the pool once and diff it against the previous poll.

        Returns:
            Delivery ids that appeared since the previous poll
        """
        pool = await self.fetch_pool()
        current = {claim.delivery_id for claim in pool}

        if self._known is None:
            self._known = current
            logger.debug(f"[POLLER] Baseline pool size {len(current)}")
            return []

        previous_size = len(self._known)
        new_ids = sorted(current - self._known)
        self._known = current

        if new_ids:
            count = len(new_ids)
            self.alert_center.emit(
                self.recipient,
                "new_deliveries",
                f"{count} new deliver{'y' if count == 1 else 'ies'} available",
            )
        logger.debug(f"[POLLER] Pool size {previous_size} -> {len(current)}, new: {new_ids}")
        return new_ids

    async def _run(self) -> None:
        logger.info(f"[POLLER] Started, interval {self.interval_seconds}s")
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                # Keep polling; the next tick retries against fresh state
                logger.error(
                    f"[POLLER] Poll failed - Error: {type(e).__name__}: {str(e)}",
                    exc_info=True,
                )
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start polling in the background."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop polling and wait for the loop to exit."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[POLLER] Stopped")
