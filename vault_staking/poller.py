"""Timer-driven refresh of snapshots.

Pollers run as their own ``asyncio`` tasks.
They are never paused by in-flight transactions.
"""

import asyncio
import datetime
import logging

from vault_staking.errors import ReadError
from vault_staking.snapshot import SnapshotStore


logger = logging.getLogger(__name__)


class Poller:
    """Refresh a :py:class:`SnapshotStore` every ``interval``.

    - Refreshes immediately when the store is invalidated

    - Read failures are recorded in the store, marking it stale, and polling continues

    - Any other failure is logged with its traceback and polling continues

    Example:

    .. code-block:: python

        poller = Poller(session.balances, datetime.timedelta(seconds=5))
        poller.start()
        ...
        await poller.stop()

    """

    def __init__(self, store: SnapshotStore, interval: datetime.timedelta):
        assert isinstance(interval, datetime.timedelta), f"Got {type(interval)}"
        assert interval.total_seconds() > 0
        self.store = store
        self.interval = interval
        self.task: asyncio.Task | None = None

        #: How many refreshes have been attempted
        self.cycles = 0

    def __repr__(self):
        return f"<Poller {self.store.name} every {self.interval}>"

    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def poll_once(self):
        """Run one refresh cycle."""
        self.cycles += 1
        try:
            await self.store.refresh()
        except ReadError:
            # Store keeps the stale value and the error
            pass
        except Exception as e:
            logger.exception("Poller %s cycle %d crashed, continuing: %s", self, self.cycles, e)

    async def run(self):
        """Poll until cancelled."""
        logger.info("Starting poller %s", self)
        while True:
            await self.poll_once()
            try:
                await asyncio.wait_for(self.store.refresh_requested.wait(), timeout=self.interval.total_seconds())
            except asyncio.TimeoutError:
                pass
            self.store.refresh_requested.clear()

    def start(self) -> asyncio.Task:
        assert not self.is_running(), f"Already running: {self}"
        self.task = asyncio.create_task(self.run(), name=f"poller-{self.store.name}")
        return self.task

    async def stop(self):
        if self.task is None:
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped poller %s after %d cycles", self, self.cycles)
        self.task = None
