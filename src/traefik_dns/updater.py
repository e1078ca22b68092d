"""Reconciliation loop: keep the provider's CNAMEs in line with the proxy's routes."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, List, Optional, Sequence, Set

from .dns import DNSProvider
from .errors import ProviderError, RouterError
from .router import Router
from .utils import is_host_excluded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateResult:
    """Hosts created and deleted by one successful pass."""

    created: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)


def next_tick_after(previous: float, now: float, interval: float) -> float:
    """Next tick deadline on the ``previous + k * interval`` grid, strictly after ``now``.

    Ticks missed while a pass or the loop itself overran are skipped, never queued.
    """
    next_tick = previous + interval
    if next_tick > now:
        return next_tick
    missed = math.floor((now - next_tick) / interval) + 1
    return next_tick + missed * interval


async def fan_out(aws: Iterable[Awaitable[Any]]) -> None:
    """Run ``aws`` concurrently and wait for all of them.

    The first failure cancels the siblings still in flight and is re-raised
    once they have finished unwinding, so nothing from a failed batch keeps
    running after the caller has moved on.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class Updater:
    """Periodically reconciles ``provider`` against ``router``.

    Observed state (the hosts believed to have a record) starts empty and is
    only replaced after a pass has confirmed every create and delete. A failed
    pass may leave part of its creates/deletes applied; nothing is rolled back,
    the next pass simply tries again.
    """

    def __init__(
        self,
        provider: DNSProvider,
        router: Router,
        update_interval: float,
        exclude_patterns: Sequence[re.Pattern] = (),
    ):
        if update_interval <= 0:
            raise ValueError("update_interval must be positive")
        self.provider = provider
        self.router = router
        self.update_interval = update_interval
        self.exclude_patterns = list(exclude_patterns)

        self._current_routes: Set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def current_routes(self) -> Set[str]:
        return set(self._current_routes)

    def _desired_hosts(self, hosts: Iterable[str]) -> Set[str]:
        desired: Set[str] = set()
        for host in hosts:
            if is_host_excluded(host, self.exclude_patterns):
                logger.debug(f"Excluding host '{host}' (matches exclusion pattern)")
                continue
            desired.add(host)
        return desired

    async def update_routes(self) -> UpdateResult:
        """Run one reconciliation pass.

        Raises:
            RouterError: routes could not be fetched.
            ProviderError: a list, create or delete call failed.
        """
        logger.debug("Updating routes")
        async with self._lock:
            routes = await self.router.get_routes()
            desired = self._desired_hosts(r.host for r in routes)

            to_create = sorted(desired - self._current_routes)
            if to_create:
                logger.info(f"Creating {len(to_create)} record(s): {', '.join(to_create)}")
            await fan_out(self.provider.create_record(host) for host in to_create)

            existing = await self.provider.list_records()
            to_delete = sorted(set(existing) - desired)
            if to_delete:
                logger.info(f"Deleting {len(to_delete)} record(s): {', '.join(to_delete)}")
            await fan_out(self.provider.delete_record(host) for host in to_delete)

            self._current_routes = desired

        if to_create or to_delete:
            logger.info(
                f"Routes updated: {len(to_create)} added, {len(to_delete)} removed, "
                f"{len(desired)} active"
            )
        else:
            logger.debug(f"Routes unchanged: {len(desired)} active")
        return UpdateResult(created=to_create, deleted=to_delete)

    async def run_once(self) -> UpdateResult:
        """One pass bounded by ``update_interval``. Errors propagate."""
        return await asyncio.wait_for(self.update_routes(), timeout=self.update_interval)

    async def _tick(self) -> Optional[UpdateResult]:
        try:
            return await self.run_once()
        except asyncio.TimeoutError:
            logger.error(f"Route updating timed out after {self.update_interval}s")
        except RouterError as e:
            logger.error(f"Route updating failed, router error: {e}")
        except ProviderError as e:
            logger.error(f"Route updating failed, {self.provider.name} error: {e}")
        except Exception as e:
            logger.error(f"Route updating failed: {e}", exc_info=True)
        return None

    async def run(self) -> None:
        """Reconcile on every tick, forever. Pass failures never end the loop."""
        loop = asyncio.get_running_loop()
        logger.info(
            f"Syncing {self.router.name} routes to {self.provider.name} "
            f"every {self.update_interval}s"
        )

        deadline = loop.time()
        while True:
            delay = deadline - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)

            await self._tick()

            now = loop.time()
            next_deadline = next_tick_after(deadline, now, self.update_interval)
            skipped = round((next_deadline - deadline) / self.update_interval) - 1
            if skipped > 0:
                logger.warning(f"Skipped {skipped} missed tick(s)")
            deadline = next_deadline
