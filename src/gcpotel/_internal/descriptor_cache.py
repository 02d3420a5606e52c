"""Process-lifetime cache of registered metric descriptors.

Cloud Monitoring needs a metric descriptor to exist before time series of
that type can be written. Creating a descriptor once per type per process
is enough; this cache gates those one-time calls. Registered keys are
never evicted.

The cache is owned by one metric exporter and shared by all of its
concurrent export calls. Key bookkeeping is guarded by a lock; in-flight
registrations are joined through futures bound to the exporter's event
loop, so a second export never issues a duplicate call for a key that is
still being registered.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable

from gcpotel.exceptions import DescriptorRegistrationError

logger = logging.getLogger(__name__)


class DescriptorCache:
    """Insert-if-absent set of metric types registered with the backend."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._registered: set[str] = set()
        self._claimed: set[str] = set()
        self._in_flight: dict[str, asyncio.Future[bool]] = {}

    def should_register(self, key: str) -> bool:
        """Claim ``key`` for registration.

        Returns True for the first caller only; later callers get False
        until the claim is released (registration failed).
        """
        with self._lock:
            if key in self._registered or key in self._claimed:
                return False
            self._claimed.add(key)
            return True

    def mark_registered(self, key: str) -> None:
        with self._lock:
            self._claimed.discard(key)
            self._registered.add(key)

    def release(self, key: str) -> None:
        """Drop a claim without registering, so a later export retries."""
        with self._lock:
            self._claimed.discard(key)

    def is_registered(self, key: str) -> bool:
        with self._lock:
            return key in self._registered

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.is_registered(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._registered)

    async def ensure_registered(
        self, key: str, register: Callable[[], Awaitable[object]]
    ) -> None:
        """Run ``register`` once for ``key`` unless it is already registered.

        Concurrent callers for the same key wait for the in-flight attempt.
        Raises DescriptorRegistrationError (to the caller that ran the
        registration and to every waiter) if the attempt failed.
        """
        with self._lock:
            if key in self._registered:
                return
            pending = self._in_flight.get(key)
            owner = pending is None and key not in self._claimed
            if owner:
                self._claimed.add(key)
                pending = asyncio.get_running_loop().create_future()
                self._in_flight[key] = pending

        if pending is None:
            # Claimed through should_register() with no attempt to join
            raise DescriptorRegistrationError(
                key, f"registration of {key} is already in progress"
            )

        if not owner:
            logger.debug("Joining in-flight registration of %s", key)
            if not await asyncio.shield(pending):
                raise DescriptorRegistrationError(key)
            return

        try:
            await register()
        except asyncio.CancelledError:
            self._settle(key, pending, registered=False)
            raise
        except Exception as exc:
            self._settle(key, pending, registered=False)
            raise DescriptorRegistrationError(key) from exc
        self._settle(key, pending, registered=True)
        logger.debug("Registered metric descriptor %s", key)

    def _settle(self, key: str, pending: asyncio.Future[bool], registered: bool) -> None:
        with self._lock:
            self._in_flight.pop(key, None)
            self._claimed.discard(key)
            if registered:
                self._registered.add(key)
        if not pending.done():
            pending.set_result(registered)
