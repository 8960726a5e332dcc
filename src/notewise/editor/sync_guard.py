"""Short-lived leases that hold off the host's content synchronization.

When the controller commits text into the editor it also pushes the new
serialized content to the host. Until the host's own state catches up, its
content-sync effect would write the stale content back into the editor.
A :class:`SyncLease` taken around the commit tells the host to skip those
stale syncs. The lease ends when the host reports the committed content or
when ``hold_seconds`` elapse, whichever comes first.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

LOGGER = logging.getLogger(__name__)

DEFAULT_HOLD_SECONDS = 0.1

Clock = Callable[[], float]


@dataclass(slots=True)
class SyncLease:
    """One suppression window taken before a document mutation."""

    lease_id: str
    reason: str
    acquired_at: float
    expires_at: float
    content: str | None = None
    released: bool = field(default=False)

    def bind_content(self, content: str) -> None:
        """Record the serialized content the host is expected to report."""
        self.content = content

    def is_live(self, now: float) -> bool:
        return not self.released and now < self.expires_at


class SyncGuard:
    """Tracks at most one live :class:`SyncLease` per document."""

    def __init__(self, *, hold_seconds: float = DEFAULT_HOLD_SECONDS, clock: Clock = time.monotonic) -> None:
        if hold_seconds <= 0:
            raise ValueError("hold_seconds must be positive")
        self._hold_seconds = float(hold_seconds)
        self._clock = clock
        self._lease: SyncLease | None = None
        self._counter = 0

    @property
    def hold_seconds(self) -> float:
        return self._hold_seconds

    @property
    def active_lease(self) -> SyncLease | None:
        lease = self._lease
        if lease is None:
            return None
        if not lease.is_live(self._clock()):
            self._expire(lease)
            return None
        return lease

    @property
    def is_suppressed(self) -> bool:
        return self.active_lease is not None

    def acquire(self, reason: str) -> SyncLease:
        """Open a new lease, ending any lease still held."""

        previous = self._lease
        if previous is not None and not previous.released:
            previous.released = True
            LOGGER.debug("Sync lease %s superseded by new %s lease", previous.lease_id, reason)
        self._counter += 1
        now = self._clock()
        lease = SyncLease(
            lease_id=f"sync-{self._counter}",
            reason=reason,
            acquired_at=now,
            expires_at=now + self._hold_seconds,
        )
        self._lease = lease
        LOGGER.debug("Sync lease %s acquired (%s)", lease.lease_id, reason)
        return lease

    def allows_sync(self, incoming_content: str) -> bool:
        """Return whether the host may push ``incoming_content`` into the editor.

        Content matching the committed text is the host acknowledging the
        commit: the lease is released and the (no-op) sync is allowed.
        """

        lease = self.active_lease
        if lease is None:
            return True
        if lease.content is not None and incoming_content == lease.content:
            self.release(lease)
            return True
        LOGGER.debug("Suppressed stale content sync during lease %s", lease.lease_id)
        return False

    def release(self, lease: SyncLease) -> bool:
        if lease.released:
            return False
        lease.released = True
        if self._lease is lease:
            self._lease = None
        LOGGER.debug("Sync lease %s released", lease.lease_id)
        return True

    def force_release(self) -> bool:
        lease = self._lease
        self._lease = None
        if lease is None or lease.released:
            return False
        lease.released = True
        LOGGER.debug("Sync lease %s force-released", lease.lease_id)
        return True

    def _expire(self, lease: SyncLease) -> None:
        lease.released = True
        if self._lease is lease:
            self._lease = None
        LOGGER.debug("Sync lease %s expired", lease.lease_id)


__all__ = ["DEFAULT_HOLD_SECONDS", "SyncGuard", "SyncLease"]
