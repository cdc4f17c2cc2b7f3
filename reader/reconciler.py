"""Progress reconciliation between the local cache and the remote record.

The local value is authoritative for responsiveness: remote reads and writes
may fail or time out, in which case the local side is adopted anyway and the
remote is retried on the next pass.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from wiki.client import WikiError

from .config import ProgressSettings
from .state import MIN_CHAPTER, ProgressSource, ReadingProgress, clamp_chapter
from .store import ProgressStore

if TYPE_CHECKING:
    from .audit import ReconciliationLog

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (WikiError, httpx.HTTPError, asyncio.TimeoutError, OSError)


class Outcome(str, Enum):
    DEFAULTED = "defaulted"
    REMOTE_MISSING = "remote_missing"
    LOCAL_MISSING = "local_missing"
    IN_SYNC = "in_sync"
    LOCAL_AHEAD_RECENT = "local_ahead_recent"
    LOCAL_AHEAD_OFFLINE = "local_ahead_offline"
    LOCAL_STALE = "local_stale"
    REMOTE_AHEAD = "remote_ahead"
    REMOTE_UNREACHABLE = "remote_unreachable"


@dataclass(frozen=True)
class ReconcileThresholds:
    """Divergence heuristics for a local value ahead of the remote one.

    ``recent_window`` only splits the accepted range for the audit trail;
    ``stale_after`` is the largest lead a local value may have and still win.
    """

    recent_window: int = 2
    stale_after: int = 10
    max_chapter: int = 539
    remote_timeout_seconds: float = 3.0

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> ReconcileThresholds:
        progress = ProgressSettings.from_config(cfg)
        return cls(
            recent_window=progress.recent_window,
            stale_after=progress.stale_after,
            max_chapter=progress.max_chapter,
            remote_timeout_seconds=progress.remote_timeout_seconds,
        )


@dataclass(frozen=True)
class Reconciliation:
    """Decision for one local/remote pair, before any I/O happens."""

    value: int
    source: ProgressSource
    outcome: Outcome
    local: int | None
    remote: int | None
    push_remote: bool
    write_local: bool


def reconcile(
    local: int | None,
    remote: int | None,
    thresholds: ReconcileThresholds | None = None,
    remote_reachable: bool = True,
) -> Reconciliation:
    """Merge a local and a remote chapter into one authoritative value.

    An unreachable remote is not the same as a missing record: the local side
    is adopted but nothing is pushed, so a higher server value survives until
    the next pass can read it.
    """
    t = thresholds or ReconcileThresholds()
    if local is not None:
        local = clamp_chapter(local, t.max_chapter)
    if remote is not None:
        remote = clamp_chapter(remote, t.max_chapter)

    def _result(value: int, source: ProgressSource, outcome: Outcome, push: bool) -> Reconciliation:
        return Reconciliation(
            value=value,
            source=source,
            outcome=outcome,
            local=local,
            remote=remote,
            push_remote=push,
            write_local=local != value,
        )

    if not remote_reachable:
        value = local if local is not None else MIN_CHAPTER
        return _result(value, ProgressSource.LOCAL, Outcome.REMOTE_UNREACHABLE, False)
    if local is None and remote is None:
        return _result(MIN_CHAPTER, ProgressSource.LOCAL, Outcome.DEFAULTED, True)
    if remote is None:
        return _result(local, ProgressSource.LOCAL, Outcome.REMOTE_MISSING, True)
    if local is None:
        return _result(remote, ProgressSource.SERVER, Outcome.LOCAL_MISSING, False)
    if local == remote:
        return _result(local, ProgressSource.SERVER, Outcome.IN_SYNC, False)

    if local > remote:
        diff = local - remote
        if diff > t.stale_after:
            return _result(remote, ProgressSource.SERVER, Outcome.LOCAL_STALE, False)
        outcome = Outcome.LOCAL_AHEAD_RECENT if diff <= t.recent_window else Outcome.LOCAL_AHEAD_OFFLINE
        return _result(local, ProgressSource.LOCAL, outcome, True)

    return _result(remote, ProgressSource.SERVER, Outcome.REMOTE_AHEAD, False)


class ProgressReconciler:
    """Runs one reconciliation pass against a ProgressStore."""

    def __init__(
        self,
        store: ProgressStore,
        thresholds: ReconcileThresholds | None = None,
        audit: ReconciliationLog | None = None,
    ):
        self._store = store
        self._thresholds = thresholds or ReconcileThresholds(max_chapter=store.max_chapter)
        self._audit = audit
        self.last_result: Reconciliation | None = None

    @property
    def thresholds(self) -> ReconcileThresholds:
        return self._thresholds

    async def resolve(self) -> ReadingProgress:
        """Reconcile both sides and return the adopted progress.

        At most one remote read and one remote write happen per call. Remote
        failures are logged and never prevent local adoption.
        """
        store = self._store
        local = store.read_local()
        remote_side = store.remote
        remote, reachable = await self._fetch_remote()

        result = reconcile(local, remote, self._thresholds, remote_reachable=reachable)
        self.last_result = result

        # An out-of-range or unparsable cache entry is rewritten too
        if result.write_local or store.read_local_raw() != str(result.value):
            store.write_local(result.value)

        pushed = False
        push_error = ""
        if result.push_remote and remote_side is not None:
            try:
                await asyncio.wait_for(
                    remote_side.push_progress(result.value),
                    timeout=self._thresholds.remote_timeout_seconds,
                )
                pushed = True
            except _TRANSIENT_ERRORS as exc:
                push_error = str(exc) or exc.__class__.__name__
                logger.warning("Failed to push progress %d: %s", result.value, push_error)

        logger.info(
            "Progress reconciled: %s (local=%s remote=%s adopted=%d pushed=%s)",
            result.outcome.value,
            result.local,
            result.remote,
            result.value,
            pushed,
        )
        await self._record(result, pushed, push_error)
        return ReadingProgress(value=result.value, source=result.source)

    async def _fetch_remote(self) -> tuple[int | None, bool]:
        """Return (value, reachable). None with reachable=True means no record."""
        remote_side = self._store.remote
        if remote_side is None:
            return None, True
        try:
            value = await asyncio.wait_for(
                remote_side.fetch_progress(),
                timeout=self._thresholds.remote_timeout_seconds,
            )
        except _TRANSIENT_ERRORS as exc:
            logger.warning("Remote progress unavailable, using local: %s", str(exc) or exc.__class__.__name__)
            return None, False
        return value, True

    async def _record(self, result: Reconciliation, pushed: bool, push_error: str) -> None:
        if self._audit is None:
            return
        try:
            await self._audit.log_reconciliation(result, pushed=pushed, push_error=push_error)
        except Exception as exc:
            logger.warning("Failed to write reconciliation audit: %s", exc)
