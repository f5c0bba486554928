"""Backup lifecycle coordinator - the one owner of the backup list.

Keeps an authoritative, wholesale-replaced snapshot of backup names while
refreshes (with optional auto-backup of the live account) and user
mutations (delete, clear all, switch) race with each other.

Rules:
  - At most one list-fetch (+ optional auto-backup) sequence in flight;
    a refresh() issued during one joins it and gets the same result.
  - Mutations are mutually exclusive with each other and with a running
    refresh; a mutation arriving while busy is rejected, not queued.
  - After an auto-backup write the list is re-read until the acknowledged
    name is visible (bounded retries), never after a blind sleep.
  - Delete and clear-all always finish with a refresh that skips
    auto-backup, so the entry just removed is not recreated.
  - A failed operation leaves the previous snapshot in place.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..core.audit_log import EventSeverity, EventType, log_security_event
from ..exceptions import AccountKeeperError, CoordinatorBusyError, StoreError
from .contracts import BackupStore, StatusReporter

logger = logging.getLogger(__name__)


class AutoBackupStatus(str, Enum):
    SKIPPED = "skipped"
    BACKED_UP = "backed_up"
    NO_ACTIVE_ACCOUNT = "no_active_account"


@dataclass(frozen=True)
class BackupListSnapshot:
    """Immutable view of all backup names at one point in time."""
    names: Tuple[str, ...] = ()
    generation: int = 0
    taken_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self):
        return iter(self.names)

    def __contains__(self, name) -> bool:
        return name in self.names


@dataclass(frozen=True)
class RefreshResult:
    success: bool
    snapshot: BackupListSnapshot
    auto_backup: AutoBackupStatus = AutoBackupStatus.SKIPPED
    backed_up: Optional[str] = None
    error: str = ""


@dataclass(frozen=True)
class OperationResult:
    """Outcome of delete / clear_all / switch_to."""
    success: bool
    message: str
    removed: int = 0
    refresh: Optional[RefreshResult] = None


class BackupLifecycleCoordinator:
    """Serializes backup list reads and writes for one store.

    Args:
        store: Host command surface.
        report: ``report(message, is_error)`` status sink.
        on_snapshot: Called with every newly published BackupListSnapshot.
        write_verify_attempts: List reads allowed for an acknowledged write
            to become visible.
        write_verify_delay: Seconds between those reads.
    """

    def __init__(
        self,
        store: BackupStore,
        report: StatusReporter,
        on_snapshot: Optional[Callable[[BackupListSnapshot], None]] = None,
        write_verify_attempts: int = 5,
        write_verify_delay: float = 0.05,
    ):
        if write_verify_attempts < 1:
            raise ValueError("write_verify_attempts must be at least 1")
        self._store = store
        self._report = report
        self._on_snapshot = on_snapshot
        self._verify_attempts = write_verify_attempts
        self._verify_delay = write_verify_delay

        self._snapshot = BackupListSnapshot()
        self._refresh_task: Optional[asyncio.Task] = None
        self._busy: Optional[str] = None
        self._initial_loading = True

    # ── State ────────────────────────────────────────────────────────

    @property
    def snapshot(self) -> BackupListSnapshot:
        return self._snapshot

    @property
    def backups(self) -> List[str]:
        return list(self._snapshot.names)

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None

    @property
    def is_initial_loading(self) -> bool:
        return self._initial_loading

    @property
    def busy_operation(self) -> Optional[str]:
        if self._busy is not None:
            return self._busy
        return "refresh" if self._refresh_task is not None else None

    # ── Refresh ──────────────────────────────────────────────────────

    async def refresh(self, skip_auto_backup: bool = False) -> RefreshResult:
        """Re-read the backup list, auto-backing up the live account first
        unless ``skip_auto_backup``.

        Joins an in-flight refresh instead of starting a second one.  The
        joined caller receives the in-flight result whatever its own
        ``skip_auto_backup`` was.
        """
        if self._refresh_task is not None:
            logger.debug("Refresh already in flight; joining")
            return await asyncio.shield(self._refresh_task)

        if self._busy is not None:
            error = CoordinatorBusyError(self._busy)
            self._report(str(error), True)
            return RefreshResult(False, self._snapshot, error=str(error))

        return await self._run_refresh(skip_auto_backup, announce=True)

    async def _run_refresh(
        self, skip_auto_backup: bool, announce: bool, report_errors: bool = True
    ) -> RefreshResult:
        task = asyncio.ensure_future(
            self._refresh_sequence(skip_auto_backup, announce, report_errors)
        )
        self._refresh_task = task
        task.add_done_callback(self._clear_refresh_task)
        return await asyncio.shield(task)

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh_sequence(
        self, skip_auto_backup: bool, announce: bool, report_errors: bool = True
    ) -> RefreshResult:
        auto = AutoBackupStatus.SKIPPED
        backed_up = None
        try:
            names = await self._store.list_backups()

            if not skip_auto_backup:
                account = await self._store.get_current_account()
                if account is None:
                    auto = AutoBackupStatus.NO_ACTIVE_ACCOUNT
                else:
                    ack = await self._store.write_backup(account.name)
                    backed_up = ack.name
                    log_security_event(
                        EventType.BACKUP_CREATED,
                        EventSeverity.INFO,
                        "Auto-backup of live account",
                        details={"name": ack.name},
                    )
                    names = await self._read_after_write(ack.name)
                    auto = AutoBackupStatus.BACKED_UP

        except AccountKeeperError as e:
            logger.warning("Refresh failed: %s", e)
            if report_errors:
                self._report(f"Failed to load backup list: {e}", True)
            return RefreshResult(False, self._snapshot, auto, backed_up, str(e))
        except Exception as e:
            logger.exception("Refresh failed with unexpected error")
            if report_errors:
                self._report(f"Failed to load backup list: {e}", True)
            return RefreshResult(False, self._snapshot, auto, backed_up, str(e))
        finally:
            self._initial_loading = False

        snapshot = self._publish(names)
        if auto is AutoBackupStatus.BACKED_UP:
            self._report(f"Refreshed and backed up current account: {backed_up}", False)
        elif auto is AutoBackupStatus.NO_ACTIVE_ACCOUNT:
            # Normal outcome, not a StoreError
            self._report("No signed-in account detected", False)
        elif announce:
            self._report("Backup list refreshed", False)
        return RefreshResult(True, snapshot, auto, backed_up)

    async def _read_after_write(self, name: str) -> List[str]:
        for attempt in range(1, self._verify_attempts + 1):
            names = await self._store.list_backups()
            if name in names:
                return names
            logger.debug(
                "Backup %r not visible yet (attempt %d/%d)", name, attempt, self._verify_attempts
            )
            if attempt < self._verify_attempts:
                await asyncio.sleep(self._verify_delay)
        raise StoreError(f"Backup '{name}' was written but never appeared in the list")

    def _publish(self, names: List[str]) -> BackupListSnapshot:
        snapshot = BackupListSnapshot(
            names=tuple(names),
            generation=self._snapshot.generation + 1,
            taken_at=datetime.now(timezone.utc),
        )
        self._snapshot = snapshot
        if self._on_snapshot is not None:
            try:
                self._on_snapshot(snapshot)
            except Exception:
                logger.warning("Snapshot listener failed", exc_info=True)
        return snapshot

    # ── Mutations ────────────────────────────────────────────────────

    def _enter(self, operation: str) -> None:
        running = self.busy_operation
        if running is not None:
            raise CoordinatorBusyError(running)
        self._busy = operation

    async def delete(self, name: str) -> OperationResult:
        """Delete one backup, then refresh without auto-backup."""
        try:
            self._enter("delete")
        except CoordinatorBusyError as e:
            self._report(str(e), True)
            return OperationResult(False, str(e))

        try:
            try:
                await self._store.delete_backup(name)
            except Exception as e:
                return await self._failed_then_resync(f"Failed to delete backup: {e}")

            message = f'Backup "{name}" deleted'
            log_security_event(
                EventType.BACKUP_DELETED, EventSeverity.INFO, "Backup deleted",
                details={"name": name},
            )
            self._report(message, False)
            refresh = await self._run_refresh(skip_auto_backup=True, announce=False)
            return OperationResult(True, message, refresh=refresh)
        finally:
            self._busy = None

    async def clear_all(self) -> OperationResult:
        """Delete every backup, then refresh without auto-backup."""
        try:
            self._enter("clear_all")
        except CoordinatorBusyError as e:
            self._report(str(e), True)
            return OperationResult(False, str(e))

        try:
            try:
                removed = await self._store.clear_all_backups()
            except Exception as e:
                return await self._failed_then_resync(f"Failed to clear backups: {e}")

            message = f"Cleared all backups, {removed} removed"
            log_security_event(
                EventType.BACKUPS_CLEARED, EventSeverity.INFO, "All backups cleared",
                details={"removed": removed},
            )
            self._report(message, False)
            refresh = await self._run_refresh(skip_auto_backup=True, announce=False)
            return OperationResult(True, message, removed, refresh)
        finally:
            self._busy = None

    async def _failed_then_resync(self, message: str) -> OperationResult:
        """Resync after a failed mutation and report both outcomes as one status."""
        logger.warning(message)
        refresh = await self._run_refresh(
            skip_auto_backup=True, announce=False, report_errors=False
        )
        if not refresh.success:
            message = f"{message} (backup list not refreshed: {refresh.error})"
        self._report(message, True)
        return OperationResult(False, message, refresh=refresh)

    async def switch_to(self, name: str) -> OperationResult:
        """Make ``name`` the live account.  Does not touch the backup list;
        callers conventionally refresh afterwards."""
        try:
            self._enter("switch")
        except CoordinatorBusyError as e:
            self._report(str(e), True)
            return OperationResult(False, str(e))

        try:
            await self._store.apply_backup(name)
        except Exception as e:
            message = f"Failed to switch account: {e}"
            logger.warning(message)
            self._report(message, True)
            return OperationResult(False, message)
        finally:
            self._busy = None

        log_security_event(
            EventType.ACCOUNT_SWITCHED, EventSeverity.INFO, "Switched live account",
            details={"name": name},
        )
        message = f"Switched to account: {name}"
        self._report(message, False)
        return OperationResult(True, message)
