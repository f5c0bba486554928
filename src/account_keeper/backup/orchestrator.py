"""Export / import of all saved accounts as one encrypted bundle file.

Export:  exportable data? -> password (entered twice) -> collect records
         -> encode -> atomic write to destination
Import:  read + parse container -> password (entered once) -> decode
         -> bundle version check -> restore records -> optional refresh

Each call is independent; the orchestrator keeps no state between calls.
Serializing overlapping exports/imports is up to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..bundle.codec import BundleCodec
from ..bundle.models import BUNDLE_VERSION, SUPPORTED_BUNDLE_VERSIONS, CredentialBundle
from ..bundle.password_policy import PasswordPolicy
from ..core.audit_log import EventSeverity, EventType, log_security_event
from ..core.fileio import atomic_write
from ..exceptions import (
    AccountKeeperError,
    AuthenticationFailed,
    ContainerFormatError,
    NoDataError,
    StoreError,
    UnsupportedVersion,
    ValidationError,
)
from .contracts import BackupStore, PasswordEntry, PasswordPrompt, StatusReporter

logger = logging.getLogger(__name__)

EXPORT_TITLE = "Export accounts"
IMPORT_TITLE = "Import accounts"


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one export or import call."""
    success: bool
    message: str
    path: Optional[Path] = None
    record_count: int = 0
    cancelled: bool = False
    error: Optional[AccountKeeperError] = None


class ExportImportOrchestrator:
    """Drive the export and import flows and report through ``report``.

    Args:
        store: Host command surface (read for export, written on import).
        codec: Bundle codec; shared, stateless.
        policy: The password rules used by both flows.
        prompt: Password dialog.
        report: ``report(message, is_error)`` status sink.
        after_import: Awaited after a successful import, e.g. a refresh.
    """

    def __init__(
        self,
        store: BackupStore,
        codec: BundleCodec,
        policy: PasswordPolicy,
        prompt: PasswordPrompt,
        report: StatusReporter,
        after_import: Optional[Callable[[], Awaitable[object]]] = None,
    ):
        self._store = store
        self._codec = codec
        self._policy = policy
        self._prompt = prompt
        self._report = report
        self._after_import = after_import

    # ── Export ───────────────────────────────────────────────────────

    async def export_bundle(self, destination: Path) -> TransferResult:
        destination = Path(destination)
        try:
            if not await self._store.has_exportable_data():
                raise NoDataError("No saved accounts found, nothing to export")

            entry = await self._prompt.ask(EXPORT_TITLE, True, self._policy.validate)
            if not isinstance(entry, PasswordEntry):
                return self._cancelled("Export cancelled")
            check = self._policy.validate_confirmed(entry.password, entry.confirmation or "")
            if not check.is_valid:
                raise ValidationError(check.message)

            records = await self._store.collect_records()
            if not records:
                raise NoDataError("No saved accounts found, nothing to export")
            bundle = CredentialBundle(records=records, version=BUNDLE_VERSION)

            # PBKDF2 is deliberately slow; keep it off the event loop.
            data = await asyncio.to_thread(self._codec.dumps, bundle, entry.password)
            await asyncio.to_thread(atomic_write, destination, data)

        except AccountKeeperError as e:
            return self._failed("Export failed", e)
        except OSError as e:
            return self._failed("Export failed", StoreError(f"Could not write {destination}: {e}"))
        except Exception as e:
            logger.exception("Export failed with unexpected error")
            return self._failed("Export failed", StoreError(str(e) or type(e).__name__))

        log_security_event(
            EventType.BUNDLE_EXPORTED, EventSeverity.INFO, "Accounts exported",
            details={"path": str(destination), "records": len(records)},
        )
        message = f"Bundle saved: {destination}"
        self._report(message, False)
        return TransferResult(True, message, path=destination, record_count=len(records))

    # ── Import ───────────────────────────────────────────────────────

    async def import_bundle(self, source: Path) -> TransferResult:
        source = Path(source)
        try:
            try:
                raw = await asyncio.to_thread(source.read_bytes)
            except OSError as e:
                raise ContainerFormatError(f"Could not read {source}: {e}") from e
            # A file that is not a container fails before any password prompt.
            container = self._codec.parse_container(raw)

            entry = await self._prompt.ask(IMPORT_TITLE, False, self._policy.validate)
            if not isinstance(entry, PasswordEntry):
                return self._cancelled("Import cancelled")
            check = self._policy.validate(entry.password)
            if not check.is_valid:
                raise ValidationError(check.message)

            bundle = await asyncio.to_thread(self._codec.decode, container, entry.password)
            if bundle.version not in SUPPORTED_BUNDLE_VERSIONS:
                raise UnsupportedVersion(bundle.version, SUPPORTED_BUNDLE_VERSIONS)

            outcome = await self._store.restore_records(bundle.records)

        except AccountKeeperError as e:
            return self._import_failed(source, e, e)
        except Exception as e:
            logger.exception("Import failed with unexpected error")
            return self._import_failed(source, e, StoreError(str(e) or type(e).__name__))

        log_security_event(
            EventType.BUNDLE_IMPORTED, EventSeverity.INFO, "Accounts imported",
            details={
                "path": str(source),
                "version": bundle.version,
                "restored": outcome.restored_count,
                "failed": [f.name for f in outcome.failed],
            },
        )

        if outcome.failed:
            failed = ", ".join(f"{f.name} ({f.error})" for f in outcome.failed)
            message = f"Imported {outcome.restored_count} account(s); failed: {failed}"
            self._report(message, True)
            result = TransferResult(
                False, message, path=source, record_count=outcome.restored_count,
                error=StoreError(failed),
            )
        else:
            message = f"Imported {outcome.restored_count} account(s) (bundle version {bundle.version})"
            self._report(message, False)
            result = TransferResult(True, message, path=source, record_count=outcome.restored_count)

        if self._after_import is not None and outcome.restored_count:
            try:
                await self._after_import()
            except Exception:
                # The import itself already succeeded and was reported.
                logger.warning("Post-import hook failed", exc_info=True)
        return result

    # ── Helpers ──────────────────────────────────────────────────────

    def _import_failed(self, source: Path, cause: Exception,
                       error: AccountKeeperError) -> TransferResult:
        log_security_event(
            EventType.BUNDLE_IMPORT_FAILED, EventSeverity.WARNING, "Account import failed",
            details={"path": str(source), "reason": type(cause).__name__},
        )
        return self._failed("Import failed", error)

    def _cancelled(self, message: str) -> TransferResult:
        logger.info(message)
        self._report(message, False)
        return TransferResult(False, message, cancelled=True)

    def _failed(self, prefix: str, error: AccountKeeperError) -> TransferResult:
        if isinstance(error, AuthenticationFailed):
            # Never more specific than this.
            message = f"{prefix}: incorrect password or corrupted file"
        elif isinstance(error, UnsupportedVersion):
            message = f"{prefix}: unsupported bundle version {error.version}"
        else:
            message = f"{prefix}: {error}"
        logger.warning(message)
        self._report(message, True)
        return TransferResult(False, message, error=error)
