"""File-system BackupStore.

Layout:
  <backup_dir>/<name>.json   - one saved account per file, content opaque
  <live_account_file>        - the host application's signed-in account

The live account file is the only JSON this module looks inside, and only
to find out whether someone is signed in and under which email.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..bundle.models import CredentialRecord
from ..core.fileio import atomic_write
from ..exceptions import BackupNotFoundError, StoreError
from .contracts import BackupStore, LiveAccount, RestoreFailure, RestoreResult, WriteAck

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".json"

# Keys in the live account file that indicate a signed-in user
_CREDENTIAL_KEYS = ("apiKey", "userStatusProtoBinaryBase64")


def validate_backup_name(name: str) -> str:
    """Reject names that could escape the backup directory."""
    if not isinstance(name, str) or not name.strip():
        raise StoreError("Backup name must not be empty")
    if "/" in name or "\\" in name or "\x00" in name:
        raise StoreError(f"Invalid backup name: {name!r}")
    if name.startswith("."):
        raise StoreError(f"Invalid backup name: {name!r}")
    return name


class FileBackupStore(BackupStore):
    """BackupStore backed by a directory of JSON files.

    Args:
        backup_dir: Directory holding ``<name>.json`` backups.
        live_account_file: The host application's current-account file.
    """

    def __init__(self, backup_dir: Path, live_account_file: Path):
        self._backup_dir = Path(backup_dir)
        self._live_file = Path(live_account_file)

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    def _path_for(self, name: str) -> Path:
        return self._backup_dir / f"{validate_backup_name(name)}{BACKUP_SUFFIX}"

    def _backup_files(self) -> List[Path]:
        if not self._backup_dir.exists():
            return []
        try:
            return [
                p for p in self._backup_dir.iterdir()
                if p.suffix == BACKUP_SUFFIX and not p.name.startswith(".") and p.is_file()
            ]
        except OSError as e:
            raise StoreError(f"Failed to read backup directory: {e}") from e

    # ── Listing ──────────────────────────────────────────────────────

    async def list_backups(self) -> List[str]:
        files = await asyncio.to_thread(self._backup_files)
        return sorted(p.stem for p in files)

    async def recent_backups(self, limit: Optional[int] = None) -> List[str]:
        """Backup names, most recently modified first."""

        def _recent() -> List[str]:
            dated = []
            for p in self._backup_files():
                try:
                    dated.append((p.stat().st_mtime, p.stem))
                except OSError:
                    continue
            dated.sort(key=lambda item: item[0], reverse=True)
            names = [name for _, name in dated]
            return names if limit is None else names[:limit]

        return await asyncio.to_thread(_recent)

    async def has_exportable_data(self) -> bool:
        return bool(await asyncio.to_thread(self._backup_files))

    # ── Live account ─────────────────────────────────────────────────

    async def get_current_account(self) -> Optional[LiveAccount]:
        def _read() -> Optional[LiveAccount]:
            if not self._live_file.exists():
                return None
            try:
                info = json.loads(self._live_file.read_text(encoding="utf-8"))
            except OSError as e:
                raise StoreError(f"Failed to read live account: {e}") from e
            except json.JSONDecodeError as e:
                raise StoreError(f"Live account file is corrupt: {e}") from e
            if not isinstance(info, dict):
                raise StoreError("Live account file is corrupt: expected an object")

            if not any(info.get(key) for key in _CREDENTIAL_KEYS):
                return None
            email = info.get("email")
            if not isinstance(email, str) or not email:
                raise StoreError("Live account has credentials but no email")
            return LiveAccount(name=email, email=email)

        return await asyncio.to_thread(_read)

    async def write_backup(self, name: str) -> WriteAck:
        path = self._path_for(name)

        def _write() -> WriteAck:
            try:
                data = self._live_file.read_bytes()
            except FileNotFoundError:
                raise StoreError("No live account to back up") from None
            except OSError as e:
                raise StoreError(f"Failed to read live account: {e}") from e
            try:
                atomic_write(path, data)
            except OSError as e:
                raise StoreError(f"Failed to write backup {name}: {e}") from e
            return WriteAck(name=name, location=str(path))

        ack = await asyncio.to_thread(_write)
        logger.info("Backed up live account as %s", name)
        return ack

    async def apply_backup(self, name: str) -> None:
        path = self._path_for(name)

        def _apply() -> None:
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                raise BackupNotFoundError(name) from None
            except OSError as e:
                raise StoreError(f"Failed to read backup {name}: {e}") from e
            try:
                atomic_write(self._live_file, data)
            except OSError as e:
                raise StoreError(f"Failed to switch account: {e}") from e

        await asyncio.to_thread(_apply)
        logger.info("Applied backup %s as live account", name)

    # ── Deletion ─────────────────────────────────────────────────────

    async def delete_backup(self, name: str) -> None:
        path = self._path_for(name)

        def _delete() -> None:
            try:
                path.unlink()
            except FileNotFoundError:
                raise BackupNotFoundError(name) from None
            except OSError as e:
                raise StoreError(f"Failed to delete backup {name}: {e}") from e

        await asyncio.to_thread(_delete)

    async def clear_all_backups(self) -> int:
        def _clear() -> int:
            removed = 0
            for p in self._backup_files():
                try:
                    p.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise StoreError(f"Failed to delete {p.name}: {e}") from e
                removed += 1
            return removed

        return await asyncio.to_thread(_clear)

    # ── Bundle transfer ──────────────────────────────────────────────

    async def collect_records(self) -> List[CredentialRecord]:
        """Every readable backup as a record; corrupt or unreadable files are skipped."""

        def _collect() -> List[CredentialRecord]:
            records = []
            for p in sorted(self._backup_files(), key=lambda f: f.stem):
                try:
                    data = p.read_bytes()
                except OSError as e:
                    logger.warning("Skipping unreadable backup %s: %s", p.name, e)
                    continue
                try:
                    json.loads(data.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    logger.warning("Skipping corrupt backup %s: %s", p.name, e)
                    continue
                records.append(CredentialRecord(
                    name=p.stem,
                    payload=data,
                    metadata={"filename": p.name},
                ))
            return records

        return await asyncio.to_thread(_collect)

    async def restore_records(self, records: Sequence[CredentialRecord]) -> RestoreResult:
        def _restore() -> RestoreResult:
            result = RestoreResult()
            for record in records:
                try:
                    atomic_write(self._path_for(record.name), record.payload)
                except StoreError as e:
                    result.failed.append(RestoreFailure(record.name, str(e)))
                except OSError as e:
                    result.failed.append(RestoreFailure(record.name, f"write failed: {e}"))
                else:
                    result.restored_count += 1
            return result

        return await asyncio.to_thread(_restore)
