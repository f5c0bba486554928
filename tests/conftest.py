"""
Shared pytest fixtures for the Account Keeper test suite.

The autouse fixture below redirects the global audit logger into a temp
directory so tests never write into a real ``audit_logs/`` folder.
"""

import asyncio
from typing import Dict, List, Optional, Sequence

import pytest

from account_keeper.backup.contracts import (
    BackupStore,
    LiveAccount,
    PasswordPrompt,
    RestoreFailure,
    RestoreResult,
    WriteAck,
)
from account_keeper.bundle.codec import BundleCodec
from account_keeper.bundle.key_derivation import KeyDerivation
from account_keeper.bundle.models import CredentialRecord
from account_keeper.exceptions import BackupNotFoundError

# Low work factor so the suite stays fast; production default is 600k.
TEST_KDF_ITERATIONS = 1_000


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Point the global AuditLogger at a temp directory for every test."""
    import account_keeper.core.audit_log as audit_mod

    logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")
    monkeypatch.setattr(audit_mod, "_audit_logger", logger)
    yield logger
    logger.close()


@pytest.fixture
def audit_logger(_isolate_audit_logs):
    return _isolate_audit_logs


@pytest.fixture
def fast_kdf():
    return KeyDerivation(iterations=TEST_KDF_ITERATIONS)


@pytest.fixture
def codec(fast_kdf):
    return BundleCodec(fast_kdf)


class StatusLog(list):
    """Collects ``report(message, is_error)`` calls."""

    def __call__(self, message: str, is_error: bool) -> None:
        self.append((message, is_error))

    @property
    def errors(self) -> List[str]:
        return [m for m, is_error in self if is_error]

    @property
    def infos(self) -> List[str]:
        return [m for m, is_error in self if not is_error]


@pytest.fixture
def statuses():
    return StatusLog()


class InMemoryStore(BackupStore):
    """BackupStore fake with call counters and hooks for racing tests.

    ``list_gate``: when set, list_backups() waits on it.
    ``visibility_lag``: list reads after a write that still miss the new name.
    """

    def __init__(self, backups: Optional[Dict[str, bytes]] = None, live: Optional[LiveAccount] = None):
        self.backups: Dict[str, bytes] = dict(backups or {})
        self.live = live
        self.live_payload = b'{"email": "live"}'
        self.list_calls = 0
        self.writes: List[str] = []
        self.deletes: List[str] = []
        self.applied: List[str] = []
        self.restored: List[CredentialRecord] = []
        self.list_gate: Optional[asyncio.Event] = None
        self.delete_gate: Optional[asyncio.Event] = None
        self.fail_list: Optional[Exception] = None
        self.fail_current: Optional[Exception] = None
        self.fail_restore: set = set()
        self.visibility_lag = 0
        self._pending: Dict[str, bytes] = {}

    async def list_backups(self) -> List[str]:
        self.list_calls += 1
        if self.list_gate is not None:
            await self.list_gate.wait()
        if self.fail_list is not None:
            raise self.fail_list
        if self._pending:
            if self.visibility_lag > 0:
                self.visibility_lag -= 1
            else:
                self.backups.update(self._pending)
                self._pending.clear()
        return sorted(self.backups)

    async def get_current_account(self) -> Optional[LiveAccount]:
        if self.fail_current is not None:
            raise self.fail_current
        return self.live

    async def write_backup(self, name: str) -> WriteAck:
        self.writes.append(name)
        self._pending[name] = self.live_payload
        return WriteAck(name=name)

    async def delete_backup(self, name: str) -> None:
        if self.delete_gate is not None:
            await self.delete_gate.wait()
        self.deletes.append(name)
        if name not in self.backups:
            raise BackupNotFoundError(name)
        del self.backups[name]

    async def clear_all_backups(self) -> int:
        removed = len(self.backups)
        self.backups.clear()
        return removed

    async def apply_backup(self, name: str) -> None:
        if name not in self.backups:
            raise BackupNotFoundError(name)
        self.applied.append(name)

    async def collect_records(self) -> List[CredentialRecord]:
        return [
            CredentialRecord(name=name, payload=payload, metadata={"filename": f"{name}.json"})
            for name, payload in sorted(self.backups.items())
        ]

    async def restore_records(self, records: Sequence[CredentialRecord]) -> RestoreResult:
        result = RestoreResult()
        for record in records:
            if record.name in self.fail_restore:
                result.failed.append(RestoreFailure(record.name, "disk full"))
                continue
            self.backups[record.name] = record.payload
            self.restored.append(record)
            result.restored_count += 1
        return result


@pytest.fixture
def store():
    return InMemoryStore()


class ScriptedPrompt(PasswordPrompt):
    """Returns queued answers and records every ask() call."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    async def ask(self, title, require_confirmation, validate):
        self.calls.append((title, require_confirmation))
        return self.answers.pop(0)


@pytest.fixture
def make_prompt():
    return ScriptedPrompt


@pytest.fixture
def make_store():
    return InMemoryStore
