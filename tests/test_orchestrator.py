"""
Tests for ExportImportOrchestrator - export and import flows end to end,
with an in-memory store and a scripted password prompt.
"""

import base64
import json
from unittest.mock import AsyncMock

import pytest

from account_keeper.backup.contracts import PROMPT_CANCELLED, PasswordEntry
from account_keeper.backup.orchestrator import EXPORT_TITLE, IMPORT_TITLE, ExportImportOrchestrator
from account_keeper.bundle.models import BUNDLE_VERSION, CONTAINER_VERSION, CredentialBundle, CredentialRecord
from account_keeper.bundle.password_policy import PasswordPolicy
from account_keeper.exceptions import (
    AuthenticationFailed,
    ContainerFormatError,
    NoDataError,
    StoreError,
    UnsupportedVersion,
    ValidationError,
)

PASSWORD = "Str0ngPass!"
ALICE = "alice@example.com"
BOB = "bob@example.com"


@pytest.fixture
def two_accounts(make_store):
    return make_store({
        ALICE: b'{"email": "alice@example.com", "apiKey": "sk-a"}',
        BOB: b'{"email": "bob@example.com", "userStatusProtoBinaryBase64": "AAEC"}',
    })


def _orchestrator(store, codec, prompt, statuses, after_import=None):
    return ExportImportOrchestrator(
        store, codec, PasswordPolicy(), prompt, statuses, after_import=after_import,
    )


async def _export(tmp_path, store, codec, make_prompt, statuses):
    dest = tmp_path / "accounts.akb"
    prompt = make_prompt(PasswordEntry(PASSWORD, PASSWORD))
    await _orchestrator(store, codec, prompt, statuses).export_bundle(dest)
    return dest


# ── Export ──────────────────────────────────────────────────────────


class TestExport:

    @pytest.mark.asyncio
    async def test_export_two_accounts(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        dest = tmp_path / "out" / "accounts.akb"
        prompt = make_prompt(PasswordEntry(PASSWORD, PASSWORD))

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert result.success is True
        assert result.path == dest
        assert result.record_count == 2
        assert statuses == [(f"Bundle saved: {dest}", False)]
        assert prompt.calls == [(EXPORT_TITLE, True)]

        bundle = codec.loads(dest.read_bytes(), PASSWORD)
        assert bundle.version == BUNDLE_VERSION
        assert bundle.names == [ALICE, BOB]
        assert bundle.records[0].payload == two_accounts.backups[ALICE]

    @pytest.mark.asyncio
    async def test_nothing_to_export_never_prompts(self, tmp_path, store, codec, make_prompt, statuses):
        prompt = make_prompt()
        dest = tmp_path / "accounts.akb"

        result = await _orchestrator(store, codec, prompt, statuses).export_bundle(dest)

        assert result.success is False
        assert isinstance(result.error, NoDataError)
        assert prompt.calls == []
        assert not dest.exists()
        assert len(statuses.errors) == 1

    @pytest.mark.asyncio
    async def test_cancelled_prompt_writes_nothing(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        dest = tmp_path / "accounts.akb"
        prompt = make_prompt(PROMPT_CANCELLED)

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert result.cancelled is True
        assert result.success is False
        assert not dest.exists()
        assert list(dest.parent.glob("*.akb*")) == []
        assert statuses == [("Export cancelled", False)]

    @pytest.mark.asyncio
    async def test_confirmation_mismatch_is_invalid(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        dest = tmp_path / "accounts.akb"
        prompt = make_prompt(PasswordEntry(PASSWORD, "Str0ngPass?"))

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert isinstance(result.error, ValidationError)
        assert "do not match" in result.message
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_missing_confirmation_is_invalid(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        dest = tmp_path / "accounts.akb"
        prompt = make_prompt(PasswordEntry(PASSWORD))

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert isinstance(result.error, ValidationError)
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_weak_password_rejected(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        dest = tmp_path / "accounts.akb"
        prompt = make_prompt(PasswordEntry("short", "short"))

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert isinstance(result.error, ValidationError)
        assert statuses.errors == [result.message]
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_export_overwrites_destination_atomically(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        dest = tmp_path / "accounts.akb"
        dest.write_bytes(b"previous")
        prompt = make_prompt(PasswordEntry(PASSWORD, PASSWORD))

        await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert codec.loads(dest.read_bytes(), PASSWORD).names == [ALICE, BOB]
        assert [p.name for p in dest.parent.glob("*accounts.akb*")] == ["accounts.akb"]

    @pytest.mark.asyncio
    async def test_unwritable_destination_reported(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file")
        prompt = make_prompt(PasswordEntry(PASSWORD, PASSWORD))

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(
            blocker / "accounts.akb"
        )

        assert result.success is False
        assert len(statuses.errors) == 1


# ── Import ──────────────────────────────────────────────────────────


class TestImport:

    @pytest.mark.asyncio
    async def test_import_restores_records(self, tmp_path, two_accounts, store, codec, make_prompt, statuses):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        refresh = AsyncMock()
        prompt = make_prompt(PasswordEntry(PASSWORD))

        result = await _orchestrator(store, codec, prompt, statuses, after_import=refresh).import_bundle(src)

        assert result.success is True
        assert result.record_count == 2
        assert store.backups == two_accounts.backups
        assert prompt.calls == [(IMPORT_TITLE, False)]
        assert statuses == [("Imported 2 account(s) (bundle version 1)", False)]
        refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wrong_password_is_generic(self, tmp_path, two_accounts, store, codec, make_prompt, statuses):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        prompt = make_prompt(PasswordEntry("Wr0ngPassword"))

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert isinstance(result.error, AuthenticationFailed)
        assert statuses == [("Import failed: incorrect password or corrupted file", True)]
        assert store.backups == {}

    @pytest.mark.asyncio
    async def test_corrupted_file_same_message_as_wrong_password(
        self, tmp_path, two_accounts, store, codec, make_prompt, statuses
    ):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        doc = json.loads(src.read_bytes())
        ct = bytearray(codec.parse_container(src.read_bytes()).ciphertext)
        ct[5] ^= 0x80
        doc["ciphertext"] = base64.b64encode(bytes(ct)).decode()
        src.write_text(json.dumps(doc))
        prompt = make_prompt(PasswordEntry(PASSWORD))

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert isinstance(result.error, AuthenticationFailed)
        assert statuses == [("Import failed: incorrect password or corrupted file", True)]

    @pytest.mark.asyncio
    async def test_not_a_container_fails_before_prompt(self, tmp_path, store, codec, make_prompt, statuses):
        src = tmp_path / "notes.txt"
        src.write_text("hello")
        prompt = make_prompt()

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert isinstance(result.error, ContainerFormatError)
        assert prompt.calls == []
        assert len(statuses.errors) == 1

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path, store, codec, make_prompt, statuses):
        prompt = make_prompt()
        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(tmp_path / "nope.akb")
        assert isinstance(result.error, ContainerFormatError)
        assert prompt.calls == []

    @pytest.mark.asyncio
    async def test_future_container_version_rejected(
        self, tmp_path, two_accounts, store, codec, make_prompt, statuses
    ):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        doc = json.loads(src.read_bytes())
        doc["version"] = CONTAINER_VERSION + 1
        src.write_text(json.dumps(doc))
        prompt = make_prompt()

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert isinstance(result.error, UnsupportedVersion)
        assert statuses == [(f"Import failed: unsupported bundle version {CONTAINER_VERSION + 1}", True)]
        assert prompt.calls == []
        assert store.backups == {}
        assert store.restored == []

    @pytest.mark.asyncio
    async def test_future_bundle_version_rejected(self, tmp_path, store, codec, make_prompt, statuses):
        future = CredentialBundle(
            records=[CredentialRecord(name=ALICE, payload=b"{}")],
            version=BUNDLE_VERSION + 1,
        )
        src = tmp_path / "future.akb"
        src.write_bytes(codec.dumps(future, PASSWORD))
        prompt = make_prompt(PasswordEntry(PASSWORD))

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert isinstance(result.error, UnsupportedVersion)
        assert "unsupported bundle version" in result.message
        assert store.backups == {}

    @pytest.mark.asyncio
    async def test_cancelled_import_changes_nothing(self, tmp_path, two_accounts, store, codec, make_prompt, statuses):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        refresh = AsyncMock()
        prompt = make_prompt(PROMPT_CANCELLED)

        result = await _orchestrator(store, codec, prompt, statuses, after_import=refresh).import_bundle(src)

        assert result.cancelled is True
        assert store.backups == {}
        refresh.assert_not_awaited()
        assert statuses == [("Import cancelled", False)]

    @pytest.mark.asyncio
    async def test_import_password_checked_by_same_policy(
        self, tmp_path, two_accounts, store, codec, make_prompt, statuses
    ):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        prompt = make_prompt(PasswordEntry("weak"))

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert isinstance(result.error, ValidationError)
        assert store.backups == {}

    @pytest.mark.asyncio
    async def test_partial_restore_reported_as_error(
        self, tmp_path, two_accounts, store, codec, make_prompt, statuses
    ):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        store.fail_restore = {BOB}
        prompt = make_prompt(PasswordEntry(PASSWORD))

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert result.success is False
        assert result.record_count == 1
        assert list(store.backups) == [ALICE]
        assert statuses == [(f"Imported 1 account(s); failed: {BOB} (disk full)", True)]


# ── Collaborator faults ─────────────────────────────────────────────


class TestUnexpectedFailures:

    @pytest.mark.asyncio
    async def test_export_data_check_crash(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        two_accounts.has_exportable_data = AsyncMock(side_effect=RuntimeError("host crashed"))
        dest = tmp_path / "accounts.akb"
        prompt = make_prompt()

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert result.success is False
        assert isinstance(result.error, StoreError)
        assert statuses.errors == ["Export failed: host crashed"]
        assert len(statuses) == 1
        assert prompt.calls == []
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_export_collect_crash(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        two_accounts.collect_records = AsyncMock(side_effect=RuntimeError("host crashed"))
        dest = tmp_path / "accounts.akb"
        prompt = make_prompt(PasswordEntry(PASSWORD, PASSWORD))

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert result.success is False
        assert len(statuses.errors) == 1
        assert len(statuses) == 1
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_export_prompt_crash(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        prompt = make_prompt()
        prompt.ask = AsyncMock(side_effect=RuntimeError("dialog closed"))
        dest = tmp_path / "accounts.akb"

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert result.success is False
        assert statuses.errors == ["Export failed: dialog closed"]
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_import_restore_crash(self, tmp_path, two_accounts, store, codec, make_prompt, statuses):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        store.restore_records = AsyncMock(side_effect=RuntimeError("host crashed"))
        refresh = AsyncMock()
        prompt = make_prompt(PasswordEntry(PASSWORD))

        result = await _orchestrator(store, codec, prompt, statuses, after_import=refresh).import_bundle(src)

        assert result.success is False
        assert isinstance(result.error, StoreError)
        assert statuses == [("Import failed: host crashed", True)]
        assert store.backups == {}
        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_export_unencodable_password(self, tmp_path, two_accounts, codec, make_prompt, statuses):
        password = "Str0ngPass\udc80"
        dest = tmp_path / "accounts.akb"
        prompt = make_prompt(PasswordEntry(password, password))

        result = await _orchestrator(two_accounts, codec, prompt, statuses).export_bundle(dest)

        assert isinstance(result.error, ValidationError)
        assert len(statuses.errors) == 1
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_import_unencodable_password(self, tmp_path, two_accounts, store, codec, make_prompt, statuses):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        prompt = make_prompt(PasswordEntry("Str0ngPass\udc80"))

        result = await _orchestrator(store, codec, prompt, statuses).import_bundle(src)

        assert isinstance(result.error, ValidationError)
        assert statuses.errors == [result.message]
        assert len(statuses) == 1
        assert store.backups == {}

    @pytest.mark.asyncio
    async def test_failing_post_import_hook_keeps_success(
        self, tmp_path, two_accounts, store, codec, make_prompt, statuses
    ):
        src = await _export(tmp_path, two_accounts, codec, make_prompt, statuses)
        statuses.clear()
        refresh = AsyncMock(side_effect=RuntimeError("refresh crashed"))
        prompt = make_prompt(PasswordEntry(PASSWORD))

        result = await _orchestrator(store, codec, prompt, statuses, after_import=refresh).import_bundle(src)

        assert result.success is True
        assert statuses.errors == []
        refresh.assert_awaited_once()
