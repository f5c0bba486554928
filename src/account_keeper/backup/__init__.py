"""Account Keeper - backup lifecycle and bundle transfer."""

from .contracts import (
    PROMPT_CANCELLED,
    BackupStore,
    LiveAccount,
    PasswordEntry,
    PasswordPrompt,
    PromptCancelled,
    RestoreFailure,
    RestoreResult,
    StatusReporter,
    WriteAck,
)
from .coordinator import (
    AutoBackupStatus,
    BackupLifecycleCoordinator,
    BackupListSnapshot,
    OperationResult,
    RefreshResult,
)
from .file_store import FileBackupStore
from .orchestrator import ExportImportOrchestrator, TransferResult

__all__ = [
    "PROMPT_CANCELLED",
    "AutoBackupStatus",
    "BackupLifecycleCoordinator",
    "BackupListSnapshot",
    "BackupStore",
    "ExportImportOrchestrator",
    "FileBackupStore",
    "LiveAccount",
    "OperationResult",
    "PasswordEntry",
    "PasswordPrompt",
    "PromptCancelled",
    "RefreshResult",
    "RestoreFailure",
    "RestoreResult",
    "StatusReporter",
    "TransferResult",
    "WriteAck",
]
