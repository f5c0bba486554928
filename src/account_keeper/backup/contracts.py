"""
Contracts between the core and its host.

BackupStore is the host's command surface (listing, writing, deleting,
switching accounts).  PasswordPrompt and StatusReporter are what the core
needs from the UI.  Every store call may raise StoreError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

from ..bundle.models import CredentialRecord
from ..bundle.password_policy import PasswordCheck

# report(message, is_error)
StatusReporter = Callable[[str, bool], None]


@dataclass(frozen=True)
class LiveAccount:
    """The account currently signed in to the host application."""
    name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class WriteAck:
    """Returned by BackupStore.write_backup once the write is durable."""
    name: str
    location: str = ""


@dataclass(frozen=True)
class RestoreFailure:
    name: str
    error: str


@dataclass
class RestoreResult:
    restored_count: int = 0
    failed: List[RestoreFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class BackupStore(ABC):
    """Host command surface for saved account backups."""

    @abstractmethod
    async def list_backups(self) -> List[str]:
        """All backup names, in display order."""

    @abstractmethod
    async def get_current_account(self) -> Optional[LiveAccount]:
        """The live account, or None when nobody is signed in.

        None is the only "no active account" signal; failures to read the
        live state must raise StoreError instead.
        """

    @abstractmethod
    async def write_backup(self, name: str) -> WriteAck:
        """Snapshot the live account under ``name``, overwriting any existing entry.

        Must not return until a subsequent list_backups() can see ``name``.
        """

    @abstractmethod
    async def delete_backup(self, name: str) -> None:
        """Delete one backup.  Raises BackupNotFoundError if it does not exist."""

    @abstractmethod
    async def clear_all_backups(self) -> int:
        """Delete every backup and return how many were removed."""

    @abstractmethod
    async def apply_backup(self, name: str) -> None:
        """Make the named backup the live account."""

    @abstractmethod
    async def collect_records(self) -> List[CredentialRecord]:
        """Every backup as a CredentialRecord, for export."""

    @abstractmethod
    async def restore_records(self, records: Sequence[CredentialRecord]) -> RestoreResult:
        """Write imported records back as backups."""

    async def has_exportable_data(self) -> bool:
        return len(await self.list_backups()) > 0

    async def recent_backups(self, limit: Optional[int] = None) -> List[str]:
        names = await self.list_backups()
        return names if limit is None else names[:limit]


@dataclass(frozen=True)
class PasswordEntry:
    """Password submitted through the prompt.

    ``confirmation`` is the second entry when confirmation was requested,
    otherwise None.
    """
    password: str
    confirmation: Optional[str] = None


class PromptCancelled:
    """Returned by PasswordPrompt.ask when the user dismisses the dialog."""

    def __repr__(self) -> str:
        return "PROMPT_CANCELLED"


PROMPT_CANCELLED = PromptCancelled()

PromptResult = Union[PasswordEntry, PromptCancelled]


class PasswordPrompt(ABC):
    """Collect a password from the user."""

    @abstractmethod
    async def ask(
        self,
        title: str,
        require_confirmation: bool,
        validate: Callable[[str], PasswordCheck],
    ) -> PromptResult:
        """Suspend until the user submits or cancels.

        ``validate`` is offered so the UI can give inline feedback; the
        caller validates the returned entry again regardless.
        """
