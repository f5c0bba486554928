# Account Keeper - Command Line Entry Point
#
# Console front end over the coordinator and the export/import
# orchestrator.  Status lines go to stdout, errors to stderr; the exit
# status is 1 when any reported status was an error.

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from . import __version__
from .backup import (
    PROMPT_CANCELLED,
    BackupLifecycleCoordinator,
    ExportImportOrchestrator,
    FileBackupStore,
    PasswordEntry,
    PasswordPrompt,
)
from .bundle import BundleCodec, PasswordCheck
from .core import Settings, configure_audit_logger


def mask_backup_name(name: str) -> str:
    """Hide the middle of a backup name for display.

    ``alice.smith@example.com`` -> ``al*******th@example.com``.  Only the
    local part of an email-like name is masked.
    """
    local, at, domain = name.partition("@")
    if len(local) <= 2:
        masked = local[:1] + "*" * (len(local) - 1)
    elif len(local) <= 4:
        masked = local[0] + "*" * (len(local) - 2) + local[-1]
    else:
        masked = local[:2] + "*" * (len(local) - 4) + local[-2:]
    return masked + at + domain


class ConsoleStatus:
    """``report(message, is_error)`` sink writing to the console."""

    def __init__(self, out=None, err=None):
        self._out = out or sys.stdout
        self._err = err or sys.stderr
        self.had_error = False

    def __call__(self, message: str, is_error: bool) -> None:
        if is_error:
            self.had_error = True
            print(f"[ERROR] {message}", file=self._err)
        else:
            print(f"[OK] {message}", file=self._out)


class ConsolePasswordPrompt(PasswordPrompt):
    """Password prompt on the terminal; an empty entry or Ctrl-C cancels."""

    def __init__(self, read: Callable[[str], str] = getpass.getpass):
        self._read = read

    async def ask(self, title, require_confirmation, validate):
        return await asyncio.to_thread(self._ask_blocking, title, require_confirmation, validate)

    def _ask_blocking(self, title, require_confirmation, validate):
        try:
            password = self._read(f"{title} - password: ")
            if not password:
                return PROMPT_CANCELLED
            check: PasswordCheck = validate(password)
            if not check.is_valid:
                print(f"  {check.message}", file=sys.stderr)
            confirmation = None
            if require_confirmation:
                confirmation = self._read(f"{title} - confirm password: ")
        except (EOFError, KeyboardInterrupt):
            return PROMPT_CANCELLED
        return PasswordEntry(password, confirmation)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="account-keeper",
        description="Back up, switch and transfer saved accounts",
    )
    parser.add_argument("--version", action="version", version=f"Account Keeper v{__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show diagnostic logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="List saved accounts")
    p_list.add_argument("--reveal", action="store_true", help="Show full, unmasked names")

    p_recent = sub.add_parser("recent", help="List most recently saved accounts")
    p_recent.add_argument("--limit", type=int, default=5)
    p_recent.add_argument("--reveal", action="store_true", help="Show full, unmasked names")

    p_refresh = sub.add_parser("refresh", help="Back up the signed-in account and list accounts")
    p_refresh.add_argument("--no-auto-backup", action="store_true", help="Only re-read the list")

    p_delete = sub.add_parser("delete", help="Delete one saved account")
    p_delete.add_argument("name")

    p_clear = sub.add_parser("clear", help="Delete every saved account")
    p_clear.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    p_switch = sub.add_parser("switch", help="Make a saved account the live one")
    p_switch.add_argument("name")

    p_export = sub.add_parser("export", help="Write all accounts to an encrypted bundle")
    p_export.add_argument("path", type=Path)

    p_import = sub.add_parser("import", help="Restore accounts from an encrypted bundle")
    p_import.add_argument("path", type=Path)

    return parser


def _print_names(names: List[str], reveal: bool) -> None:
    if not names:
        print("No saved accounts")
        return
    for name in names:
        print(f"  {name if reveal else mask_backup_name(name)}")


async def run(args: argparse.Namespace, settings: Settings, status: ConsoleStatus,
              prompt: Optional[PasswordPrompt] = None) -> None:
    store = FileBackupStore(settings.backup_dir, settings.live_account_file)
    coordinator = BackupLifecycleCoordinator(
        store,
        status,
        write_verify_attempts=settings.write_verify_attempts,
        write_verify_delay=settings.write_verify_delay,
    )
    orchestrator = ExportImportOrchestrator(
        store,
        BundleCodec(settings.key_derivation()),
        settings.password_policy(),
        prompt or ConsolePasswordPrompt(),
        status,
        after_import=lambda: coordinator.refresh(skip_auto_backup=True),
    )

    if args.command == "list":
        result = await coordinator.refresh(skip_auto_backup=True)
        if result.success:
            _print_names(list(result.snapshot), args.reveal)
    elif args.command == "recent":
        _print_names(await store.recent_backups(args.limit), args.reveal)
    elif args.command == "refresh":
        result = await coordinator.refresh(skip_auto_backup=args.no_auto_backup)
        if result.success:
            _print_names(list(result.snapshot), reveal=False)
    elif args.command == "delete":
        await coordinator.delete(args.name)
    elif args.command == "clear":
        if not args.yes:
            answer = await asyncio.to_thread(input, "Delete ALL saved accounts? [y/N] ")
            if answer.strip().lower() not in ("y", "yes"):
                status("Clear cancelled", False)
                return
        await coordinator.clear_all()
    elif args.command == "switch":
        await coordinator.switch_to(args.name)
    elif args.command == "export":
        await orchestrator.export_bundle(args.path)
    elif args.command == "import":
        await orchestrator.import_bundle(args.path)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for Account Keeper."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"[ERROR] Invalid configuration: {e}", file=sys.stderr)
        return 2
    configure_audit_logger(settings.audit_log_dir)

    status = ConsoleStatus()
    try:
        asyncio.run(run(args, settings, status))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    return 1 if status.had_error else 0


if __name__ == "__main__":
    sys.exit(main())
