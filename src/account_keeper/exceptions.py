"""
Account Keeper Exception Classes

Every failure the core can report is one of these.  The orchestrator and
coordinator catch them at their boundary and turn them into a single status
message; nothing here is meant to reach the user as a traceback.
"""


class AccountKeeperError(Exception):
    """Base exception for account keeper operations"""
    pass


class ValidationError(AccountKeeperError):
    """Raised when a password violates the policy or confirmation does not match"""
    pass


class CryptoError(AccountKeeperError):
    """Base class for bundle-level failures.  Never retried automatically."""
    pass


class AuthenticationFailed(CryptoError):
    """Raised when a container does not verify.

    Covers both a wrong password and a damaged or modified file; the two are
    deliberately indistinguishable.
    """

    def __init__(self, message: str = "Incorrect password or corrupted file."):
        super().__init__(message)


class UnsupportedVersion(CryptoError):
    """Raised when a container or bundle declares a version this build cannot read"""

    def __init__(self, version, supported=None):
        self.version = version
        self.supported = tuple(supported or ())
        super().__init__(f"Unsupported bundle version: {version}")


class ContainerFormatError(AccountKeeperError):
    """Raised when input bytes are not an encrypted container at all"""
    pass


class StoreError(AccountKeeperError):
    """Raised when a call to the backup store fails.  Callers may retry."""
    pass


class BackupNotFoundError(StoreError):
    """Raised when a named backup does not exist"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Backup not found: {name}")


class NoDataError(AccountKeeperError):
    """Raised when an export is requested but there is nothing to export"""
    pass


class CoordinatorBusyError(AccountKeeperError):
    """Raised when a mutation arrives while another coordinator operation runs"""

    def __init__(self, running: str):
        self.running = running
        super().__init__(f"Another operation is in progress: {running}")
