# Account Keeper
#
# Saved account snapshots for a desktop tool: list, back up, delete and
# switch between accounts, and move all of them between machines as one
# password-protected bundle.

__version__ = "0.4.0"
__description__ = "Account snapshot backups with encrypted transfer bundles"

from .exceptions import (
    AccountKeeperError,
    AuthenticationFailed,
    BackupNotFoundError,
    ContainerFormatError,
    CoordinatorBusyError,
    CryptoError,
    NoDataError,
    StoreError,
    UnsupportedVersion,
    ValidationError,
)

__all__ = [
    "__version__",
    "AccountKeeperError",
    "AuthenticationFailed",
    "BackupNotFoundError",
    "ContainerFormatError",
    "CoordinatorBusyError",
    "CryptoError",
    "NoDataError",
    "StoreError",
    "UnsupportedVersion",
    "ValidationError",
]
