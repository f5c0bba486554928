"""Account Keeper - encrypted account bundles."""

from .codec import BundleCodec
from .key_derivation import KeyDerivation
from .models import (
    BUNDLE_VERSION,
    CONTAINER_VERSION,
    SUPPORTED_BUNDLE_VERSIONS,
    SUPPORTED_CONTAINER_VERSIONS,
    CredentialBundle,
    CredentialRecord,
    EncryptedContainer,
)
from .password_policy import PasswordCheck, PasswordPolicy

__all__ = [
    "BUNDLE_VERSION",
    "CONTAINER_VERSION",
    "SUPPORTED_BUNDLE_VERSIONS",
    "SUPPORTED_CONTAINER_VERSIONS",
    "BundleCodec",
    "CredentialBundle",
    "CredentialRecord",
    "EncryptedContainer",
    "KeyDerivation",
    "PasswordCheck",
    "PasswordPolicy",
]
