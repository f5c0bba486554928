"""Bundle encryption using AES-256-GCM with PBKDF2 key derivation.

Follows the same cryptographic pattern as the local backup archives:
- PBKDF2-SHA256 for key derivation (work factor recorded in the container)
- AES-256-GCM for authenticated encryption
- Random 32-byte salt + 12-byte nonce per export, never derived from content
- The container header (version, format, kdf, salt) is the GCM associated
  data, so editing any header field breaks the tag

Wrong password and corrupted file both surface as AuthenticationFailed.
"""

import json
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import AuthenticationFailed, ContainerFormatError, UnsupportedVersion
from .key_derivation import KeyDerivation
from .models import (
    CONTAINER_FORMAT,
    CONTAINER_VERSION,
    KDF_NAME,
    SUPPORTED_CONTAINER_VERSIONS,
    CredentialBundle,
    EncryptedContainer,
    b64decode,
)

logger = logging.getLogger(__name__)

NONCE_LENGTH = 12  # 96-bit nonce for GCM
TAG_LENGTH = 16


class BundleCodec:
    """Encode/decode CredentialBundles to password-protected containers.

    Stateless apart from the KDF configuration; safe to share between
    concurrent exports and imports.
    """

    def __init__(self, kdf: KeyDerivation = None):
        self._kdf = kdf or KeyDerivation()

    @property
    def kdf(self) -> KeyDerivation:
        return self._kdf

    def encode(self, bundle: CredentialBundle, password: str) -> EncryptedContainer:
        """Serialize, encrypt and authenticate ``bundle`` under ``password``."""
        plaintext = bundle.to_bytes()
        salt = KeyDerivation.generate_salt()
        nonce = os.urandom(NONCE_LENGTH)
        key = self._kdf.derive(password, salt)

        # Build the header first so it can be bound as associated data.
        unsealed = EncryptedContainer(
            version=CONTAINER_VERSION,
            salt=salt,
            nonce=nonce,
            ciphertext=b"",
            kdf_iterations=self._kdf.iterations,
        )
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, unsealed.associated_data())
        logger.debug(
            "Encoded bundle: %d records, %d ciphertext bytes",
            len(bundle.records), len(ciphertext),
        )
        return EncryptedContainer(
            version=unsealed.version,
            salt=salt,
            nonce=nonce,
            ciphertext=ciphertext,
            kdf_iterations=unsealed.kdf_iterations,
        )

    def decode(self, container: EncryptedContainer, password: str) -> CredentialBundle:
        """Verify and decrypt ``container``.

        Raises:
            UnsupportedVersion: Container version newer than this codec.
            AuthenticationFailed: Wrong password or tampered/corrupted data.
        """
        if container.version not in SUPPORTED_CONTAINER_VERSIONS:
            raise UnsupportedVersion(container.version, SUPPORTED_CONTAINER_VERSIONS)
        if container.kdf_iterations < KeyDerivation.MIN_ITERATIONS:
            raise ContainerFormatError("Bundle key derivation parameters are invalid.")

        kdf = self._kdf.with_iterations(container.kdf_iterations)
        key = kdf.derive(password, container.salt)
        try:
            plaintext = AESGCM(key).decrypt(
                container.nonce, container.ciphertext, container.associated_data()
            )
        except InvalidTag:
            raise AuthenticationFailed() from None
        return CredentialBundle.from_bytes(plaintext)

    def dumps(self, bundle: CredentialBundle, password: str) -> bytes:
        return self.encode(bundle, password).to_bytes()

    def loads(self, data: bytes, password: str) -> CredentialBundle:
        return self.decode(self.parse_container(data), password)

    @staticmethod
    def parse_container(data: bytes) -> EncryptedContainer:
        """Parse container bytes without touching the password.

        The version is checked before any other field so an unknown future
        layout fails closed instead of being half-parsed.

        Raises:
            ContainerFormatError: Not a container (bad JSON, missing fields,
                truncated binary fields, KDF parameters out of range).
            UnsupportedVersion: Version newer than this codec.
        """
        try:
            doc = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ContainerFormatError("File is not an account bundle.") from e
        if not isinstance(doc, dict):
            raise ContainerFormatError("File is not an account bundle.")

        version = doc.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            raise ContainerFormatError("Bundle file has no version field.")
        if version not in SUPPORTED_CONTAINER_VERSIONS:
            raise UnsupportedVersion(version, SUPPORTED_CONTAINER_VERSIONS)

        if doc.get("format") != CONTAINER_FORMAT:
            raise ContainerFormatError("File is not an account bundle.")

        kdf = doc.get("kdf")
        if not isinstance(kdf, dict) or kdf.get("name") != KDF_NAME:
            raise ContainerFormatError("Bundle uses an unknown key derivation.")
        iterations = kdf.get("iterations")
        if (
            not isinstance(iterations, int)
            or isinstance(iterations, bool)
            or iterations < KeyDerivation.MIN_ITERATIONS
        ):
            raise ContainerFormatError("Bundle key derivation parameters are invalid.")

        salt = b64decode(doc.get("salt"), "salt")
        nonce = b64decode(doc.get("nonce"), "nonce")
        ciphertext = b64decode(doc.get("ciphertext"), "ciphertext")
        if len(salt) != KeyDerivation.SALT_LENGTH:
            raise ContainerFormatError("Bundle salt has the wrong length.")
        if len(nonce) != NONCE_LENGTH:
            raise ContainerFormatError("Bundle nonce has the wrong length.")
        if len(ciphertext) < TAG_LENGTH:
            raise ContainerFormatError("Bundle ciphertext is truncated.")

        return EncryptedContainer(
            version=version,
            salt=salt,
            nonce=nonce,
            ciphertext=ciphertext,
            kdf_iterations=iterations,
        )
