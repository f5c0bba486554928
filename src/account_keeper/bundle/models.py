"""Data model for exported account bundles.

CredentialRecord  - one saved account, payload kept as opaque bytes
CredentialBundle  - ordered records + format version + creation time
EncryptedContainer - the on-disk artifact produced by BundleCodec
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..exceptions import ContainerFormatError

# Bundle version - increment when the plaintext record layout changes
BUNDLE_VERSION = 1
SUPPORTED_BUNDLE_VERSIONS = (1,)

# Container version - increment when the envelope or cipher suite changes
CONTAINER_VERSION = 1
SUPPORTED_CONTAINER_VERSIONS = (1,)
CONTAINER_FORMAT = "account-keeper-bundle"
KDF_NAME = "pbkdf2-sha256"


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(value: Any, field_name: str) -> bytes:
    """Decode a base64 field, raising ContainerFormatError on bad input."""
    if not isinstance(value, str):
        raise ContainerFormatError(f"Field '{field_name}' must be a base64 string")
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ContainerFormatError(f"Field '{field_name}' is not valid base64") from e


@dataclass
class CredentialRecord:
    """One saved account.

    ``name`` is the exact, unmasked backup name.  ``payload`` is whatever the
    store captured for the account; it is carried byte-for-byte and never
    parsed here.
    """
    name: str
    payload: bytes
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "payload": b64encode(self.payload),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CredentialRecord":
        if not isinstance(d, dict):
            raise ContainerFormatError("Record entry must be an object")
        name = d.get("name")
        if not isinstance(name, str) or not name:
            raise ContainerFormatError("Record entry is missing a name")
        metadata = d.get("metadata", {})
        if not isinstance(metadata, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in metadata.items()
        ):
            raise ContainerFormatError(f"Record '{name}' has invalid metadata")
        return cls(
            name=name,
            payload=b64decode(d.get("payload"), "payload"),
            metadata=dict(metadata),
        )


@dataclass
class CredentialBundle:
    """Everything an export carries: the records plus version and timestamp."""
    records: List[CredentialRecord] = field(default_factory=list)
    version: int = BUNDLE_VERSION
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "records": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CredentialBundle":
        if not isinstance(d, dict):
            raise ContainerFormatError("Bundle must be an object")
        version = d.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            raise ContainerFormatError("Bundle is missing an integer version")
        try:
            created_at = datetime.fromisoformat(d["created_at"])
        except (KeyError, TypeError, ValueError) as e:
            raise ContainerFormatError("Bundle has an invalid creation timestamp") from e
        records = d.get("records")
        if not isinstance(records, list):
            raise ContainerFormatError("Bundle records must be a list")
        return cls(
            records=[CredentialRecord.from_dict(r) for r in records],
            version=version,
            created_at=created_at,
        )

    def to_bytes(self) -> bytes:
        """Deterministic serialization: sorted keys, no insignificant whitespace."""
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "CredentialBundle":
        try:
            parsed = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ContainerFormatError("Decrypted bundle is not valid JSON") from e
        return cls.from_dict(parsed)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.records]


@dataclass(frozen=True)
class EncryptedContainer:
    """Encrypted, authenticated form of a CredentialBundle.

    Serialized as JSON with ``version`` as the first key so later formats stay
    detectable before anything else is parsed.
    """
    version: int
    salt: bytes
    nonce: bytes
    ciphertext: bytes
    kdf_iterations: int
    format: str = CONTAINER_FORMAT
    kdf_name: str = KDF_NAME

    def header(self) -> dict:
        return {
            "version": self.version,
            "format": self.format,
            "kdf": {"name": self.kdf_name, "iterations": self.kdf_iterations},
            "salt": b64encode(self.salt),
        }

    def associated_data(self) -> bytes:
        """Canonical header bytes bound into the GCM tag."""
        return json.dumps(self.header(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    def to_dict(self) -> dict:
        d = self.header()
        d["nonce"] = b64encode(self.nonce)
        d["ciphertext"] = b64encode(self.ciphertext)
        return d

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), indent=2).encode("utf-8")
