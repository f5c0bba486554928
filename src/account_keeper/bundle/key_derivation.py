# Bundle Key Derivation
#
# Export password -> AES-256 key (PBKDF2-HMAC-SHA256).
# Same (password, salt, iterations) always yields the same key; the
# derivation runs to completion regardless of whether the password is right.

import os

from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.backends import default_backend


class KeyDerivation:
    """Derive bundle keys from a user password and a random salt.

    Args:
        iterations: PBKDF2 work factor used for new exports.  Decoding always
            uses the count recorded in the container.
    """

    PBKDF2_ITERATIONS = 600_000  # OWASP 2023 recommendation for PBKDF2-SHA256
    MIN_ITERATIONS = 1_000       # containers asking for less are rejected
    KEY_LENGTH = 32              # 256 bits for AES-256
    SALT_LENGTH = 32             # 256-bit salt

    def __init__(self, iterations: int = PBKDF2_ITERATIONS):
        if iterations < self.MIN_ITERATIONS:
            raise ValueError(
                f"KDF iterations must be at least {self.MIN_ITERATIONS}, got {iterations}"
            )
        self.iterations = iterations

    def derive(self, password: str, salt: bytes) -> bytes:
        """Derive a 256-bit key from password + salt."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
            backend=default_backend(),
        )
        return kdf.derive(password.encode("utf-8"))

    def with_iterations(self, iterations: int) -> "KeyDerivation":
        if iterations == self.iterations:
            return self
        return KeyDerivation(iterations)

    @classmethod
    def generate_salt(cls) -> bytes:
        """Fresh cryptographically random salt, one per export."""
        return os.urandom(cls.SALT_LENGTH)
