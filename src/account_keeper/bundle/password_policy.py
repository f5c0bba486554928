# Bundle Password Policy
#
# One rule set shared by export (new password) and import (existing
# password).  Each option toggles exactly one check so both flows always
# accept the same passwords.

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

# Common weak passwords (minimal list)
WEAK_PASSWORDS = frozenset({
    "password123", "Password123", "Password1", "Admin123456",
    "Welcome12345", "Passw0rd123", "Passw0rd", "123456789012", "Qwerty123",
})

SYMBOLS = set("!@#$%^&*()-_=+[]{};:'\",.<>/?\\|`~")


@dataclass(frozen=True)
class PasswordCheck:
    """Outcome of PasswordPolicy.validate()."""
    is_valid: bool
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.is_valid


@dataclass(frozen=True)
class PasswordPolicy:
    """Configurable password rules.

    Recognized options (see ``from_options``): min_length, max_length,
    require_mixed_case, require_digit, require_symbol, reject_common.
    """
    min_length: int = 8
    max_length: int = 1024
    require_mixed_case: bool = True
    require_digit: bool = True
    require_symbol: bool = False
    reject_common: bool = True

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "PasswordPolicy":
        """Build a policy from an options mapping; unknown keys are an error."""
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown password policy option(s): {', '.join(sorted(unknown))}")
        policy = cls(**options)
        if policy.min_length < 1 or policy.max_length < policy.min_length:
            raise ValueError("Password policy lengths are inconsistent")
        return policy

    def validate(self, password: str) -> PasswordCheck:
        try:
            password.encode("utf-8")
        except UnicodeEncodeError:
            return PasswordCheck(False, "Password contains characters that cannot be used")

        if len(password) < self.min_length:
            return PasswordCheck(False, f"Password must be at least {self.min_length} characters long")

        if len(password) > self.max_length:
            return PasswordCheck(False, f"Password must be at most {self.max_length} characters long")

        if self.require_mixed_case:
            if not any(c.isupper() for c in password):
                return PasswordCheck(False, "Password must contain at least one uppercase letter")
            if not any(c.islower() for c in password):
                return PasswordCheck(False, "Password must contain at least one lowercase letter")

        if self.require_digit and not any(c.isdigit() for c in password):
            return PasswordCheck(False, "Password must contain at least one number")

        if self.require_symbol and not any(c in SYMBOLS for c in password):
            return PasswordCheck(False, "Password must contain at least one symbol")

        if self.reject_common and password in WEAK_PASSWORDS:
            return PasswordCheck(False, "This password is too common. Please choose a stronger password.")

        return PasswordCheck(True)

    def validate_confirmed(self, password: str, confirmation: Optional[str]) -> PasswordCheck:
        """Validate a password entered twice; a mismatch counts as invalid."""
        if confirmation is not None and password != confirmation:
            return PasswordCheck(False, "Passwords do not match")
        return self.validate(password)
