"""Runtime configuration.

Values come from the process environment, optionally seeded from a ``.env``
file, all prefixed with ``ACCOUNT_KEEPER_``.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from ..bundle.key_derivation import KeyDerivation
from ..bundle.password_policy import PasswordPolicy

ENV_PREFIX = "ACCOUNT_KEEPER_"
DEFAULT_DATA_DIR = Path.home() / ".account-keeper"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{ENV_PREFIX}{name} must be at least {minimum}, got {value}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{ENV_PREFIX}{name} must not be negative, got {value}")
    return value


def _env_path(env: Mapping[str, str], name: str, default: Path) -> Path:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True)
class Settings:
    """All tunables for the store, codec, policy and coordinator."""
    data_dir: Path = DEFAULT_DATA_DIR
    backup_dir: Path = DEFAULT_DATA_DIR / "accounts"
    live_account_file: Path = DEFAULT_DATA_DIR / "current.json"
    audit_log_dir: Path = DEFAULT_DATA_DIR / "audit_logs"
    kdf_iterations: int = KeyDerivation.PBKDF2_ITERATIONS
    password_min_length: int = 8
    password_require_mixed_case: bool = True
    password_require_digit: bool = True
    password_require_symbol: bool = False
    write_verify_attempts: int = 5
    write_verify_delay: float = 0.05

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Path] = None,
    ) -> "Settings":
        """Build settings from ``env`` (default: ``os.environ`` after loading .env)."""
        if env is None:
            load_dotenv(dotenv_path=dotenv_path)
            env = os.environ

        data_dir = _env_path(env, "DATA_DIR", DEFAULT_DATA_DIR)
        return cls(
            data_dir=data_dir,
            backup_dir=_env_path(env, "BACKUP_DIR", data_dir / "accounts"),
            live_account_file=_env_path(env, "LIVE_ACCOUNT_FILE", data_dir / "current.json"),
            audit_log_dir=_env_path(env, "AUDIT_LOG_DIR", data_dir / "audit_logs"),
            kdf_iterations=_env_int(
                env, "KDF_ITERATIONS", KeyDerivation.PBKDF2_ITERATIONS,
                minimum=KeyDerivation.MIN_ITERATIONS,
            ),
            password_min_length=_env_int(env, "PASSWORD_MIN_LENGTH", 8, minimum=1),
            password_require_mixed_case=_env_bool(env, "PASSWORD_REQUIRE_MIXED_CASE", True),
            password_require_digit=_env_bool(env, "PASSWORD_REQUIRE_DIGIT", True),
            password_require_symbol=_env_bool(env, "PASSWORD_REQUIRE_SYMBOL", False),
            write_verify_attempts=_env_int(env, "WRITE_VERIFY_ATTEMPTS", 5, minimum=1),
            write_verify_delay=_env_float(env, "WRITE_VERIFY_DELAY", 0.05),
        )

    def password_policy(self) -> PasswordPolicy:
        """The single policy shared by export and import."""
        return PasswordPolicy.from_options({
            "min_length": self.password_min_length,
            "require_mixed_case": self.password_require_mixed_case,
            "require_digit": self.password_require_digit,
            "require_symbol": self.password_require_symbol,
        })

    def key_derivation(self) -> KeyDerivation:
        return KeyDerivation(self.kdf_iterations)
