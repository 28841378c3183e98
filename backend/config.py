"""
Application configuration with Docker secrets support.

Secrets are read using the _read_secret() pattern:
  1. Direct env var (e.g., POSTGRES_PASSWORD)
  2. File-based env var (e.g., POSTGRES_PASSWORD_FILE → reads file path)
  3. Raises ValueError if neither is set

Storage limits are read once at startup and are not tunable at runtime.
"""

import os
import logging

logger = logging.getLogger(__name__)


def _read_secret(env_var: str, file_env_var: str | None = None) -> str:
    """Read a secret from env var or Docker secrets file.

    Args:
        env_var: Direct environment variable name (e.g., POSTGRES_PASSWORD)
        file_env_var: File path env var name (e.g., POSTGRES_PASSWORD_FILE).
                      If None, defaults to env_var + '_FILE'.

    Returns:
        The secret value.

    Raises:
        ValueError: If neither source provides a value.
    """
    if file_env_var is None:
        file_env_var = f"{env_var}_FILE"

    value = os.environ.get(env_var)
    if value:
        return value

    file_path = os.environ.get(file_env_var)
    if file_path:
        try:
            with open(file_path, "r") as f:
                value = f.read().strip()
            if value:
                return value
        except FileNotFoundError:
            logger.error(f"Secret file not found: {file_path} (from {file_env_var})")
        except PermissionError:
            logger.error(f"Permission denied reading: {file_path} (from {file_env_var})")

    raise ValueError(
        f"Secret not configured. Set {env_var} env var or {file_env_var} pointing to a file."
    )


def _positive_int(env_var: str, default: int) -> int:
    value = int(os.environ.get(env_var, str(default)))
    if value <= 0:
        raise ValueError(f"{env_var} must be a positive integer, got {value}")
    return value


def _positive_float(env_var: str, default: float) -> float:
    value = float(os.environ.get(env_var, str(default)))
    if value <= 0:
        raise ValueError(f"{env_var} must be a positive number, got {value}")
    return value


class Settings:
    """Application settings loaded from environment and Docker secrets."""

    def __init__(self):
        # Database
        self.database_url = self._build_database_url()

        # Storage limits
        self.file_id_offset = _positive_int("FILE_ID_OFFSET", 1234)
        self.max_file_size = _positive_int("MAX_FILE_SIZE", 100_000_000)
        self.max_total_capacity = _positive_int("MAX_TOTAL_CAPACITY", 300_000_000)
        self.retention_days = _positive_int("RETENTION_DAYS", 1)

        # Background sweep and write retries
        self.sweep_interval_seconds = _positive_float("SWEEP_INTERVAL_SECONDS", 3600)
        self.store_write_attempts = _positive_int("STORE_WRITE_ATTEMPTS", 5)
        self.store_retry_backoff_seconds = _positive_float("STORE_RETRY_BACKOFF_SECONDS", 0.5)

    def _build_database_url(self) -> str:
        """Build async database URL with password from secrets."""
        base_url = os.environ.get(
            "DATABASE_URL", "postgresql+asyncpg://filedrop@postgres:5432/filedrop"
        )
        try:
            password = _read_secret("POSTGRES_PASSWORD")
            # Insert password into URL: postgresql+asyncpg://user@host → user:pass@host
            if "://" in base_url and "@" in base_url:
                scheme_user, rest = base_url.split("@", 1)
                if ":" not in scheme_user.split("://")[1]:
                    base_url = f"{scheme_user}:{password}@{rest}"
        except ValueError:
            logger.warning("POSTGRES_PASSWORD not set, using DATABASE_URL as-is")
        return base_url


settings = Settings()
