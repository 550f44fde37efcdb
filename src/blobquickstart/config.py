import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigInvalidError

ACCOUNT_NAME_FIELD = "azure_storage_account_name"
ACCOUNT_KEY_FIELD = "azure_storage_access_key"

DEFAULT_CREDENTIALS_FILE = "credentials.json"
DEFAULT_ENDPOINT_SUFFIX = "blob.core.windows.net"

MiB = 1024 * 1024


@dataclass(frozen=True)
class Credentials:
    account_name: str
    account_key: str = field(repr=False)


@dataclass(frozen=True)
class TransferOptions:
    """Tuning knobs for the upload and download workflows."""

    block_size: int = 4 * MiB
    parallelism: int = 16
    single_put_threshold: int = 256 * MiB  # Largest payload sent as one put-blob
    max_block_retries: int = 3
    retry_backoff: float = 0.5  # Seconds, doubled per attempt
    max_retry_requests: int = 20  # Range re-issues allowed per download

    def __post_init__(self) -> None:
        if self.block_size <= 0:
            raise ValueError("block_size must be positive")
        if self.parallelism <= 0:
            raise ValueError("parallelism must be positive")
        if self.single_put_threshold < 0:
            raise ValueError("single_put_threshold must not be negative")
        if self.max_block_retries < 0 or self.max_retry_requests < 0:
            raise ValueError("retry counts must not be negative")


def load_credentials(path: str | os.PathLike) -> Credentials:
    """
    Read account name and key from a JSON credentials file.
    Raises ConfigInvalidError if the file is unusable or a field is empty.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigInvalidError(f"Cannot read credentials file '{path}': {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigInvalidError(f"Credentials file '{path}' is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigInvalidError(f"Credentials file '{path}' must hold a JSON object")

    account_name = data.get(ACCOUNT_NAME_FIELD)
    account_key = data.get(ACCOUNT_KEY_FIELD)
    if not isinstance(account_name, str) or not isinstance(account_key, str):
        raise ConfigInvalidError(
            f"Both '{ACCOUNT_NAME_FIELD}' and '{ACCOUNT_KEY_FIELD}' must be strings"
        )
    if not account_name or not account_key:
        raise ConfigInvalidError(
            "Either the azure_storage_account_name or azure_storage_access_key "
            "variable is empty"
        )
    return Credentials(account_name=account_name, account_key=account_key)


@dataclass(frozen=True)
class QuickstartSettings:
    credentials_file: Path = Path(DEFAULT_CREDENTIALS_FILE)
    endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX
    local_store: Path | None = None  # Run against LocalFileAdapter instead of Azure
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "QuickstartSettings":
        """Build settings from QUICKSTART_* environment variables (and .env)."""
        if dotenv:
            load_dotenv()
        local_store = os.environ.get("QUICKSTART_LOCAL_STORE")
        return cls(
            credentials_file=Path(
                os.environ.get("QUICKSTART_CREDENTIALS_FILE", DEFAULT_CREDENTIALS_FILE)
            ),
            endpoint_suffix=os.environ.get(
                "QUICKSTART_ENDPOINT_SUFFIX", DEFAULT_ENDPOINT_SUFFIX
            ),
            local_store=Path(local_store) if local_store else None,
            log_level=os.environ.get("QUICKSTART_LOG_LEVEL", "INFO").upper(),
        )
