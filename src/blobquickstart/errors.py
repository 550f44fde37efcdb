from enum import Enum


class ErrorKind(Enum):
    CONFIG_INVALID = "config_invalid"
    INVALID_CREDENTIAL = "invalid_credential"
    INVALID_NAME = "invalid_name"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    INVALID_BLOCK_LIST = "invalid_block_list"
    TRANSIENT = "transient"  # Safe to retry
    UPLOAD_FAILED = "upload_failed"
    DOWNLOAD_FAILED = "download_failed"
    CANCELLED = "cancelled"
    SERVICE = "service"  # Anything the service rejected for another reason


class StorageError(Exception):
    """Base class for every error raised by blobquickstart."""

    kind: ErrorKind = ErrorKind.SERVICE


class ConfigInvalidError(StorageError):
    """Raised when the credentials file is missing, unreadable or incomplete."""

    kind = ErrorKind.CONFIG_INVALID


class InvalidCredentialError(StorageError):
    """Raised when the account name or key is malformed."""

    kind = ErrorKind.INVALID_CREDENTIAL


class InvalidContainerNameError(StorageError):
    """Raised when a container name breaks the service naming rules."""

    kind = ErrorKind.INVALID_NAME


class ContainerAlreadyExistsError(StorageError):
    """Raised when creating a container whose name is taken (HTTP 409)."""

    kind = ErrorKind.ALREADY_EXISTS


class ContainerNotFoundError(StorageError):
    """Raised when a requested container does not exist."""

    kind = ErrorKind.NOT_FOUND


class BlobNotFoundError(StorageError):
    """Raised when a requested blob does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidBlockListError(StorageError):
    """Raised when a commit names a block that was never staged."""

    kind = ErrorKind.INVALID_BLOCK_LIST


class TransientTransportError(StorageError):
    """Raised when a request failed in a way that may succeed on retry."""

    kind = ErrorKind.TRANSIENT


class UploadFailedError(StorageError):
    """Raised when an upload could not be committed."""

    kind = ErrorKind.UPLOAD_FAILED


class DownloadFailedError(StorageError):
    """Raised when a download could not be read to completion."""

    kind = ErrorKind.DOWNLOAD_FAILED


class OperationCancelledError(StorageError):
    """Raised when an operation's scope was cancelled or its deadline passed."""

    kind = ErrorKind.CANCELLED
