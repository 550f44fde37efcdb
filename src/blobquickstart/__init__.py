"""
blobquickstart
==============

Blob storage quick start: create a container, upload a file in blocks,
list, download with transparent retries, and clean up. Runs against Azure
Blob Storage or a local directory.

Main entry points:
- StorageClient: endpoint + shared-key credential, hands out containers
- create_container, iter_blob_names, delete_container: container operations
- upload_stream, BlobUploader: chunked, parallel upload
- download_blob, RetryReader: retrying range reads
- OperationScope: cancellation/deadline scope passed to every operation
- AzureBlobAdapter, LocalFileAdapter: storage backends

Example:
    from blobquickstart import StorageClient, LocalFileAdapter, create_container

    async with StorageClient(credentials, adapter=LocalFileAdapter("./data")) as client:
        container = await create_container(client, "quickstart-1")
"""

from .client import StorageClient, validate_credentials
from .config import (
    Credentials,
    QuickstartSettings,
    TransferOptions,
    load_credentials,
)
from .containers import (
    ListBlobsSegment,
    Marker,
    PublicAccess,
    create_container,
    delete_container,
    iter_blob_names,
    list_blobs_segment,
)
from .download import RetryReader, download_blob
from .errors import (
    BlobNotFoundError,
    ConfigInvalidError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    DownloadFailedError,
    ErrorKind,
    InvalidBlockListError,
    InvalidContainerNameError,
    InvalidCredentialError,
    OperationCancelledError,
    StorageError,
    TransientTransportError,
    UploadFailedError,
)
from .naming import NameGenerator, validate_container_name
from .scope import OperationScope
from .storage_protocols import (
    AsyncBlobHandle,
    AsyncContainerHandle,
    AsyncStorageAdapter,
    BlobProperties,
)
from .upload import (
    BlobUploader,
    TransferState,
    UploadBlock,
    UploadResult,
    plan_blocks,
    upload_stream,
)
from .local_file_adapter import LocalFileAdapter
from .azure_blob_adapter import AzureBlobAdapter

import importlib.metadata

try:
    __version__ = importlib.metadata.version(__name__)
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "StorageClient",
    "validate_credentials",
    "Credentials",
    "QuickstartSettings",
    "TransferOptions",
    "load_credentials",
    "ListBlobsSegment",
    "Marker",
    "PublicAccess",
    "create_container",
    "delete_container",
    "iter_blob_names",
    "list_blobs_segment",
    "RetryReader",
    "download_blob",
    "BlobNotFoundError",
    "ConfigInvalidError",
    "ContainerAlreadyExistsError",
    "ContainerNotFoundError",
    "DownloadFailedError",
    "ErrorKind",
    "InvalidBlockListError",
    "InvalidContainerNameError",
    "InvalidCredentialError",
    "OperationCancelledError",
    "StorageError",
    "TransientTransportError",
    "UploadFailedError",
    "NameGenerator",
    "validate_container_name",
    "OperationScope",
    "AsyncBlobHandle",
    "AsyncContainerHandle",
    "AsyncStorageAdapter",
    "BlobProperties",
    "BlobUploader",
    "TransferState",
    "UploadBlock",
    "UploadResult",
    "plan_blocks",
    "upload_stream",
    "LocalFileAdapter",
    "AzureBlobAdapter",
]
