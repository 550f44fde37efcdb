from typing import AsyncIterator

import aiohttp
from azure.core.credentials import AzureNamedKeyCredential
from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    IncompleteReadError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import BlobBlock
from azure.storage.blob.aio import BlobServiceClient

from .errors import (
    BlobNotFoundError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    InvalidBlockListError,
    InvalidCredentialError,
    StorageError,
    TransientTransportError,
)
from .storage_protocols import (
    AsyncBlobHandle,
    AsyncContainerHandle,
    AsyncStorageAdapter,
    BlobProperties,
)

_SERVICE_CODES = {
    "ContainerAlreadyExists": ContainerAlreadyExistsError,
    "ContainerNotFound": ContainerNotFoundError,
    "BlobNotFound": BlobNotFoundError,
    "InvalidBlockList": InvalidBlockListError,
    "InvalidBlockId": InvalidBlockListError,
}
_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def _translate(exc: Exception, target: str) -> StorageError:
    """Map an SDK or transport exception onto the blobquickstart error kinds."""
    if isinstance(exc, (ServiceRequestError, ServiceResponseError, IncompleteReadError)):
        return TransientTransportError(f"Transport failure on {target}: {exc}")
    if isinstance(exc, aiohttp.ClientError):
        return TransientTransportError(f"Connection failure on {target}: {exc}")
    if isinstance(exc, ClientAuthenticationError):
        return InvalidCredentialError(f"Request for {target} was not authorized: {exc}")
    if isinstance(exc, HttpResponseError):
        code = getattr(exc, "error_code", None) or ""
        error_cls = _SERVICE_CODES.get(code)
        if error_cls is not None:
            return error_cls(f"{code} for {target}")
        if exc.status_code in _RETRYABLE_STATUS:
            return TransientTransportError(
                f"Service returned {exc.status_code} for {target}: {exc.message}"
            )
    return StorageError(f"Request for {target} failed: {exc}")


class AzureBlobAdapter(AsyncStorageAdapter):
    """Azure Blob Storage adapter."""

    def __init__(self, blob_service_client: BlobServiceClient):
        """
        Create an adapter from an existing BlobServiceClient.
        This allows custom authentication and configuration.
        """
        self._client = blob_service_client

    @classmethod
    def from_shared_key(
        cls,
        account_url: str,
        account_name: str,
        account_key: str,
        max_single_put_size: int | None = None,
    ) -> "AzureBlobAdapter":
        """
        Convenience builder: requests are signed with the account's shared key.
        No request is sent until the first operation.
        """
        kwargs = {}
        if max_single_put_size:
            kwargs["max_single_put_size"] = max_single_put_size
        client = BlobServiceClient(
            account_url,
            credential=AzureNamedKeyCredential(account_name, account_key),
            **kwargs,
        )
        return cls(client)

    def get_container(self, container_name: str) -> AsyncContainerHandle:
        return _AzureContainerHandle(self._client.get_container_client(container_name))

    async def close(self) -> None:
        await self._client.close()


class _AzureContainerHandle(AsyncContainerHandle):
    def __init__(self, container_client):
        self._container_client = container_client

    @property
    def name(self) -> str:
        return self._container_client.container_name

    async def create(self, public_access: str | None = None) -> None:
        try:
            await self._container_client.create_container(public_access=public_access)
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, f"container '{self.name}'") from e

    async def delete(self) -> None:
        try:
            await self._container_client.delete_container()
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, f"container '{self.name}'") from e

    async def list_blobs_segment(
        self, marker: str | None = None, max_results: int | None = None
    ) -> tuple[list[str], str]:
        pages = self._container_client.list_blobs(results_per_page=max_results).by_page(
            continuation_token=marker or None
        )
        try:
            page = await pages.__anext__()
            names = [blob.name async for blob in page]
        except StopAsyncIteration:
            return [], ""
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, f"container '{self.name}'") from e
        return names, pages.continuation_token or ""

    def get_blob(self, blob_name: str) -> AsyncBlobHandle:
        return _AzureBlobHandle(self._container_client.get_blob_client(blob_name))


class _AzureBlobHandle(AsyncBlobHandle):
    def __init__(self, blob_client):
        self._blob_client = blob_client

    @property
    def name(self) -> str:
        return self._blob_client.blob_name

    @property
    def _target(self) -> str:
        return f"blob '{self._blob_client.container_name}/{self.name}'"

    async def put_blob(self, data: bytes) -> None:
        try:
            await self._blob_client.upload_blob(data, length=len(data), overwrite=True)
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, self._target) from e

    async def stage_block(self, block_id: str, data: bytes) -> None:
        try:
            await self._blob_client.stage_block(block_id, data, length=len(data))
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, self._target) from e

    async def commit_block_list(self, block_ids: list[str]) -> None:
        try:
            await self._blob_client.commit_block_list(
                [BlobBlock(block_id=block_id) for block_id in block_ids]
            )
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, self._target) from e

    async def read_range(
        self, offset: int = 0, length: int | None = None
    ) -> AsyncIterator[bytes]:
        kwargs = {}
        # The SDK only accepts a length together with an offset.
        if offset or length is not None:
            kwargs["offset"] = offset
            kwargs["length"] = length
        try:
            downloader = await self._blob_client.download_blob(**kwargs)
            async for chunk in downloader.chunks():
                yield chunk
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, self._target) from e

    async def get_properties(self) -> BlobProperties:
        try:
            props = await self._blob_client.get_blob_properties()
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, self._target) from e
        return BlobProperties(name=self.name, content_length=props.size, etag=props.etag)

    async def delete(self) -> None:
        try:
            await self._blob_client.delete_blob()
        except (AzureError, aiohttp.ClientError) as e:
            raise _translate(e, self._target) from e
