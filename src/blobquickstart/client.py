import base64
import binascii
import re
from urllib.parse import quote

from .azure_blob_adapter import AzureBlobAdapter
from .config import DEFAULT_ENDPOINT_SUFFIX, Credentials, TransferOptions
from .errors import InvalidCredentialError
from .naming import validate_container_name
from .storage_protocols import AsyncContainerHandle, AsyncStorageAdapter

_ACCOUNT_NAME = re.compile(r"^[a-z0-9]{3,24}$")


def validate_credentials(credentials: Credentials) -> Credentials:
    """
    Check that the account name is well formed and the key decodes as base64.
    Shared-key signing needs the decoded key, so a bad key can never sign a request.
    """
    if not _ACCOUNT_NAME.match(credentials.account_name or ""):
        raise InvalidCredentialError(
            f"Invalid storage account name: {credentials.account_name!r}"
        )
    if not credentials.account_key:
        raise InvalidCredentialError("Storage account key is empty")
    try:
        base64.b64decode(credentials.account_key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidCredentialError(f"Storage account key is not valid base64: {e}") from e
    return credentials


class StorageClient:
    """
    Holds the service endpoint and credential and hands out container handles.

    Construction validates the credential but performs no I/O. Unless an
    adapter is supplied, an AzureBlobAdapter signing with the shared key is
    created on first use.
    """

    def __init__(
        self,
        credentials: Credentials,
        endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
        adapter: AsyncStorageAdapter | None = None,
        options: TransferOptions | None = None,
    ) -> None:
        self.credentials = validate_credentials(credentials)
        self.endpoint_suffix = endpoint_suffix
        self.options = options or TransferOptions()
        self._adapter = adapter

    @property
    def account_url(self) -> str:
        return f"https://{self.credentials.account_name}.{self.endpoint_suffix}"

    def url_for(self, container_name: str, blob_name: str | None = None) -> str:
        url = f"{self.account_url}/{container_name}"
        if blob_name is not None:
            url += "/" + quote(blob_name)
        return url

    @property
    def adapter(self) -> AsyncStorageAdapter:
        if self._adapter is None:
            self._adapter = AzureBlobAdapter.from_shared_key(
                self.account_url,
                self.credentials.account_name,
                self.credentials.account_key,
                max_single_put_size=self.options.single_put_threshold,
            )
        return self._adapter

    def get_container(self, container_name: str) -> AsyncContainerHandle:
        return self.adapter.get_container(validate_container_name(container_name))

    async def __aenter__(self) -> "StorageClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._adapter is not None:
            await self._adapter.close()
