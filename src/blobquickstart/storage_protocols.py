from dataclasses import dataclass
from typing import AsyncIterator, Protocol


@dataclass(frozen=True)
class BlobProperties:
    name: str
    content_length: int
    etag: str | None = None


class AsyncBlobHandle(Protocol):
    """Represents a single blob in storage."""

    @property
    def name(self) -> str: ...

    async def put_blob(self, data: bytes) -> None:
        """Write the whole blob in one request, replacing any previous content."""
        ...

    async def stage_block(self, block_id: str, data: bytes) -> None:
        """Upload one uncommitted block. Staged blocks are not readable."""
        ...

    async def commit_block_list(self, block_ids: list[str]) -> None:
        """Make the blob the concatenation of the staged blocks, in list order."""
        ...

    def read_range(self, offset: int = 0, length: int | None = None) -> AsyncIterator[bytes]:
        """Stream `length` bytes (or to the end) starting at `offset`."""
        ...

    async def get_properties(self) -> BlobProperties:
        """Return name, size and ETag of a committed blob."""
        ...

    async def delete(self) -> None:
        """Delete blob."""
        ...


class AsyncContainerHandle(Protocol):
    """Represents a container/bucket in storage."""

    @property
    def name(self) -> str: ...

    async def create(self, public_access: str | None = None) -> None:
        """Create the container. Raises ContainerAlreadyExistsError on collision."""
        ...

    async def delete(self) -> None:
        """Delete the container and every blob in it."""
        ...

    async def list_blobs_segment(
        self, marker: str | None = None, max_results: int | None = None
    ) -> tuple[list[str], str]:
        """
        Return one page of committed blob names and the marker for the next page.
        An empty marker means the listing is complete.
        """
        ...

    def get_blob(self, blob_name: str) -> AsyncBlobHandle:
        """Return a handle to a blob."""
        ...


class AsyncStorageAdapter(Protocol):
    """Protocol for a storage backend adapter."""

    def get_container(self, container_name: str) -> AsyncContainerHandle:
        """Return a handle to a container."""
        ...

    async def close(self) -> None:
        """Close any resources/connections."""
        ...
