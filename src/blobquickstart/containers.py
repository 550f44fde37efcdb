import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator

from .client import StorageClient
from .scope import OperationScope
from .storage_protocols import AsyncContainerHandle

logger = logging.getLogger(__name__)


class PublicAccess(Enum):
    NONE = None  # Private: every request must be signed
    BLOB = "blob"
    CONTAINER = "container"


@dataclass(frozen=True)
class Marker:
    """
    Listing continuation token.
    Marker() has not been fetched yet; an empty value means the listing is done.
    """

    value: str | None = None

    def not_done(self) -> bool:
        return self.value != ""


@dataclass(frozen=True)
class ListBlobsSegment:
    names: list[str]
    next_marker: Marker


async def create_container(
    client: StorageClient,
    name: str,
    public_access: PublicAccess = PublicAccess.NONE,
    scope: OperationScope | None = None,
) -> AsyncContainerHandle:
    """
    Create a container and return its handle.
    Raises ContainerAlreadyExistsError if the name is taken; the existing
    container is left untouched.
    """
    scope = scope or OperationScope.background()
    container = client.get_container(name)
    await scope.guard(container.create(public_access=public_access.value))
    logger.debug("Created container %s", client.url_for(name))
    return container


async def list_blobs_segment(
    container: AsyncContainerHandle,
    marker: Marker = Marker(),
    page_size: int | None = None,
    scope: OperationScope | None = None,
) -> ListBlobsSegment:
    """Fetch one page of blob names starting at `marker`."""
    if page_size is not None and page_size <= 0:
        raise ValueError("page_size must be positive")
    scope = scope or OperationScope.background()
    names, next_marker = await scope.guard(
        container.list_blobs_segment(marker=marker.value, max_results=page_size)
    )
    return ListBlobsSegment(names=names, next_marker=Marker(next_marker or ""))


async def iter_blob_names(
    container: AsyncContainerHandle,
    page_size: int | None = None,
    scope: OperationScope | None = None,
) -> AsyncIterator[str]:
    """
    Yield every blob name in the container, following markers page by page.
    Each call starts a fresh listing.
    """
    marker = Marker()
    while marker.not_done():
        segment = await list_blobs_segment(container, marker, page_size, scope)
        # You MUST use the returned marker to fetch the next segment.
        marker = segment.next_marker
        for name in segment.names:
            yield name


async def delete_container(
    client: StorageClient,
    name: str,
    scope: OperationScope | None = None,
) -> None:
    """Delete a container together with all of its blobs."""
    scope = scope or OperationScope.background()
    await scope.guard(client.get_container(name).delete())
    logger.debug("Deleted container %s", client.url_for(name))
