import logging
from typing import AsyncIterator

from .errors import (
    DownloadFailedError,
    OperationCancelledError,
    StorageError,
    TransientTransportError,
)
from .scope import OperationScope
from .storage_protocols import AsyncBlobHandle
from .upload import TransferState

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRY_REQUESTS = 20


async def _next_or_none(stream: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


class RetryReader:
    """
    Byte stream over a blob range that survives dropped connections.

    When the underlying range request fails with a transient error, or ends
    before the range is complete, the request is re-issued from the last
    delivered offset. Callers only notice the extra latency.

    The retry budget covers consecutive failures: any chunk that arrives
    resets it. Once `max_retry_requests` re-issues in a row have failed
    without progress, DownloadFailedError is raised. `retries` counts every
    re-issue over the life of the reader.
    """

    def __init__(
        self,
        blob: AsyncBlobHandle,
        offset: int = 0,
        length: int | None = None,
        max_retry_requests: int = DEFAULT_MAX_RETRY_REQUESTS,
        scope: OperationScope | None = None,
    ) -> None:
        if offset < 0:
            raise ValueError("offset must not be negative")
        if length is not None and length < 0:
            raise ValueError("length must not be negative")
        self.blob = blob
        self.max_retry_requests = max_retry_requests
        self.scope = scope or OperationScope.background()
        self.retries = 0
        self._failed_in_a_row = 0
        self.state = TransferState.IDLE
        self._offset = offset
        self._remaining = length  # None until the blob size is known
        self._stream: AsyncIterator[bytes] | None = None
        self._buffer = bytearray()

    @property
    def offset(self) -> int:
        """Offset of the next byte the service will be asked for."""
        return self._offset

    async def _open(self) -> None:
        if self._remaining is None:
            props = await self.scope.guard(self.blob.get_properties())
            self._remaining = max(0, props.content_length - self._offset)
        if self._remaining > 0:
            self._stream = self.blob.read_range(self._offset, self._remaining)

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()

    async def _retry(self, error: Exception) -> None:
        await self._close_stream()
        self._failed_in_a_row += 1
        if self._failed_in_a_row > self.max_retry_requests:
            self.state = TransferState.FAILED
            raise DownloadFailedError(
                f"Download of '{self.blob.name}' failed after {self.max_retry_requests} "
                f"retries without progress at offset {self._offset}: {error}"
            ) from error
        self.retries += 1
        logger.warning(
            "Download of '%s' interrupted at offset %d (retry %d/%d): %s",
            self.blob.name,
            self._offset,
            self._failed_in_a_row,
            self.max_retry_requests,
            error,
        )

    async def _next_chunk(self) -> bytes:
        """Return the next chunk of the range, or b"" once it is exhausted."""
        while self._remaining is None or self._remaining > 0:
            try:
                if self._stream is None:
                    self.state = TransferState.IN_FLIGHT
                    await self._open()
                    continue
                chunk = await self.scope.guard(_next_or_none(self._stream))
                if chunk is None:
                    raise TransientTransportError(
                        f"stream ended {self._remaining} bytes early"
                    )
            except TransientTransportError as e:
                await self._retry(e)
                continue
            except OperationCancelledError:
                self.state = TransferState.FAILED
                await self._close_stream()
                raise
            except StorageError as e:
                self.state = TransferState.FAILED
                await self._close_stream()
                raise DownloadFailedError(f"Download of '{self.blob.name}' failed: {e}") from e

            if not chunk:
                continue
            chunk = chunk[: self._remaining]
            self._failed_in_a_row = 0
            self._offset += len(chunk)
            self._remaining -= len(chunk)
            return bytes(chunk)

        await self._close_stream()
        self.state = TransferState.COMMITTED
        return b""

    async def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return await self.readall()
        while len(self._buffer) < size:
            chunk = await self._next_chunk()
            if not chunk:
                break
            self._buffer += chunk
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def readall(self) -> bytes:
        parts = [bytes(self._buffer)]
        self._buffer.clear()
        while True:
            chunk = await self._next_chunk()
            if not chunk:
                break
            parts.append(chunk)
        return b"".join(parts)

    def __aiter__(self) -> "RetryReader":
        return self

    async def __anext__(self) -> bytes:
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            return data
        chunk = await self._next_chunk()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def __aenter__(self) -> "RetryReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._close_stream()


def download_blob(
    blob: AsyncBlobHandle,
    offset: int = 0,
    length: int | None = None,
    max_retry_requests: int = DEFAULT_MAX_RETRY_REQUESTS,
    scope: OperationScope | None = None,
) -> RetryReader:
    """Return a retrying reader over `length` bytes of `blob` (to the end if None)."""
    return RetryReader(blob, offset, length, max_retry_requests, scope)
