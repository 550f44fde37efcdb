import asyncio
import base64
import io
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, BinaryIO, Callable

from .config import TransferOptions
from .errors import (
    OperationCancelledError,
    StorageError,
    TransientTransportError,
    UploadFailedError,
)
from .scope import OperationScope
from .storage_protocols import AsyncBlobHandle

logger = logging.getLogger(__name__)


class TransferState(Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadBlock:
    index: int
    offset: int
    length: int

    @property
    def block_id(self) -> str:
        # Fixed width: every block id of one blob must have the same length.
        return base64.b64encode(self.index.to_bytes(8, byteorder="big")).decode("ascii")


@dataclass
class UploadResult:
    blob_name: str
    size: int
    blocks: list[UploadBlock] = field(default_factory=list)  # Empty for a single put
    completion_order: list[int] = field(default_factory=list)

    @property
    def block_ids(self) -> list[str]:
        return [block.block_id for block in self.blocks]


def plan_blocks(size: int, block_size: int) -> list[UploadBlock]:
    """Split `size` bytes into ceil(size / block_size) ordered blocks."""
    if block_size <= 0:
        raise ValueError("block_size must be positive")
    count = math.ceil(size / block_size)
    return [
        UploadBlock(index=i, offset=i * block_size, length=min(block_size, size - i * block_size))
        for i in range(count)
    ]


def _remaining_size(source: BinaryIO) -> tuple[BinaryIO, int, int]:
    """Return (seekable stream, start position, bytes from start to end)."""
    if not source.seekable():
        source = io.BytesIO(source.read())
    start = source.tell()
    end = source.seek(0, io.SEEK_END)
    source.seek(start)
    return source, start, end - start


class BlobUploader:
    """
    Uploads one byte stream into one blob.

    Small payloads go out as a single put. Larger ones are split into
    blocks, staged with bounded parallelism and committed in byte order.
    The blob only becomes visible when the commit succeeds.
    """

    def __init__(
        self,
        blob: AsyncBlobHandle,
        options: TransferOptions | None = None,
        scope: OperationScope | None = None,
    ) -> None:
        self.blob = blob
        self.options = options or TransferOptions()
        self.scope = scope or OperationScope.background()
        self.state = TransferState.IDLE

    async def upload(self, source: BinaryIO) -> UploadResult:
        if self.state is not TransferState.IDLE:
            raise RuntimeError(f"Uploader already used (state={self.state.value})")
        self.state = TransferState.IN_FLIGHT
        try:
            result = await self._upload(source)
        except StorageError as e:
            self.state = TransferState.FAILED
            if isinstance(e, (OperationCancelledError, UploadFailedError)):
                raise
            raise UploadFailedError(f"Upload of '{self.blob.name}' failed: {e}") from e
        except BaseException:
            self.state = TransferState.FAILED
            raise
        self.state = TransferState.COMMITTED
        return result

    async def _upload(self, source: BinaryIO) -> UploadResult:
        source, start, size = _remaining_size(source)
        result = UploadResult(blob_name=self.blob.name, size=size)

        if size <= self.options.single_put_threshold:
            logger.debug("Uploading '%s' (%d bytes) in one request", self.blob.name, size)
            data = source.read(size)
            await self._with_retry(f"Put of '{self.blob.name}'", lambda: self.blob.put_blob(data))
            return result

        result.blocks = plan_blocks(size, self.options.block_size)
        logger.debug(
            "Uploading '%s' (%d bytes) as %d blocks, parallelism %d",
            self.blob.name,
            size,
            len(result.blocks),
            self.options.parallelism,
        )
        await self._stage_all(source, start, result)
        # Commit order is byte order, whatever order the blocks finished in.
        await self.scope.guard(self.blob.commit_block_list(result.block_ids))
        return result

    async def _stage_all(self, source: BinaryIO, start: int, result: UploadResult) -> None:
        slots = asyncio.Semaphore(self.options.parallelism)
        read_lock = asyncio.Lock()

        async def stage(block: UploadBlock) -> None:
            async with slots:
                async with read_lock:
                    source.seek(start + block.offset)
                    data = source.read(block.length)
                if len(data) != block.length:
                    raise UploadFailedError(
                        f"Source ended early: block {block.index} got {len(data)} of {block.length} bytes"
                    )
                await self._with_retry(
                    f"Block {block.index} of '{self.blob.name}'",
                    lambda: self.blob.stage_block(block.block_id, data),
                )
                result.completion_order.append(block.index)

        tasks = [asyncio.ensure_future(stage(block)) for block in result.blocks]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failed = next((t for t in tasks if t.done() and not t.cancelled() and t.exception()), None)
        if failed is None:
            return
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        exc = failed.exception()
        logger.debug("Abandoning upload of '%s': %s", self.blob.name, exc)
        if isinstance(exc, (OperationCancelledError, UploadFailedError)):
            raise exc
        raise UploadFailedError(f"Upload of '{self.blob.name}' failed: {exc}") from exc

    async def _with_retry(self, what: str, request: Callable[[], Awaitable[None]]) -> None:
        """Send `request()` again on transient errors, up to `max_block_retries` times."""
        attempt = 0
        while True:
            try:
                await self.scope.guard(request())
                return
            except TransientTransportError as e:
                if attempt >= self.options.max_block_retries:
                    raise UploadFailedError(
                        f"{what} failed after {attempt + 1} attempt(s): {e}"
                    ) from e
                delay = self.options.retry_backoff * 2**attempt
                attempt += 1
                logger.warning(
                    "%s: transient error (attempt %d/%d), retrying in %.1fs: %s",
                    what,
                    attempt,
                    self.options.max_block_retries,
                    delay,
                    e,
                )
                await self.scope.sleep(delay)


async def upload_stream(
    blob: AsyncBlobHandle,
    source: BinaryIO,
    options: TransferOptions | None = None,
    scope: OperationScope | None = None,
) -> UploadResult:
    """Upload everything from the current position of `source` into `blob`."""
    return await BlobUploader(blob, options, scope).upload(source)
