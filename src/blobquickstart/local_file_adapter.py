import asyncio
import os
import shutil
import uuid
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import quote

from .errors import (
    BlobNotFoundError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    InvalidBlockListError,
)
from .storage_protocols import (
    AsyncBlobHandle,
    AsyncContainerHandle,
    AsyncStorageAdapter,
    BlobProperties,
)

# Uncommitted blocks live here, one sub-directory per blob. Never listed.
STAGING_DIR = ".uncommitted"
DEFAULT_CHUNK_SIZE = 64 * 1024


def _ensure_within(base: Path, target: Path, strict: bool = True) -> Path:
    """
    Resolve target path and ensure it is inside base path.
    strict=True will fail if the target does not exist (good for read/delete).
    strict=False allows non-existing targets (good for upload); only the
    base directory has to exist.
    """
    base_resolved = base.resolve(strict=True)
    if strict:
        target_resolved = target.resolve(strict=True)
    else:
        target_resolved = target.resolve()
    if not target_resolved.is_relative_to(base_resolved):
        raise ValueError(
            f"Path {target_resolved} escapes base directory {base_resolved}"
        )
    return target_resolved


class LocalFileAdapter(AsyncStorageAdapter):
    """
    Local filesystem adapter.

    Containers are directories under `base_path`, committed blobs are files.
    Staged blocks are kept apart until commit, so a blob only becomes
    visible once its block list is committed.
    """

    def __init__(self, base_path: str | os.PathLike, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._chunk_size = chunk_size
        self._locks = _LockRegistry()

    def get_container(self, container_name: str) -> AsyncContainerHandle:
        container_path = _ensure_within(
            self._base_path, self._base_path / container_name, strict=False
        )
        return _LocalContainerHandle(
            container_name, container_path, self._chunk_size, self._locks
        )

    async def close(self) -> None:
        pass


class _LocalContainerHandle(AsyncContainerHandle):
    def __init__(
        self, name: str, container_path: Path, chunk_size: int, locks: "_LockRegistry"
    ):
        self._name = name
        self._container_path = container_path
        self._chunk_size = chunk_size
        self._locks = locks

    @property
    def name(self) -> str:
        return self._name

    def _require(self) -> None:
        if not self._container_path.is_dir():
            raise ContainerNotFoundError(f"Container '{self._name}' not found")

    async def create(self, public_access: str | None = None) -> None:
        try:
            self._container_path.mkdir()
        except FileExistsError:
            raise ContainerAlreadyExistsError(
                f"ContainerAlreadyExists for container '{self._name}'"
            )

    async def delete(self) -> None:
        self._require()
        shutil.rmtree(self._container_path)
        self._locks.discard_under(self._container_path)

    def _committed_names(self) -> list[str]:
        names: list[str] = []
        for path in self._container_path.rglob("*"):
            rel = path.relative_to(self._container_path)
            if rel.parts[0] == STAGING_DIR or not path.is_file():
                continue
            # Strict resolve to catch symlink escapes
            _ensure_within(self._container_path, path, strict=True)
            names.append(rel.as_posix())
        return sorted(names)

    async def list_blobs_segment(
        self, marker: str | None = None, max_results: int | None = None
    ) -> tuple[list[str], str]:
        self._require()
        names = self._committed_names()
        if marker:
            names = [n for n in names if n > marker]
        if max_results and len(names) > max_results:
            page = names[:max_results]
            return page, page[-1]
        return names, ""

    def get_blob(self, blob_name: str) -> AsyncBlobHandle:
        if not blob_name or Path(blob_name).parts[0] == STAGING_DIR:
            raise ValueError(f"Invalid blob name: {blob_name!r}")
        self._require()
        blob_path = _ensure_within(
            self._container_path, self._container_path / blob_name, strict=False
        )
        return _LocalBlobHandle(
            blob_name, blob_path, self._container_path, self._chunk_size, self._locks
        )


class _LockRegistry:
    """Per-adapter write locks, one per blob path. Entries go when the blob does."""

    def __init__(self):
        self._locks: dict[Path, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, path: Path) -> asyncio.Lock:
        return self._locks.setdefault(path, asyncio.Lock())

    def discard(self, path: Path) -> None:
        self._locks.pop(path, None)

    def discard_under(self, directory: Path) -> None:
        for path in [p for p in self._locks if p.is_relative_to(directory)]:
            del self._locks[path]


class _LocalBlobHandle(AsyncBlobHandle):
    def __init__(
        self,
        name: str,
        file_path: Path,
        container_path: Path,
        chunk_size: int,
        locks: _LockRegistry,
    ):
        self._name = name
        self._file_path = file_path
        self._container_path = container_path
        self._staging_path = container_path / STAGING_DIR / quote(name, safe="")
        self._chunk_size = chunk_size
        self._locks = locks
        self._lock = locks.get(file_path)

    @property
    def name(self) -> str:
        return self._name

    def _require_container(self) -> None:
        if not self._container_path.is_dir():
            raise ContainerNotFoundError(
                f"Container '{self._container_path.name}' not found"
            )

    def _require_blob(self) -> Path:
        self._require_container()
        if not self._file_path.is_file():
            raise BlobNotFoundError(f"Blob '{self._name}' not found")
        return _ensure_within(self._container_path, self._file_path, strict=True)

    def _block_path(self, block_id: str) -> Path:
        return self._staging_path / quote(block_id, safe="")

    def _replace_with(self, chunks: list[Path]) -> None:
        """Assemble `chunks` into a temp file, then swap it in atomically."""
        self._staging_path.mkdir(parents=True, exist_ok=True)
        tmp_path = self._staging_path / f".commit-{uuid.uuid4().hex}"
        with tmp_path.open("wb") as out:
            for chunk_path in chunks:
                with chunk_path.open("rb") as src:
                    shutil.copyfileobj(src, out)
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(tmp_path, self._file_path)

    async def put_blob(self, data: bytes) -> None:
        self._require_container()
        _ensure_within(self._container_path, self._file_path, strict=False)
        async with self._lock:
            self._staging_path.mkdir(parents=True, exist_ok=True)
            tmp_path = self._staging_path / f".put-{uuid.uuid4().hex}"
            tmp_path.write_bytes(data)
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            os.replace(tmp_path, self._file_path)
            # A direct put discards any blocks staged for this blob.
            shutil.rmtree(self._staging_path, ignore_errors=True)

    async def stage_block(self, block_id: str, data: bytes) -> None:
        self._require_container()
        self._staging_path.mkdir(parents=True, exist_ok=True)
        self._block_path(block_id).write_bytes(data)

    async def commit_block_list(self, block_ids: list[str]) -> None:
        self._require_container()
        _ensure_within(self._container_path, self._file_path, strict=False)
        async with self._lock:
            chunks = [self._block_path(block_id) for block_id in block_ids]
            missing = [b for b, p in zip(block_ids, chunks) if not p.is_file()]
            if missing:
                raise InvalidBlockListError(
                    f"InvalidBlockList for blob '{self._name}': {len(missing)} block(s) not staged"
                )
            self._replace_with(chunks)
            shutil.rmtree(self._staging_path, ignore_errors=True)

    async def read_range(
        self, offset: int = 0, length: int | None = None
    ) -> AsyncIterator[bytes]:
        path = self._require_blob()
        remaining = length
        with path.open("rb") as f:
            f.seek(offset)
            while remaining is None or remaining > 0:
                size = self._chunk_size if remaining is None else min(self._chunk_size, remaining)
                chunk = f.read(size)
                if not chunk:
                    break
                if remaining is not None:
                    remaining -= len(chunk)
                yield chunk

    async def get_properties(self) -> BlobProperties:
        path = self._require_blob()
        # Every commit replaces the file, so mtime and size identify the content.
        stat = path.stat()
        return BlobProperties(
            name=self._name,
            content_length=stat.st_size,
            etag=f'"{stat.st_mtime_ns:x}-{stat.st_size:x}"',
        )

    async def delete(self) -> None:
        path = self._require_blob()
        async with self._lock:
            path.unlink()
        self._locks.discard(self._file_path)
