import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable

from .client import StorageClient
from .config import QuickstartSettings, TransferOptions, load_credentials
from .containers import create_container, delete_container, iter_blob_names
from .download import download_blob
from .errors import ErrorKind, StorageError
from .local_file_adapter import LocalFileAdapter
from .naming import NameGenerator
from .scope import OperationScope
from .upload import upload_stream

logger = logging.getLogger(__name__)

SAMPLE_DATA = b"hello world this is a blob\n"
CLEANUP_PROMPT = (
    "Press enter key to delete the sample files, example container, "
    "and exit the application.\n"
)


class Quickstart:
    """
    Create a container, upload a sample file, list, download, then clean up.

    Every storage error except a container-name collision is left to the
    caller, which treats it as fatal.
    """

    def __init__(
        self,
        client: StorageClient,
        names: NameGenerator,
        workdir: Path = Path("."),
        prompt: Callable[[str], object] | None = None,
        scope: OperationScope | None = None,
    ) -> None:
        self.client = client
        self.names = names
        self.workdir = Path(workdir)
        self.prompt = prompt if prompt is not None else input
        self.scope = scope or OperationScope.background()

    @property
    def options(self) -> TransferOptions:
        return self.client.options

    async def run(self) -> bytes:
        container_name = self.names.container_name()
        logger.info("Creating a container named %s", container_name)
        try:
            container = await create_container(self.client, container_name, scope=self.scope)
        except StorageError as e:
            if e.kind is not ErrorKind.ALREADY_EXISTS:
                raise
            logger.info("Received 409. Container already exists")
            container = self.client.get_container(container_name)

        logger.info("Creating a dummy file to test the upload and download")
        file_name = self.names.file_name()
        path = self.workdir / file_name
        path.write_bytes(SAMPLE_DATA)

        logger.info("Uploading the file with blob name: %s", file_name)
        blob = container.get_blob(file_name)
        with path.open("rb") as f:
            await upload_stream(blob, f, self.options, self.scope)

        logger.info("Listing the blobs in the container:")
        async for name in iter_blob_names(container, scope=self.scope):
            logger.info(" Blob name: %s", name)

        # Dropped connections are retried transparently by the reader.
        async with download_blob(
            blob, max_retry_requests=self.options.max_retry_requests, scope=self.scope
        ) as reader:
            data = await reader.readall()
        logger.debug(
            "Downloaded %d bytes from %s",
            len(data),
            self.client.url_for(container_name, file_name),
        )

        await asyncio.to_thread(self.prompt, CLEANUP_PROMPT)
        logger.info("Cleaning up.")
        await delete_container(self.client, container_name, scope=self.scope)
        path.unlink(missing_ok=True)
        return data


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stdout)


def build_client(settings: QuickstartSettings) -> StorageClient:
    credentials = load_credentials(settings.credentials_file)
    logger.info("Successfully loading %s", settings.credentials_file)
    adapter = LocalFileAdapter(settings.local_store) if settings.local_store else None
    return StorageClient(credentials, settings.endpoint_suffix, adapter=adapter)


async def run(settings: QuickstartSettings) -> int:
    """Run the quick start; returns the process exit code."""
    logger.info("Azure Blob Storage quick start sample")
    try:
        async with build_client(settings) as client:
            await Quickstart(client, NameGenerator()).run()
    except StorageError as e:
        logger.error("Fatal (%s): %s", e.kind.value, e)
        return 1
    return 0


def main() -> None:
    settings = QuickstartSettings.from_env()
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(run(settings)))
