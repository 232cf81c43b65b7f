from datetime import datetime
from pathlib import Path, PurePosixPath
from types import TracebackType
from typing import List, Optional, Type

import httpx

from ..logging import log
from .download import Downloader
from .errors import NotFoundError, UnexpectedStatusError
from .listing import parse_listing
from .transport import RetryPolicy, Transport, to_device_path
from .types import ClientConfig, Entry, Version
from .version import parse_version


class DeviceClient:
    """
    Access to an EZ-Share WiFi SD card.

    Use as an async context manager so the underlying connections get closed:

        async with DeviceClient(ClientConfig("192.168.4.1")) as client:
            entries = await client.list_directory("/DATALOG")
    """

    def __init__(
            self,
            config: ClientConfig,
            http_transport: Optional[httpx.AsyncBaseTransport] = None,
            retry: Optional[RetryPolicy] = None,
    ):
        self._transport = Transport(config, http_transport=http_transport, retry=retry)
        self._downloader = Downloader(self._transport)

    @property
    def config(self) -> ClientConfig:
        return self._transport.config

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "DeviceClient":
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_value: Optional[BaseException],
            traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    async def list_directory(self, path: str) -> List[Entry]:
        """
        Returns the contents of a directory on the device.

        May raise a DeviceError or an httpx error.
        """

        return await self._transport.retry.run(
            lambda: self._list_directory_attempt(path),
            f"listing of {path!r}",
        )

    async def _list_directory_attempt(self, path: str) -> List[Entry]:
        url = self._transport.url("/dir", "dir", to_device_path(path))
        response = await self._transport.send(url)
        try:
            if response.status_code == 404:
                raise NotFoundError(path)
            if response.status_code != 200:
                raise UnexpectedStatusError(response.status_code)
            document = await response.aread()
        finally:
            await response.aclose()

        entries = parse_listing(document)
        log.explain(f"Listing of {path!r} contains {len(entries)} entries")
        return entries

    async def download_file(self, entry: Entry, destination: Path) -> None:
        """
        Downloads a file obtained from list_directory, resuming an earlier
        partial download at the destination where possible.

        May raise a DeviceError, an httpx error or an OSError.
        """

        await self._downloader.download(entry, destination)

    async def download_file_by_path(self, path: str, destination: Path) -> None:
        """
        Downloads a file by its unix style path without listing its directory
        first. As the size is unknown, the file is always downloaded in full.
        """

        url = self._transport.url("/download", "file", to_device_path(path))
        entry = Entry(
            name=PurePosixPath(path).name or path,
            is_directory=False,
            timestamp=datetime.min,
            size=0,
            url=url,
        )
        await self._downloader.download(entry, destination)

    async def open_file(self, entry: Entry) -> httpx.Response:
        """
        Opens a file for streaming. The caller must close the returned
        response, e.g. via "await response.aclose()".
        """

        return await self._transport.retry.run(
            lambda: self._downloader.open_stream(entry),
            f"opening of {entry.name!r}",
        )

    async def get_version(self) -> Version:
        """
        Retrieves the firmware version information from the device.

        May raise a DeviceError or an httpx error.
        """

        return await self._transport.retry.run(self._get_version_attempt, "version query")

    async def _get_version_attempt(self) -> Version:
        url = self._transport.url("/client", "command", "version")
        response = await self._transport.send(url)
        try:
            if response.status_code != 200:
                raise UnexpectedStatusError(response.status_code)
            document = await response.aread()
        finally:
            await response.aclose()

        return parse_version(document)
