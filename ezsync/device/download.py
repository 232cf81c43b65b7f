from pathlib import Path
from typing import BinaryIO, List, Optional

import httpx

from ..logging import log
from .errors import DownloadIOError, NotFoundError, RangeMismatchError, UnexpectedStatusError
from .transport import Transport
from .types import Entry

# Below this size, resuming isn't worth it and the device's range support is
# unreliable for short bodies anyways.
MIN_RESUMABLE_SIZE = 100 * 1024


def partial_size(path: Path, expected_size: int) -> Optional[int]:
    """
    Returns the size of a previously interrupted download at the path, or
    None if there is nothing that can be resumed: no file, an empty file or a
    file at least as large as expected (which must be corrupted).
    """

    if not path.is_file():
        return None

    size = path.stat().st_size
    if size == 0 or size >= expected_size:
        return None

    return size


class Downloader:
    def __init__(self, transport: Transport):
        self._transport = transport

    async def download(self, entry: Entry, destination: Path) -> None:
        """
        Download the entry to the destination. Every retry looks at what the
        previous attempts left at the destination and resumes from there if
        possible.

        May raise a DeviceError, an httpx error or an OSError.
        """

        await self._transport.retry.run(
            lambda: self._download_attempt(entry, destination),
            f"download of {entry.name!r}",
        )

    async def open_stream(self, entry: Entry) -> httpx.Response:
        """
        Request the entry's full contents. The caller must close the returned
        response.

        May raise a NotFoundError, an UnexpectedStatusError, a ServerError or
        an httpx error.
        """

        response = await self._transport.send(self._transport.resolve(entry.url))
        if response.status_code == 200:
            return response

        await response.aclose()
        if response.status_code == 404:
            raise NotFoundError(entry.name)
        raise UnexpectedStatusError(response.status_code)

    async def _download_attempt(self, entry: Entry, destination: Path) -> None:
        if entry.size < MIN_RESUMABLE_SIZE:
            await self._download_full(entry, destination)
            return

        offset = partial_size(destination, entry.size)
        if offset is None:
            destination.unlink(missing_ok=True)
            await self._download_full(entry, destination)
            return

        log.explain(f"Resuming download of {entry.name!r} from byte {offset}/{entry.size}"
                    f" ({offset / entry.size:.1%} complete)")
        await self._download_resume(entry, destination, offset)

    async def _download_full(self, entry: Entry, destination: Path) -> None:
        response = await self.open_stream(entry)
        try:
            file = open(destination, "wb")
        except BaseException:
            await response.aclose()
            raise

        await self._stream_to_file(entry, response, file, 0)

    async def _download_resume(self, entry: Entry, destination: Path, offset: int) -> None:
        url = self._transport.resolve(entry.url)
        response = await self._transport.send(url, headers={"Range": f"bytes={offset}-"})

        try:
            if response.status_code == 206:
                self._check_content_range(response, offset)
                file = open(destination, "ab")
            elif response.status_code == 200:
                # The device ignored the range and sent the whole file. Appending
                # would corrupt it, so start over instead.
                log.explain("Range request was answered with the full file, restarting from byte 0")
                offset = 0
                file = open(destination, "wb")
            elif response.status_code == 404:
                raise NotFoundError(entry.name)
            else:
                raise UnexpectedStatusError(response.status_code)
        except BaseException:
            await response.aclose()
            raise

        await self._stream_to_file(entry, response, file, offset)

    @staticmethod
    def _check_content_range(response: httpx.Response, offset: int) -> None:
        content_range = response.headers.get("Content-Range")
        if content_range is None:
            raise RangeMismatchError("Partial response is missing the Content-Range header")
        if not content_range.startswith(f"bytes {offset}-"):
            raise RangeMismatchError(f"Unexpected Content-Range {content_range!r} (expected start at {offset})")

    async def _stream_to_file(
            self,
            entry: Entry,
            response: httpx.Response,
            file: BinaryIO,
            offset: int,
    ) -> None:
        try:
            with log.download_bar("[bold bright_cyan]", "Downloading", entry.name, entry.size or None) as bar:
                bar.advance(offset)
                async for chunk in response.aiter_bytes():
                    file.write(chunk)
                    bar.advance(len(chunk))
        except BaseException:
            await self._close(response, file, failed=True)
            raise

        await self._close(response, file, failed=False)

    @staticmethod
    async def _close(response: httpx.Response, file: BinaryIO, failed: bool) -> None:
        """
        Closes both the response and the file. Problems while closing are
        only raised if the transfer itself went fine, otherwise the original
        error takes precedence.
        """

        problems: List[str] = []
        try:
            await response.aclose()
        except (httpx.HTTPError, OSError) as e:
            problems.append(f"Failed to close response: {e}")
        finally:
            try:
                file.close()
            except OSError as e:
                problems.append(f"Failed to close file: {e}")

        if not problems:
            return

        if failed:
            for problem in problems:
                log.explain(problem)
            return

        raise DownloadIOError("; ".join(problems))
