from collections.abc import Coroutine
from pathlib import Path, PurePosixPath
from typing import Any, Callable, List, Optional, TypeVar

import httpx
from rich.markup import escape

from .device import DeviceClient, DeviceError, Entry
from .logging import log
from .output_dir import OutputDirectory, OutputDirError
from .report import SyncStats
from .utils import fmt_path, str_path


class SyncError(Exception):
    pass


AWrapped = TypeVar("AWrapped", bound=Callable[..., Coroutine[Any, Any, None]])


def anoncritical(f: AWrapped) -> AWrapped:
    """
    Catches and logs any exception occurring while syncing a single entry and
    counts it in the stats, so the walk can continue with the next entry.
    Cancellation is not caught.

    Warning: Must only be applied to Synchronizer methods whose first argument
    (after self) is the SyncStats of the current run!
    """

    async def wrapper(*args: Any, **kwargs: Any) -> None:
        if not (len(args) >= 2 and isinstance(args[0], Synchronizer) and isinstance(args[1], SyncStats)):
            raise RuntimeError("@anoncritical must only applied to Synchronizer methods taking SyncStats")

        stats = args[1]

        try:
            await f(*args, **kwargs)
        except (SyncError, OutputDirError, DeviceError, httpx.HTTPError, OSError) as e:
            log.error(str(e))
            stats.add_error(str(e))
        except Exception as e:
            log.unexpected_exception()
            stats.add_error(f"Unexpected {type(e).__name__}: {e}")

    return wrapper  # type: ignore


def child_path(parent: PurePosixPath, name: str) -> PurePosixPath:
    """
    May throw an OutputDirError.
    """

    if "/" in name or name in {"", ".", ".."}:
        raise OutputDirError(f"Refusing to sync entry with invalid name {name!r} in {fmt_path(parent)}")
    return parent / name


class Synchronizer:
    """
    Mirrors the device's tree into an output directory, one directory listing
    and one file at a time.
    """

    def __init__(self, client: DeviceClient, output_dir: OutputDirectory, dry_run: bool = False):
        self._client = client
        self._output_dir = output_dir
        self._dry_run = dry_run

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def run(self, remote_root: str = "/", stats: Optional[SyncStats] = None) -> SyncStats:
        """
        Syncs everything below remote_root. Errors for single files or
        directories are counted in the returned stats.

        May throw a SyncError if remote_root itself can't be listed.
        """

        if stats is None:
            stats = SyncStats()

        root = PurePosixPath("/") / remote_root
        entries = await self._list(root)
        await self._sync_entries(stats, root, entries)

        return stats

    async def _list(self, remote: PurePosixPath) -> List[Entry]:
        """
        May throw a SyncError.
        """

        log.explain_topic(f"Listing {fmt_path(remote)}")
        try:
            with log.listing_bar("[bold bright_cyan]", "Listing", str_path(remote)):
                return await self._client.list_directory(str_path(remote))
        except (DeviceError, httpx.HTTPError) as e:
            raise SyncError(f"Failed to list directory {fmt_path(remote)}: {e}") from e

    async def _sync_entries(self, stats: SyncStats, parent: PurePosixPath, entries: List[Entry]) -> None:
        for entry in entries:
            if entry.is_directory:
                await self._sync_dir(stats, parent, entry)
            else:
                await self._sync_file(stats, parent, entry)

    @anoncritical
    async def _sync_dir(self, stats: SyncStats, parent: PurePosixPath, entry: Entry) -> None:
        remote = child_path(parent, entry.name)
        local_path = self._output_dir.resolve(remote)

        if not self._dry_run:
            self._output_dir.ensure_dir(local_path)

        entries = await self._list(remote)
        await self._sync_entries(stats, remote, entries)

    @anoncritical
    async def _sync_file(self, stats: SyncStats, parent: PurePosixPath, entry: Entry) -> None:
        remote = child_path(parent, entry.name)
        local_path = self._output_dir.resolve(remote)

        log.explain_topic(f"Deciding whether to sync {fmt_path(remote)}")
        reason = self._output_dir.needs_sync(entry, local_path)
        if reason is None:
            log.explain("Local copy is up to date")
            stats.add_skipped(remote)
            return

        if self._dry_run:
            log.status("[bold bright_yellow]", "Would sync", fmt_path(remote), escape(f"({reason})"))
            stats.add_synced(remote, reason)
            return

        log.status("[bold bright_cyan]", "Syncing", fmt_path(remote), escape(f"({reason})"))
        await self._transfer(remote, entry, local_path)
        log.status("[bold bright_green]", "Synced", fmt_path(remote))
        stats.add_synced(remote, reason)

    async def _transfer(self, remote: PurePosixPath, entry: Entry, local_path: Path) -> None:
        """
        Downloads into a temporary file next to the final path and only moves
        it into place once it is complete.

        May throw a SyncError.
        """

        try:
            with self._output_dir.tmp_file(local_path) as tmp_path:
                await self._client.download_file(entry, tmp_path)
                self._output_dir.commit(tmp_path, local_path, entry.timestamp)
        except (DeviceError, OutputDirError, httpx.HTTPError, OSError) as e:
            raise SyncError(f"Failed to sync {fmt_path(remote)}: {e}") from e
