import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

from .device import Entry
from .logging import log
from .utils import fmt_path, fmt_real_path

TMP_SUFFIX = ".tmp"

# The device reports sizes rounded up to whole kilobytes
SIZE_GRANULARITY = 1024

# Some file systems truncate or round modification times
MTIME_TOLERANCE = 10  # seconds


class OutputDirError(Exception):
    pass


def size_in_kb(size: int) -> int:
    return (size + SIZE_GRANULARITY - 1) // SIZE_GRANULARITY


class OutputDirectory:
    """
    The local directory the device's tree is mirrored into.
    """

    def __init__(self, root: Path):
        if os.name == "nt":
            # Windows limits the path length to 260 for some historical reason.
            # If you want longer paths, you will have to add the "\\?\" prefix
            # in front of your path. See:
            # https://docs.microsoft.com/en-us/windows/win32/fileio/naming-a-file#maximum-path-length-limitation
            self._root = Path("\\\\?\\" + str(root.absolute()))
        else:
            self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def prepare(self) -> None:
        log.explain_topic(f"Creating base directory at {fmt_real_path(self._root)}")

        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirError(f"Failed to create base directory: {e}") from e

    def resolve(self, remote_path: PurePosixPath) -> Path:
        """
        The local path corresponding to a path on the device.

        May throw an OutputDirError.
        """

        if remote_path.is_absolute():
            remote_path = remote_path.relative_to("/")

        if ".." in remote_path.parts:
            raise OutputDirError(f"Forbidden segment '..' in path {fmt_path(remote_path)}")
        if "." in remote_path.parts:
            raise OutputDirError(f"Forbidden segment '.' in path {fmt_path(remote_path)}")

        return self._root.joinpath(*remote_path.parts)

    def needs_sync(self, entry: Entry, local_path: Path) -> Optional[str]:
        """
        Decides whether the local copy of an entry is stale. Returns the
        reason if it is, None otherwise.
        """

        try:
            stat = local_path.stat()
        except FileNotFoundError:
            log.explain("No corresponding file present locally")
            return "new file"
        except OSError as e:
            return f"stat error: {e}"

        if not local_path.is_file():
            log.explain("Non-file (probably a directory) present locally")
            return "not a file"

        # Comparing more precisely than the device reports would only lead to
        # spurious downloads.
        if size_in_kb(stat.st_size) != size_in_kb(entry.size):
            log.explain(f"Local size {stat.st_size} differs from remote size {entry.size}")
            return "size mismatch"

        delta = abs(stat.st_mtime - entry.timestamp.timestamp())
        if delta > MTIME_TOLERANCE:
            log.explain(f"Local and remote modification times differ by {delta:.0f}s")
            return "timestamp mismatch"

        return None

    def ensure_dir(self, local_path: Path) -> None:
        """
        May throw an OutputDirError.
        """

        try:
            local_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirError(f"Failed to create directory {fmt_real_path(local_path)}: {e}") from e

    def tmp_path(self, local_path: Path) -> Path:
        return local_path.with_name(local_path.name + TMP_SUFFIX)

    @contextmanager
    def _ensure_deleted(self, path: Path) -> Iterator[None]:
        try:
            yield
        finally:
            path.unlink(missing_ok=True)

    @contextmanager
    def tmp_file(self, local_path: Path) -> Iterator[Path]:
        """
        Provides the temporary sibling path a file should be downloaded to.
        Whatever is left at that path afterwards gets deleted, so call commit()
        inside the with block.

        May throw an OutputDirError.
        """

        self.ensure_dir(local_path.parent)
        tmp_path = self.tmp_path(local_path)
        with self._ensure_deleted(tmp_path):
            yield tmp_path

    def commit(self, tmp_path: Path, local_path: Path, mtime: datetime) -> None:
        """
        Moves a finished download to its final path after giving it the
        remote modification time.

        May throw an OutputDirError.
        """

        log.explain("Updating file metadata")
        mtimestamp = mtime.timestamp()
        try:
            os.utime(tmp_path, times=(mtimestamp, mtimestamp))
        except OSError as e:
            raise OutputDirError(f"Failed to set modification time of {fmt_real_path(tmp_path)}: {e}") from e

        try:
            tmp_path.replace(local_path)
        except OSError as e:
            raise OutputDirError(f"Failed to move {fmt_real_path(tmp_path)} into place: {e}") from e
