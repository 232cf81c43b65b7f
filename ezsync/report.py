from pathlib import PurePosixPath
from typing import List, Tuple


class SyncStats:
    """
    What happened during one sync run. The counters are what gets reported
    at the end, the lists keep the details behind them.
    """

    def __init__(self) -> None:
        self.files_synced = 0
        self.files_skipped = 0
        self.errors_encountered = 0

        # Remote paths with the reason they were (or would have been) synced
        self.synced_files: List[Tuple[PurePosixPath, str]] = []
        self.skipped_files: List[PurePosixPath] = []
        self.encountered_errors: List[str] = []

    @property
    def failed(self) -> bool:
        return self.errors_encountered > 0

    def add_synced(self, path: PurePosixPath, reason: str) -> None:
        self.files_synced += 1
        self.synced_files.append((path, reason))

    def add_skipped(self, path: PurePosixPath) -> None:
        self.files_skipped += 1
        self.skipped_files.append(path)

    def add_error(self, error: str) -> None:
        self.errors_encountered += 1
        self.encountered_errors.append(error)

    def summary(self) -> str:
        return (f"{self.files_synced} files synced, {self.files_skipped} skipped,"
                f" {self.errors_encountered} errors")
