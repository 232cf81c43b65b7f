from typing import Optional

from rich.markup import escape

from .config import Config
from .device import DeviceClient
from .logging import log
from .output_dir import OutputDirectory
from .report import SyncStats
from .sync import Synchronizer
from .utils import fmt_path, fmt_real_path


class Ezsync:
    def __init__(self, config: Config):
        """
        May throw ConfigOptionError.
        """

        self._config = config
        self._client_config = config.device_section.client_config()
        self._stats: Optional[SyncStats] = None
        self._dry_run = False

    @property
    def stats(self) -> Optional[SyncStats]:
        return self._stats

    @property
    def failed(self) -> bool:
        return self._stats is not None and self._stats.failed

    async def run(self) -> None:
        """
        May throw ConfigOptionError, OutputDirError or SyncError.
        """

        section = self._config.sync_section
        target = section.target()
        remote_root = section.remote_root()
        self._dry_run = section.dry_run()

        if self._dry_run:
            log.print("[bold bright_yellow]Dry run[/], no files will be modified")
        log.print(f"[bold bright_cyan]Syncing[/] {escape(self._client_config.base_url)}"
                  f" to {escape(fmt_real_path(target))}")

        output_dir = OutputDirectory(target)
        if not self._dry_run:
            output_dir.prepare()

        self._stats = SyncStats()
        async with DeviceClient(self._client_config) as client:
            synchronizer = Synchronizer(client, output_dir, dry_run=self._dry_run)
            with log.show_progress():
                await synchronizer.run(remote_root, self._stats)

    async def print_firmware(self) -> None:
        """
        May throw a DeviceError or an httpx error.
        """

        async with DeviceClient(self._client_config) as client:
            version = await client.get_version()

        log.print(f"[bold bright_cyan]Chip[/]      {escape(version.chip_model)}")
        log.print(f"[bold bright_cyan]Firmware[/]  {escape(version.firmware_version)}")
        log.print(f"[bold bright_cyan]Date[/]      {escape(version.date)}")
        log.print(f"[bold bright_cyan]Build[/]     {escape(version.build_number)}")
        log.explain(f"Raw version string: {version.raw}")

    def print_report(self) -> None:
        stats = self._stats
        if stats is None:
            return  # Never started syncing

        log.report("")
        log.report("[bold bright_cyan]Report[/]")

        action = "Would sync" if self._dry_run else "Synced"
        for path, reason in stats.synced_files:
            log.report(f"  [bold bright_green]{action}[/] {escape(fmt_path(path))} {escape(f'({reason})')}")

        for error in stats.encountered_errors:
            log.report(f"  [bold bright_red]Error[/] {escape(error)}")

        if not stats.synced_files and not stats.encountered_errors:
            log.report("  Nothing changed")

        style = "[bold bright_red]" if stats.failed else "[bold bright_cyan]"
        log.print(f"{style}Sync complete[/]: {stats.summary()}")
