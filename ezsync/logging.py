import sys
import traceback
from contextlib import AbstractContextManager, contextmanager
from typing import Iterator, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (BarColumn, DownloadColumn, Progress, SpinnerColumn, TaskID, TextColumn,
                           TimeRemainingColumn, TransferSpeedColumn)
from rich.table import Column

BUG_REPORT_HINT = """
Please copy your program output, including the firmware version reported by
'ezsync firmware', and send it to the ezsync maintainers.
""".strip()


class ProgressBar:
    def __init__(self, progress: Progress, taskid: TaskID):
        self._progress = progress
        self._taskid = taskid

    def advance(self, amount: float = 1) -> None:
        self._progress.advance(self._taskid, advance=amount)


class Log:
    """
    All console output goes through here. Listing and download bars are only
    rendered inside show_progress(), everything else is printed above them.
    """

    STATUS_WIDTH = 11

    def __init__(self) -> None:
        self.console = Console(highlight=False)

        # Listings have no known length, so they only get a spinner
        self._listings = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}", table_column=Column(ratio=1)),
            expand=True,
        )
        self._downloads = Progress(
            TextColumn("{task.description}", table_column=Column(ratio=1)),
            TransferSpeedColumn(),
            DownloadColumn(),
            BarColumn(),
            TimeRemainingColumn(),
            expand=True,
        )
        self._live = Live(console=self.console, transient=True)
        self._refresh_live()
        self._live_active = False

        self.output_explain = False
        self.output_status = True
        self.output_report = True

    def _refresh_live(self) -> None:
        visible = [p for p in (self._listings, self._downloads) if p.task_ids]
        self._live.update(Group(*visible))

    @contextmanager
    def show_progress(self) -> Iterator[None]:
        if self._live_active:
            raise RuntimeError("Progress is already being shown")

        self._live_active = True
        try:
            with self._live:
                yield
        finally:
            self._live_active = False

    def print(self, text: str) -> None:
        """
        Print a normal message. Allows markup.
        """

        self.console.print(text)

    def error(self, text: str) -> None:
        """
        Print an error message. Allows no markup.
        """

        self.print(f"[bold bright_red]Error[/] [red]{escape(text)}")

    def error_contd(self, text: str) -> None:
        self.print(f"[red]{escape(text)}")

    def unexpected_exception(self) -> None:
        """
        Call this in an "except" clause to log an unexpected exception.
        """

        if sys.exc_info()[0] is None:
            self.error("Something unexpected happened outside of an exception handler")
            for line in traceback.format_stack()[:-1]:
                self.error_contd(line.rstrip("\n"))
        else:
            self.error("An unexpected exception occurred")
            self.console.print_exception()

        self.console.print(Panel.fit(BUG_REPORT_HINT))

    def explain_topic(self, text: str) -> None:
        """
        Print a top-level explain text, only visible with --explain. Allows no
        markup.
        """

        if self.output_explain:
            self.print(f"[yellow]{escape(text)}")

    def explain(self, text: str) -> None:
        """
        Like explain_topic, but indented below it.
        """

        if self.output_explain:
            self.print(f"  {escape(text)}")

    def _action(self, style: str, action: str) -> str:
        return f"{style}{escape(action.ljust(self.STATUS_WIDTH))}[/]"

    def status(self, style: str, action: str, text: str, suffix: str = "") -> None:
        """
        Print a status line like "Syncing     '/DATALOG/STR.edf'". The style
        (markup) is applied to the action, the text is escaped and the suffix
        is printed as is.
        """

        if self.output_status:
            self.print(f"{self._action(style, action)} {escape(text)} {suffix}".rstrip())

    def report(self, text: str) -> None:
        """
        Print a line of the final report. Allows markup.
        """

        if self.output_report:
            self.print(text)

    @contextmanager
    def _bar(self, progress: Progress, description: str, total: Optional[float]) -> Iterator[ProgressBar]:
        # Without a total, the task is never started and the bar stays pulsing
        taskid = progress.add_task(description, total=total, start=total is not None)
        self._refresh_live()
        try:
            yield ProgressBar(progress, taskid)
        finally:
            progress.remove_task(taskid)
            self._refresh_live()

    def listing_bar(self, style: str, action: str, text: str) -> AbstractContextManager[ProgressBar]:
        return self._bar(self._listings, f"{self._action(style, action)} {escape(text)}", None)

    def download_bar(
            self,
            style: str,
            action: str,
            text: str,
            total: Optional[float] = None,
    ) -> AbstractContextManager[ProgressBar]:
        """
        A transfer bar counting bytes. Without a total it only shows the
        transferred amount and speed.
        """

        return self._bar(self._downloads, f"{self._action(style, action)} {escape(text)}", total)


log = Log()
