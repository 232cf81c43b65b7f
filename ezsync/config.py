import os
import sys
from configparser import ConfigParser, SectionProxy
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional, TypeVar

from rich.markup import escape

from .device import ClientConfig
from .device.types import DEFAULT_URL, DEFAULT_USER_AGENT
from .logging import log
from .utils import fmt_real_path, prompt_yes_no

T = TypeVar("T")


class ConfigLoadError(Exception):
    """
    The config file could not be read at all.
    """

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed to load config from {fmt_real_path(path)}")
        self.path = path
        self.reason = reason


class ConfigOptionError(Exception):
    """
    An option has an invalid value or a required option is missing.
    """

    def __init__(self, section: str, key: str, desc: str):
        super().__init__(f"Section {section!r}, key {key!r}: {desc}")
        self.section = section
        self.key = key
        self.desc = desc


class ConfigDumpError(Exception):
    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed to dump config to {fmt_real_path(path)}")
        self.path = path
        self.reason = reason


class Section:
    def __init__(self, section: SectionProxy):
        self.s = section

    def error(self, key: str, desc: str) -> NoReturn:
        raise ConfigOptionError(self.s.name, key, desc)

    def invalid_value(self, key: str, value: Any, reason: str) -> NoReturn:
        self.error(key, f"Invalid value {value!r}: {reason}")

    def missing_value(self, key: str) -> NoReturn:
        self.error(key, "Missing value")

    def _typed(self, getter: Callable[..., T], key: str, fallback: T, kind: str) -> T:
        try:
            return getter(key, fallback=fallback)
        except ValueError:
            self.invalid_value(key, self.s.get(key), f"Must be {kind}")

    def _number(self, key: str, fallback: float) -> float:
        value = self._typed(self.s.getfloat, key, fallback, "a number")
        if value <= 0:
            self.invalid_value(key, value, "Must be greater than 0")
        return value

    def _boolean(self, key: str, fallback: bool) -> bool:
        return self._typed(self.s.getboolean, key, fallback, "a boolean")


class DefaultSection(Section):
    def explain(self) -> bool:
        return self._boolean("explain", False)

    def status(self) -> bool:
        return self._boolean("status", True)

    def report(self) -> bool:
        return self._boolean("report", True)


class DeviceSection(Section):
    def url(self) -> str:
        value = self.s.get("url", DEFAULT_URL).strip()
        if not value:
            self.missing_value("url")
        return value

    def proxy(self) -> Optional[str]:
        return self.s.get("proxy", "").strip() or None

    def timeout(self) -> float:
        return self._number("timeout", 180.0)

    def connect_timeout(self) -> float:
        return self._number("connect_timeout", 5.0)

    def retries(self) -> int:
        value = self._typed(self.s.getint, "retries", 3, "an integer")
        if value < 0:
            self.invalid_value("retries", value, "Must not be negative")
        return value

    def user_agent(self) -> str:
        return self.s.get("user_agent", DEFAULT_USER_AGENT)

    def client_config(self) -> ClientConfig:
        """
        May throw a ConfigOptionError.
        """

        return ClientConfig(
            base_url=self.url(),
            proxy=self.proxy(),
            timeout=self.timeout(),
            connect_timeout=self.connect_timeout(),
            max_retries=self.retries(),
            user_agent=self.user_agent(),
        )


class SyncSection(Section):
    def target(self) -> Path:
        value = self.s.get("target", "").strip()
        if not value:
            self.missing_value("target")
        return Path(value).expanduser()

    def remote_root(self) -> str:
        value = self.s.get("remote_root", "/")
        if not value.startswith("/"):
            self.invalid_value("remote_root", value, "Must be an absolute path on the card")
        return value

    def dry_run(self) -> bool:
        return self._boolean("dry_run", False)


def default_config_path() -> Path:
    if os.name == "nt":
        return Path("~/AppData/Roaming/ezsync/ezsync.cfg").expanduser()
    if os.name == "posix":
        return Path("~/.config/ezsync/ezsync.cfg").expanduser()
    return Path("~/.ezsync.cfg").expanduser()


class Config:
    """
    The whole configuration: logging flags in the default section, how to
    reach the card in [device] and what to sync where in [sync].
    """

    def __init__(self, parser: ConfigParser):
        for name in ("device", "sync"):
            if not parser.has_section(name):
                parser.add_section(name)

        self._parser = parser
        self._default_section = DefaultSection(parser[parser.default_section])
        self._device_section = DeviceSection(parser["device"])
        self._sync_section = SyncSection(parser["sync"])

    @property
    def default_section(self) -> DefaultSection:
        return self._default_section

    @property
    def device_section(self) -> DeviceSection:
        return self._device_section

    @property
    def sync_section(self) -> SyncSection:
        return self._sync_section

    @staticmethod
    def load_parser(parser: ConfigParser, path: Optional[Path] = None) -> None:
        """
        May throw a ConfigLoadError.
        """

        path = path or default_config_path()
        log.explain(f"Reading {fmt_real_path(path)}")

        # read_file instead of read, which silently skips missing files
        try:
            with open(path, encoding="utf-8") as f:
                parser.read_file(f, source=str(path))
        except FileNotFoundError:
            raise ConfigLoadError(path, "File does not exist")
        except IsADirectoryError:
            raise ConfigLoadError(path, "That's a directory, not a file")
        except PermissionError:
            raise ConfigLoadError(path, "Insufficient permissions")
        except UnicodeDecodeError:
            raise ConfigLoadError(path, "File is not encoded using UTF-8")

    def _write(self, path: Path, mode: str) -> None:
        with open(path, mode, encoding="utf-8") as f:
            self._parser.write(f)

    def dump(self, path: Optional[Path] = None) -> None:
        """
        Writes the config to a file, asking before an existing file is
        overwritten.

        May throw a ConfigDumpError.
        """

        path = path or default_config_path()
        log.print(f"[bold bright_cyan]Dumping[/] to {escape(fmt_real_path(path))}")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                self._write(path, "x")
            except FileExistsError:
                if not prompt_yes_no("That file already exists. Overwrite it?", default=False):
                    raise ConfigDumpError(path, "File already exists")
                self._write(path, "w")
        except IsADirectoryError:
            raise ConfigDumpError(path, "That's a directory, not a file")
        except PermissionError:
            raise ConfigDumpError(path, "Insufficient permissions")

    def dump_to_stdout(self) -> None:
        self._parser.write(sys.stdout)
