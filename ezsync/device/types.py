from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..version import NAME, VERSION

DEFAULT_URL = "http://192.168.4.1"
DEFAULT_USER_AGENT = f"{NAME}/{VERSION}"


@dataclass(frozen=True)
class Entry:
    """
    A single file or directory as reported by a directory listing.

    The size is only known at kilobyte granularity and is always 0 for
    directories. The url is the locator exactly as found in the listing and
    may be relative to the device's base url.
    """

    name: str
    is_directory: bool
    timestamp: datetime
    size: int
    url: str

    def __post_init__(self) -> None:
        if self.is_directory and self.size != 0:
            raise ValueError(f"Directory {self.name!r} must have size 0, not {self.size}")


@dataclass(frozen=True)
class Version:
    chip_model: str
    firmware_version: str
    date: str
    build_number: str
    raw: str


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_URL
    proxy: Optional[str] = None
    timeout: float = 180.0
    connect_timeout: float = 5.0
    max_retries: int = 3
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if "://" not in self.base_url:
            object.__setattr__(self, "base_url", "http://" + self.base_url)
        if self.proxy and "://" not in self.proxy:
            object.__setattr__(self, "proxy", "socks5://" + self.proxy)
