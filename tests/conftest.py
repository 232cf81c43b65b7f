import math
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Set

import httpx
import pytest

from ezsync.device import ClientConfig, DeviceClient, Entry, RetryPolicy, to_device_path

BASE_URL = "http://192.168.4.1"


def device_to_unix(device_path: str) -> str:
    path = device_path
    if path.startswith("A:"):
        path = path[2:]
    return "/" + path.lstrip("\\").replace("\\", "/")


def fmt_device_time(t: datetime) -> str:
    # The card pads every field with spaces instead of zeros
    return f"{t.year}-{t.month:2d}-{t.day:2d}   {t.hour:2d}:{t.minute:2d}:{t.second:2d}"


def listing_html(title: str, lines: List[str], total: int = 0) -> str:
    body = "\n".join(lines)
    return f"""<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml">
<head>
<meta http-equiv="Content-Type" content="text/html; charset=gb2312">
<title>Index of {title}</title>
</head>
<body>
<h1><a href="photo">back to photo</a></h1>
<h1>Directory Index of {title}</h1>
<pre>
{body}

Total Entries: {len(lines)}
Total Size: {total}KB
</pre>
</body>
</html>"""


class FakeCard:
    """
    Serves directory listings and downloads the way the card does, backed by
    in-memory files. Directories are implied by the file paths.
    """

    def __init__(self, support_ranges: bool = True):
        self.files: Dict[str, bytes] = {}
        self.mtimes: Dict[str, datetime] = {}
        self.dirs: Set[str] = {"/"}
        self.support_ranges = support_ranges
        self.requests: List[httpx.Request] = []
        self.broken_downloads: Set[str] = set()
        self.broken_listings: Set[str] = set()

    def add_file(self, path: str, content: bytes, mtime: datetime) -> None:
        self.files[path] = content
        self.mtimes[path] = mtime
        parent = path.rsplit("/", 1)[0] or "/"
        while parent not in self.dirs:
            self.dirs.add(parent)
            parent = parent.rsplit("/", 1)[0] or "/"

    def add_dir(self, path: str) -> None:
        self.dirs.add(path)

    def _children(self, directory: str) -> List[str]:
        prefix = directory.rstrip("/") + "/"
        children = set()
        for path in list(self.files) + list(self.dirs):
            if path != directory and path.startswith(prefix) and "/" not in path[len(prefix):]:
                children.add(path)
        return sorted(children)

    def listing(self, directory: str) -> str:
        lines = [
            f"   2026- 1- 1   12: 0: 0         &lt;DIR&gt;   <a href=\"dir?dir={to_device_path(directory)}\"> .</a>",
            f"   2026- 1- 1   12: 0: 0         &lt;DIR&gt;   <a href=\"dir?dir={to_device_path(directory)}\"> ..</a>",
        ]
        for path in self._children(directory):
            name = path.rsplit("/", 1)[1]
            if path in self.dirs:
                lines.append(f"   2026- 1- 1   12: 0: 0         &lt;DIR&gt;   "
                             f"<a href=\"dir?dir={to_device_path(path)}\"> {name}</a>")
            else:
                size_kb = math.ceil(len(self.files[path]) / 1024)
                lines.append(f"   {fmt_device_time(self.mtimes[path])}   {size_kb:8d}KB  "
                             f"<a href=\"{BASE_URL}/download?file={to_device_path(path)}\"> {name}</a>")
        return listing_html(directory, lines)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == "/dir":
            directory = device_to_unix(request.url.params["dir"])
            if directory in self.broken_listings:
                return httpx.Response(200, text="<html><body>no listing here</body></html>")
            if directory not in self.dirs:
                return httpx.Response(404)
            return httpx.Response(200, text=self.listing(directory))

        if request.url.path == "/download":
            path = device_to_unix(request.url.params["file"])
            if path in self.broken_downloads or path not in self.files:
                return httpx.Response(404)
            return self._serve(request, self.files[path])

        return httpx.Response(404)

    def _serve(self, request: httpx.Request, content: bytes) -> httpx.Response:
        range_header = request.headers.get("range")
        if range_header is None or not self.support_ranges:
            return httpx.Response(200, content=content)

        start = int(range_header[len("bytes="):].rstrip("-"))
        if start >= len(content):
            return httpx.Response(416)

        headers = {"Content-Range": f"bytes {start}-{len(content) - 1}/{len(content)}"}
        return httpx.Response(206, headers=headers, content=content[start:])

    def download_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/download"]


def make_client(handler, retries: int = 3) -> DeviceClient:  # type: ignore
    return DeviceClient(
        ClientConfig(BASE_URL, max_retries=retries),
        http_transport=httpx.MockTransport(handler),
        retry=RetryPolicy(retries, base_delay=0),
    )


def make_entry(content: bytes, url: str = f"{BASE_URL}/download?file=A:%5Ctest.bin",
               timestamp: Optional[datetime] = None) -> Entry:
    return Entry(
        name="test.bin",
        is_directory=False,
        timestamp=timestamp or datetime(2026, 1, 4, 10, 55, 58),
        size=len(content),
        url=url,
    )


@pytest.fixture
def card() -> FakeCard:
    return FakeCard()


class TrackedStream(httpx.AsyncByteStream):
    """
    A response body that remembers whether it was closed. Optionally fails
    after the content has been sent.
    """

    def __init__(self, content: bytes, error: Optional[Exception] = None,
                 close_error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.close_error = close_error
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield self.content
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error
