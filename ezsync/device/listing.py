"""
Parser for the device's directory index pages.

A listing looks roughly like this, with wildly inconsistent padding:

    <pre>
       2026- 1- 4   10:55:58          64KB  <a href="...">Journal.dat</a>
       2026- 1- 4   10:56:12         &lt;DIR&gt;   <a href="...">DATALOG</a>

    Total Entries: 2
    </pre>

Every anchor closes a record consisting of the free text seen since the
previous anchor.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from bs4.element import NavigableString, PageElement, PreformattedString, Tag

from ..utils import soupify
from .errors import InvalidResponseError
from .types import Entry

TIMESTAMP_RE = re.compile(r"(\d{4})-\s*(\d{1,2})-\s*(\d{1,2})\s+(\d{1,2}):\s*(\d{1,2}):\s*(\d{1,2})")
SIZE_RE = re.compile(r"(\d+)KB|&lt;DIR&gt;|<DIR>")
WHITESPACE_RE = re.compile(r"\s+")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

DIR_MARKER = "<DIR>"


@dataclass
class RawRecord:
    text: str
    href: str
    name: str


class ListingScanner:
    """
    Accumulates text until an anchor shows up, then emits the text together
    with the anchor's name and href.
    """

    def __init__(self) -> None:
        self._text: List[str] = []
        self.records: List[RawRecord] = []

    def feed(self, node: PageElement) -> None:
        if isinstance(node, PreformattedString):
            # Comments, CDATA and the like
            return
        if isinstance(node, NavigableString):
            self._text.append(str(node))
        elif isinstance(node, Tag):
            if node.name == "a":
                self._anchor(node)
                return
            if node.name == "dir":
                # A literal, unescaped <DIR> is parsed as an (unclosed) element
                self._text.append(DIR_MARKER)
            for child in node.children:
                self.feed(child)

    def _anchor(self, tag: Tag) -> None:
        href = tag.get("href")
        name = tag.get_text().strip()
        if not href or not name:
            return

        self.records.append(RawRecord("".join(self._text), str(href), name))
        self._text = []


def parse_timestamp(text: str) -> Optional[datetime]:
    """
    Finds and parses the first timestamp in the text. Returns None if there
    is none.

    May raise an InvalidResponseError if the timestamp is not a valid date.
    """

    match = TIMESTAMP_RE.search(text)
    if match is None:
        return None

    normalized = WHITESPACE_RE.sub(" ", match.group(0))
    normalized = normalized.replace("- ", "-").replace(": ", ":")
    try:
        return datetime.strptime(normalized, TIMESTAMP_FORMAT)
    except ValueError as e:
        raise InvalidResponseError(f"Failed to parse timestamp {match.group(0)!r}: {e}") from e


def parse_record(record: RawRecord) -> Optional[Entry]:
    """
    Turns a raw record into an entry. Returns None for records that don't
    describe real entries (summary lines, "." and "..").

    May raise an InvalidResponseError.
    """

    text = record.text.strip()
    if not text or text.startswith("Total"):
        return None
    if record.name in {".", ".."}:
        return None

    timestamp = parse_timestamp(text)
    if timestamp is None:
        raise InvalidResponseError(f"Timestamp not found in line {text!r}")

    size_match = SIZE_RE.search(text)
    if size_match is None:
        raise InvalidResponseError(f"Size not found in line {text!r}")

    if size_match.group(1) is None:
        is_directory = True
        size = 0
    else:
        is_directory = False
        size = int(size_match.group(1)) * 1024

    return Entry(
        name=record.name,
        is_directory=is_directory,
        timestamp=timestamp,
        size=size,
        url=record.href,
    )


def parse_listing(document: Union[bytes, str]) -> List[Entry]:
    """
    Parses a directory index page into its entries, in document order.

    May raise an InvalidResponseError. A single malformed line invalidates
    the whole listing.
    """

    soup = soupify(document)
    pre = soup.find("pre")
    if not isinstance(pre, Tag):
        raise InvalidResponseError("Directory listing contains no <pre> tag")

    scanner = ListingScanner()
    for child in pre.children:
        scanner.feed(child)

    entries = []
    for record in scanner.records:
        entry = parse_record(record)
        if entry is not None:
            entries.append(entry)

    return entries
