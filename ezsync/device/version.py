import warnings
from typing import Union

from bs4 import XMLParsedAsHTMLWarning
from bs4.element import Tag

from ..utils import soupify
from .errors import InvalidResponseError
from .types import Version


def parse_version_string(raw: str) -> Version:
    """
    Parses a version string like "LZ1801EDPG:1.0.0:2016-03-19:72 LZ1801EDRS:...".
    Only the first token is taken into account.

    May raise an InvalidResponseError.
    """

    tokens = raw.split()
    if not tokens:
        raise InvalidResponseError("Empty version string")

    components = tokens[0].split(":")
    if len(components) != 4:
        raise InvalidResponseError(f"Expected 4 version components, got {len(components)}")

    chip_model, firmware_version, date, build_number = components
    return Version(
        chip_model=chip_model,
        firmware_version=firmware_version,
        date=date,
        build_number=build_number,
        raw=raw,
    )


def parse_version(document: Union[bytes, str]) -> Version:
    """
    Parses the device's answer to the version command:
    <response><device><version>...</version></device></response>

    May raise an InvalidResponseError.
    """

    # The answer is tiny XML, html.parser handles it fine
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
        soup = soupify(document)
    tag = soup.select_one("response > device > version")
    if not isinstance(tag, Tag) or not tag.get_text().strip():
        raise InvalidResponseError("Response contains no version string")

    return parse_version_string(tag.get_text())
