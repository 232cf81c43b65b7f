from pathlib import Path, PurePath
from typing import Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import bs4

ANSWERS = {"y": True, "yes": True, "n": False, "no": False}


def prompt_yes_no(query: str, default: Optional[bool]) -> bool:
    """
    Asks a yes/no question on the terminal until it gets a usable answer. An
    empty answer picks the default, if there is one.
    """

    hint = {True: "[Y/n]", False: "[y/N]", None: "[y/n]"}[default]
    while True:
        answer = input(f"{query} {hint} ").strip().lower()
        if answer in ANSWERS:
            return ANSWERS[answer]
        if not answer and default is not None:
            return default
        print("Please answer with 'y' or 'n'.")


def soupify(data: Union[bytes, str]) -> bs4.BeautifulSoup:
    """
    Parses an HTML or XML document from the card. Its pages are not
    well-formed enough for a strict parser.
    """

    return bs4.BeautifulSoup(data, "html.parser")


def with_query_param(url: str, param: str, value: str) -> str:
    """
    Returns the url with the query parameter set to value, replacing any
    previous value of it. The value is percent-encoded, so device paths like
    "A:\\DATALOG" can be passed as they are.
    """

    scheme, netloc, path, query, fragment = urlsplit(url)
    params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k != param]
    params.append((param, value))
    return urlunsplit((scheme, netloc, path, urlencode(params), fragment))


def str_path(path: PurePath) -> str:
    return path.as_posix() if path.parts else "."


def fmt_path(path: PurePath) -> str:
    return repr(str_path(path))


def fmt_real_path(path: Path) -> str:
    return repr(str(path.absolute()))
