import asyncio
from types import TracebackType
from typing import Awaitable, Callable, Dict, Optional, Type, TypeVar
from urllib.parse import urljoin

import httpx

from ..logging import log
from ..utils import with_query_param
from .errors import RetriesExhaustedError, ServerError
from .types import ClientConfig

T = TypeVar("T")


def to_device_path(path: str) -> str:
    """
    Converts a unix style path like "/DATALOG/20260104" into the form the
    device expects, "A:\\DATALOG\\20260104". The root maps to "A:".
    """

    if path.startswith("/"):
        path = path[1:]
    if not path:
        return "A:"
    return "A:\\" + path.replace("/", "\\")


def is_retriable_error(error: BaseException) -> bool:
    if isinstance(error, asyncio.CancelledError):
        return False
    if isinstance(error, ServerError):
        return True
    # Connect, read, write and pool timeouts
    if isinstance(error, httpx.TimeoutException):
        return True
    # Deadlines imposed from the outside, e.g. asyncio.wait_for
    if isinstance(error, asyncio.TimeoutError):
        return True
    return False


class RetryPolicy:
    """
    Runs an operation up to max_retries + 1 times, sleeping with exponential
    backoff between attempts. Only errors accepted by is_retriable lead to
    another attempt, everything else is raised immediately.
    """

    def __init__(
            self,
            max_retries: int,
            base_delay: float = 0.5,
            is_retriable: Callable[[BaseException], bool] = is_retriable_error,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")

        self._max_retries = max_retries
        self._base_delay = base_delay
        self._is_retriable = is_retriable

    @property
    def attempts(self) -> int:
        return self._max_retries + 1

    def delay(self, attempt: int) -> float:
        """
        The time to wait before the given (zero-based) attempt.
        """

        if attempt <= 0:
            return 0
        return self._base_delay * 2 ** (attempt - 1)

    async def run(self, operation: Callable[[], Awaitable[T]], name: str) -> T:
        last_exception: Optional[Exception] = None
        for attempt in range(self.attempts):
            if attempt > 0:
                delay = self.delay(attempt)
                log.explain_topic(f"Retrying {name} in {delay:.1f}s. Retries left: {self.attempts - 1 - attempt}")
                # Cancelling the task interrupts the sleep and skips all remaining attempts
                await asyncio.sleep(delay)

            try:
                return await operation()
            except Exception as e:
                if not self._is_retriable(e):
                    raise
                log.explain(f"Attempt {attempt + 1} of {name} failed: {e}")
                last_exception = e

        raise RetriesExhaustedError(name, self.attempts, last_exception) from last_exception


class Transport:
    """
    Issues requests against the device. All requests share one connection
    pool, the configured timeouts, the user agent and the proxy.
    """

    def __init__(
            self,
            config: ClientConfig,
            http_transport: Optional[httpx.AsyncBaseTransport] = None,
            retry: Optional[RetryPolicy] = None,
    ):
        self._config = config
        self._retry = retry or RetryPolicy(config.max_retries)
        self._client = httpx.AsyncClient(
            proxy=config.proxy,
            transport=http_transport,
            timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
            headers={"User-Agent": config.user_agent},
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def retry(self) -> RetryPolicy:
        return self._retry

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_value: Optional[BaseException],
            traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    def url(self, path: str, param: str, value: str) -> str:
        return with_query_param(urljoin(self._config.base_url, path), param, value)

    def resolve(self, locator: str) -> str:
        """
        Resolve a locator found in a listing, which may be relative, against
        the base url.
        """

        return urljoin(self._config.base_url, locator)

    async def send(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        """
        Performs a single streamed GET request. The caller is responsible for
        closing the returned response.

        May raise a ServerError or any httpx error.
        """

        log.explain(f"GET {url}")
        request = self._client.build_request("GET", url, headers=headers)
        response = await self._client.send(request, stream=True)

        if 500 <= response.status_code < 600:
            await response.aclose()
            raise ServerError(response.status_code)

        return response

    async def execute(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        """
        Like send, but retried according to the retry policy.
        """

        return await self._retry.run(lambda: self.send(url, headers), f"GET {url}")
