import asyncio
from typing import List

import httpx
import pytest

from ezsync.device import (ClientConfig, RetriesExhaustedError, RetryPolicy, ServerError, Transport,
                           UnexpectedStatusError, is_retriable_error, to_device_path)

from conftest import BASE_URL, TrackedStream


@pytest.mark.parametrize("path, expected", [
    ("/", "A:"),
    ("", "A:"),
    ("/DATALOG", "A:\\DATALOG"),
    ("/DATALOG/20260104", "A:\\DATALOG\\20260104"),
    ("DATALOG/20260104", "A:\\DATALOG\\20260104"),
    ("STR.EDF", "A:\\STR.EDF"),
])
def test_to_device_path(path: str, expected: str) -> None:
    assert to_device_path(path) == expected


@pytest.mark.parametrize("error, expected", [
    (ServerError(503), True),
    (httpx.ReadTimeout("timed out"), True),
    (httpx.ConnectTimeout("timed out"), True),
    (asyncio.TimeoutError(), True),
    (asyncio.CancelledError(), False),
    (UnexpectedStatusError(403), False),
    (httpx.ConnectError("refused"), False),
    (ValueError("nope"), False),
])
def test_is_retriable_error(error: BaseException, expected: bool) -> None:
    assert is_retriable_error(error) == expected


def test_backoff_doubles() -> None:
    policy = RetryPolicy(3, base_delay=0.5)
    assert policy.attempts == 4
    assert [policy.delay(attempt) for attempt in range(4)] == [0, 0.5, 1.0, 2.0]


def test_negative_retries_rejected() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(-1)


class Flaky:
    def __init__(self, failures: List[BaseException], result: str = "done"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def test_retry_until_success() -> None:
    operation = Flaky([ServerError(500), httpx.ReadTimeout("slow")])
    result = asyncio.run(RetryPolicy(3, base_delay=0).run(operation, "test"))

    assert result == "done"
    assert operation.calls == 3


def test_retries_exhausted() -> None:
    operation = Flaky([ServerError(500)] * 10)

    with pytest.raises(RetriesExhaustedError) as info:
        asyncio.run(RetryPolicy(2, base_delay=0).run(operation, "test"))

    assert operation.calls == 3
    assert info.value.attempts == 3
    assert isinstance(info.value.last_error, ServerError)
    assert info.value.__cause__ is info.value.last_error


def test_no_retries_means_single_attempt() -> None:
    operation = Flaky([ServerError(500)])

    with pytest.raises(RetriesExhaustedError):
        asyncio.run(RetryPolicy(0, base_delay=0).run(operation, "test"))

    assert operation.calls == 1


def test_non_retriable_error_is_raised_immediately() -> None:
    operation = Flaky([UnexpectedStatusError(403)])

    with pytest.raises(UnexpectedStatusError):
        asyncio.run(RetryPolicy(3, base_delay=0).run(operation, "test"))

    assert operation.calls == 1


def test_cancellation_interrupts_backoff() -> None:
    operation = Flaky([ServerError(500)] * 10)

    async def scenario() -> None:
        task = asyncio.create_task(RetryPolicy(3, base_delay=60).run(operation, "test"))
        while operation.calls == 0:
            await asyncio.sleep(0)
        # Give the task a chance to enter its backoff sleep
        await asyncio.sleep(0.01)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())

    assert operation.calls == 1


def make_transport(handler, retries: int = 3) -> Transport:  # type: ignore
    return Transport(
        ClientConfig(BASE_URL, max_retries=retries),
        http_transport=httpx.MockTransport(handler),
        retry=RetryPolicy(retries, base_delay=0),
    )


def test_send_turns_5xx_into_server_error() -> None:
    async def scenario() -> None:
        async with make_transport(lambda request: httpx.Response(502)) as transport:
            await transport.send(transport.resolve("/dir"))

    with pytest.raises(ServerError) as info:
        asyncio.run(scenario())
    assert info.value.status_code == 502


def test_send_passes_4xx_through() -> None:
    async def scenario() -> int:
        async with make_transport(lambda request: httpx.Response(404)) as transport:
            response = await transport.send(transport.resolve("/dir"))
            await response.aclose()
            return response.status_code

    assert asyncio.run(scenario()) == 404


def test_execute_retries_server_errors() -> None:
    statuses = [503, 503, 200]
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(statuses.pop(0), text="ok")

    async def scenario() -> bytes:
        async with make_transport(handler) as transport:
            response = await transport.execute(transport.resolve("/client"))
            try:
                return await response.aread()
            finally:
                await response.aclose()

    assert asyncio.run(scenario()) == b"ok"
    assert len(requests) == 3


def test_requests_carry_user_agent_and_range() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    async def scenario() -> None:
        async with make_transport(handler) as transport:
            response = await transport.send(transport.resolve("/download"), headers={"Range": "bytes=10-"})
            await response.aclose()

    asyncio.run(scenario())

    assert requests[0].headers["User-Agent"].startswith("ezsync/")
    assert requests[0].headers["Range"] == "bytes=10-"


def test_url_encodes_device_path() -> None:
    transport = make_transport(lambda request: httpx.Response(200))
    try:
        assert transport.url("/dir", "dir", to_device_path("/DATALOG")) == \
            "http://192.168.4.1/dir?dir=A%3A%5CDATALOG"
        assert transport.url("/client", "command", "version") == "http://192.168.4.1/client?command=version"
    finally:
        asyncio.run(transport.aclose())


def test_resolve_relative_locators() -> None:
    transport = make_transport(lambda request: httpx.Response(200))
    try:
        assert transport.resolve("dir?dir=A:%5CDATALOG") == "http://192.168.4.1/dir?dir=A:%5CDATALOG"
        assert transport.resolve("/download?file=X") == "http://192.168.4.1/download?file=X"
        assert transport.resolve("http://10.0.0.1/download?file=X") == "http://10.0.0.1/download?file=X"
    finally:
        asyncio.run(transport.aclose())


def test_client_config_normalization() -> None:
    config = ClientConfig("192.168.4.1", proxy="localhost:1080")
    assert config.base_url == "http://192.168.4.1"
    assert config.proxy == "socks5://localhost:1080"

    config = ClientConfig("https://card.local", proxy="socks5h://localhost:1080")
    assert config.base_url == "https://card.local"
    assert config.proxy == "socks5h://localhost:1080"


def test_discarded_server_error_bodies_are_closed() -> None:
    streams: List[TrackedStream] = []

    def handler(request: httpx.Request) -> httpx.Response:
        stream = TrackedStream(b"busy")
        streams.append(stream)
        return httpx.Response(503, stream=stream)

    async def scenario() -> None:
        async with make_transport(handler, retries=2) as transport:
            await transport.execute(transport.resolve("/dir"))

    with pytest.raises(RetriesExhaustedError):
        asyncio.run(scenario())

    assert len(streams) == 3
    assert [s.closed for s in streams] == [True, True, True]
