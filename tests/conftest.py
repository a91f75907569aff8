import asyncio
import contextlib
import types

import pytest

from nodriverintercept import cdp


class FakeConnection:
    """records the CDP command dicts produced by `nodriver.cdp` generators."""

    def __init__(self, fail_with: Exception | None = None):
        self.sent: list[dict] = []
        self.handlers: dict[type, list] = {}
        self.fail_with = fail_with

    async def send(self, cmd):
        self.sent.append(next(cmd))
        if self.fail_with is not None:
            raise self.fail_with

    def add_handler(self, event_type, handler):
        self.handlers.setdefault(event_type, []).append(handler)

    def remove_handler(self, event_type, handler):
        self.handlers[event_type].remove(handler)

    def methods(self) -> list[str]:
        return [c["method"] for c in self.sent]


@contextlib.contextmanager
def loop_errors():
    """collect contexts passed to the running loop's exception handler."""
    loop = asyncio.get_running_loop()
    seen = []
    previous = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: seen.append(context))
    try:
        yield seen
    finally:
        loop.set_exception_handler(previous)


def deliver(callback, event, connection):
    """hand `event` to a sync listener the way nodriver's connection does.

    nodriver tries `callback(event, connection)` first and retries with
    `callback(event)` on `TypeError`; other errors never reach the caller.
    """
    try:
        try:
            callback(event, connection)
        except TypeError:
            callback(event)
    except Exception:
        pass


def paused_message(request_id="interception-job-1.0", url="https://example.com/", **request):
    """raw `Fetch.requestPaused` message as it comes off the devtools socket."""
    return {
        "method": "Fetch.requestPaused",
        "params": {
            "requestId": request_id,
            "request": {
                "url": url,
                "method": "GET",
                "headers": {},
                "initialPriority": "VeryHigh",
                "referrerPolicy": "strict-origin-when-cross-origin",
                **request,
            },
            "frameId": "frame-1",
            "resourceType": "Document",
        },
    }


def make_event(
    request_id="req-1",
    url="https://example.com/",
    method="GET",
    headers=None,
    resource_type=cdp.network.ResourceType.DOCUMENT,
    post_data=None,
    response_status_code=None,
):
    """shape-compatible stand-in for `cdp.fetch.RequestPaused`."""
    return types.SimpleNamespace(
        request_id=cdp.fetch.RequestId(request_id),
        request=types.SimpleNamespace(
            url=url,
            method=method,
            headers=headers,
            post_data=post_data,
        ),
        resource_type=resource_type,
        response_status_code=response_status_code,
        response_error_reason=None,
    )


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture(name="make_event")
def make_event_fixture():
    return make_event
