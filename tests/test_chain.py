import asyncio

import pytest

from conftest import FakeConnection, loop_errors

from nodriverintercept import (
    HandlerChain,
    InterceptedRequest,
    ResolutionConflictError,
)

pytestmark = pytest.mark.asyncio


def recorder(calls: list, name: str, decide=None):
    """sync handler that logs its name then continues (or runs `decide`)."""
    def handler(request):
        calls.append(name)
        if decide is None:
            request.continue_()
        else:
            decide(request)
    handler.__name__ = name
    return handler


async def drain(request: InterceptedRequest):
    while request.tasks:
        await asyncio.gather(*list(request.tasks), return_exceptions=True)


async def test_no_handlers_passes_through(connection, make_event):
    request = InterceptedRequest(connection, make_event())
    await request.dispatch()

    assert connection.sent == [{
        "method": "Fetch.continueRequest",
        "params": {"requestId": "req-1"},
    }]


async def test_all_continue_passes_through(connection, make_event):
    calls = []
    handlers = [recorder(calls, "a"), recorder(calls, "b"), recorder(calls, "c")]
    request = InterceptedRequest(connection, make_event(), handlers)
    request.dispatch()
    await drain(request)

    assert calls == ["a", "b", "c"]
    assert connection.sent == [{
        "method": "Fetch.continueRequest",
        "params": {"requestId": "req-1"},
    }]


@pytest.mark.parametrize("decider", [0, 1, 2])
async def test_kth_handler_runs_only_if_earlier_ones_continued(connection, make_event, decider):
    calls = []
    handlers = [
        recorder(calls, str(i), decide=(lambda r: r.abort()) if i == decider else None)
        for i in range(3)
    ]
    request = InterceptedRequest(connection, make_event(), handlers)
    request.dispatch()
    await drain(request)

    assert calls == [str(i) for i in range(decider + 1)]
    assert connection.methods() == ["Fetch.failRequest"]


async def test_async_handlers_run_in_order_across_awaits(connection, make_event):
    calls = []

    async def slow(request):
        calls.append("slow:start")
        await asyncio.sleep(0.01)
        calls.append("slow:end")
        await request.continue_()

    async def decider(request):
        calls.append("decider")
        await request.fulfill(body="cached")

    request = InterceptedRequest(connection, make_event(), [slow, decider])
    request.dispatch()
    await drain(request)

    assert calls == ["slow:start", "slow:end", "decider"]
    assert connection.methods() == ["Fetch.fulfillRequest"]


async def test_defer_to_browser_skips_remaining_handlers(connection, make_event):
    calls = []
    handlers = [
        recorder(calls, "first", decide=lambda r: r.defer_to_browser(method="HEAD")),
        recorder(calls, "second"),
    ]
    request = InterceptedRequest(connection, make_event(), handlers)
    request.dispatch()
    await drain(request)

    assert calls == ["first"]
    assert connection.sent[0]["params"] == {"requestId": "req-1", "method": "HEAD"}


async def test_handler_that_never_decides_halts_the_chain(connection, make_event):
    calls = []
    handlers = [recorder(calls, "silent", decide=lambda r: None), recorder(calls, "never")]
    request = InterceptedRequest(connection, make_event(), handlers)
    request.dispatch()
    await drain(request)

    assert calls == ["silent"]
    assert not request.resolved
    assert connection.sent == []


async def test_chain_is_a_snapshot(connection, make_event):
    calls = []
    handlers = [recorder(calls, "a")]
    request = InterceptedRequest(connection, make_event(), handlers)
    handlers.append(recorder(calls, "late"))
    request.dispatch()
    await drain(request)

    assert calls == ["a"]
    assert len(request.chain) == 1


async def test_sync_handler_continuing_twice_conflicts(connection, make_event):
    calls = []
    errors = []

    def buggy(request):
        calls.append("buggy")
        request.continue_()
        try:
            request.continue_()
        except ResolutionConflictError as e:
            errors.append(e)

    async def holder(request):
        calls.append("holder")
        await asyncio.sleep(0)
        await request.abort()

    request = InterceptedRequest(connection, make_event(), [buggy, holder, holder])
    request.dispatch()
    await drain(request)

    assert calls == ["buggy", "holder"]
    assert len(errors) == 1
    assert connection.methods() == ["Fetch.failRequest"]


async def test_two_buggy_async_handlers_send_one_command(connection, make_event):
    calls = []

    async def double_continue(request):
        calls.append("double")
        await request.continue_()
        with pytest.raises(ResolutionConflictError):
            request.continue_()

    request = InterceptedRequest(connection, make_event(), [double_continue, double_continue])
    request.dispatch()
    await drain(request)

    # first retry conflicts on the moved cursor, the second on the resolved request
    assert calls == ["double", "double"]
    assert connection.sent == [{
        "method": "Fetch.continueRequest",
        "params": {"requestId": "req-1"},
    }]


async def test_continue_from_outside_the_chain_acts_as_holder(connection, make_event):
    calls = []
    request = InterceptedRequest(
        connection, make_event(), [recorder(calls, "a", decide=lambda r: None), recorder(calls, "b")]
    )
    request.dispatch()
    request.continue_()
    await drain(request)

    assert calls == ["a", "b"]
    assert connection.methods() == ["Fetch.continueRequest"]


async def test_sync_handler_error_propagates_to_caller(connection, make_event):
    def broken(request):
        raise KeyError("boom")

    request = InterceptedRequest(connection, make_event(), [broken])

    with pytest.raises(KeyError):
        request.dispatch()
    assert not request.resolved
    assert connection.sent == []


async def test_async_handler_error_goes_to_loop_exception_handler(connection, make_event):
    async def broken(request):
        await asyncio.sleep(0)
        raise RuntimeError("handler defect")

    with loop_errors() as seen:
        request = InterceptedRequest(connection, make_event(), [broken])
        await request.dispatch()
        await drain(request)

    assert len(seen) == 1
    assert isinstance(seen[0]["exception"], RuntimeError)
    assert "broken" in seen[0]["message"]
    assert not request.resolved
    assert connection.sent == []


async def test_downstream_defect_is_reported_once_against_its_handler(connection, make_event):
    async def upstream(request):
        await request.continue_()

    async def downstream(request):
        raise RuntimeError("only downstream is broken")

    with loop_errors() as seen:
        request = InterceptedRequest(connection, make_event(), [upstream, downstream])
        request.dispatch()
        await drain(request)

    assert [type(c["exception"]) for c in seen] == [RuntimeError]
    assert "downstream" in seen[0]["message"]
    assert "upstream" not in seen[0]["message"]
    assert not request.resolved


async def test_continue_returns_once_the_next_handler_is_invoked(connection, make_event):
    gate = asyncio.Event()

    async def blocked(request):
        await gate.wait()
        await request.abort()

    request = InterceptedRequest(connection, make_event(), [recorder([], "a", decide=lambda r: None), blocked])
    request.dispatch()
    fut = request.continue_()

    assert fut.done()
    assert request.chain.exhausted
    gate.set()
    await drain(request)
    assert connection.methods() == ["Fetch.failRequest"]


async def test_command_failure_from_sync_handler_is_not_a_handler_defect(make_event):
    connection = FakeConnection(fail_with=ConnectionError("session closed"))

    with loop_errors() as seen:
        request = InterceptedRequest(connection, make_event(), [lambda r: r.abort()])
        request.dispatch()
        results = await asyncio.gather(*list(request.tasks), return_exceptions=True)

    # the transport error belongs to the command task, not to the handler
    assert [type(r) for r in results] == [ConnectionError]
    assert seen == []
    assert request.resolved


async def test_chain_progress_properties(connection, make_event):
    chain = HandlerChain([lambda r: None, lambda r: None])

    assert chain.position == -1
    assert chain.remaining == 2
    assert not chain.exhausted
    assert chain.holds()
